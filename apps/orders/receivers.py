import logging

from django.dispatch import receiver

from .signals import order_created, order_status_changed

logger = logging.getLogger(__name__)


@receiver(order_created)
def log_order_created(sender, order, **kwargs):
    logger.info(
        f"order_created {order.order_number} ({order.payment_method}, {order.total})",
        extra={"order_id": str(order.id), "order_number": order.order_number},
    )


@receiver(order_status_changed)
def log_status_change(sender, order, old_status, new_status, **kwargs):
    logger.info(
        f"order_status_changed {order.order_number}: {old_status} -> {new_status}",
        extra={"order_id": str(order.id), "order_number": order.order_number},
    )
