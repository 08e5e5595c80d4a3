import logging
import uuid
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, OperationalError, connection, transaction
from django.db.models import Q

from apps.inventory.services import InventoryService
from apps.utils.exceptions import (
    InvalidTransition, OrderNotFound, PersistenceFailed, RequestTimeout, ValidationFailed,
)
from apps.utils.utils import generate_order_number, now
from .models import (
    INITIAL_PAYMENT_STATUS, Order, OrderItem, OrderStatus, OrderTimeline, Payment, PaymentStatus,
)
from .signals import order_created, order_status_changed
from .validators import OrderDraft, OrderValidator

logger = logging.getLogger(__name__)

TIMEOUT_MARKERS = ("statement timeout", "canceling statement", "lock timeout")


def _is_timeout(exc):
    message = str(exc).lower()
    return any(marker in message for marker in TIMEOUT_MARKERS)


def _parse_choice(value, choices, label):
    """Case-insensitive lookup of a TextChoices value, ValidationFailed otherwise."""
    normalized = str(value or "").strip().upper()
    if normalized not in choices.values:
        raise ValidationFailed(f"Unknown {label}: {value}")
    return choices(normalized)


def _lock_order(order_id):
    try:
        uuid.UUID(str(order_id))
    except (TypeError, ValueError, AttributeError):
        raise OrderNotFound(order_id)
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise OrderNotFound(order_id)


def _order_lines(order):
    return [
        {"product_id": item.product_id, "quantity": item.quantity}
        for item in order.items.all()
    ]


class OrderWriter:
    """
    Turns a validated OrderDraft into an order, its items, its payment
    record and the matching stock decrements, all in one transaction.
    """

    @classmethod
    def create(cls, draft: OrderDraft):
        """
        Returns (order, created). created is False when the draft's client
        reference already produced an order, in which case nothing is written.
        """
        if draft.client_reference:
            existing = Order.objects.filter(client_reference=draft.client_reference).first()
            if existing:
                logger.info(
                    f"Replaying order {existing.order_number} for reference {draft.client_reference}",
                    extra={"order_id": str(existing.id)},
                )
                return existing, False

        user = draft.user
        if user is None:
            # Guest checkout with a known email still lands in that account
            user = get_user_model().objects.filter(email__iexact=draft.customer_email).first()

        attempts = settings.ORDER_NUMBER_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            order_number = generate_order_number()
            try:
                with transaction.atomic():
                    order = cls._persist(draft, order_number, user)
            except IntegrityError as exc:
                if draft.client_reference:
                    winner = Order.objects.filter(client_reference=draft.client_reference).first()
                    if winner:
                        logger.info(f"Lost idempotency race, returning {winner.order_number}")
                        return winner, False
                if Order.objects.filter(order_number=order_number).exists():
                    logger.warning(f"Order number collision on {order_number} (attempt {attempt}/{attempts})")
                    continue
                logger.error(f"Order persistence failed: {exc}", exc_info=True)
                raise PersistenceFailed() from exc
            except OperationalError as exc:
                if _is_timeout(exc):
                    logger.warning(f"Order persistence timed out: {exc}")
                    raise RequestTimeout() from exc
                logger.error(f"Order persistence failed: {exc}", exc_info=True)
                raise PersistenceFailed() from exc
            except DatabaseError as exc:
                logger.error(f"Order persistence failed: {exc}", exc_info=True)
                raise PersistenceFailed() from exc

            logger.info(
                f"Order {order.order_number} created: {len(draft.lines)} line(s), total {order.total}",
                extra={"order_id": str(order.id), "order_number": order.order_number},
            )
            transaction.on_commit(lambda: order_created.send(sender=Order, order=order))
            return order, True

        logger.error(f"Could not allocate a unique order number after {attempts} attempts")
        raise PersistenceFailed("Could not allocate a unique order number. Please try again.")

    @staticmethod
    def _persist(draft, order_number, user):
        timeout_ms = settings.DB_STATEMENT_TIMEOUT_MS
        if timeout_ms and connection.vendor == "postgresql":
            with connection.cursor() as cursor:
                cursor.execute("SET LOCAL statement_timeout = %s", [int(timeout_ms)])

        created_at = now()
        order = Order.objects.create(
            order_number=order_number,
            client_reference=draft.client_reference,
            user=user,
            customer_name=draft.customer_name,
            customer_email=draft.customer_email,
            customer_phone=draft.customer_phone,
            shipping_address=draft.shipping_address,
            shipping_city=draft.shipping_city,
            shipping_state=draft.shipping_state,
            shipping_zip_code=draft.shipping_zip_code,
            shipping_country=draft.shipping_country,
            subtotal=draft.subtotal,
            shipping_fee=draft.shipping_fee,
            total=draft.total,
            status=OrderStatus.PENDING,
            payment_method=draft.payment_method,
            payment_status=INITIAL_PAYMENT_STATUS[draft.payment_method],
            estimated_delivery=created_at + timedelta(days=settings.ORDER_DELIVERY_DAYS),
            notes=draft.notes,
        )

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product=line.product,
                product_name=line.product.name,
                sku=line.product.sku,
                unit_price=line.unit_price,
                quantity=line.quantity,
                total_price=line.line_total,
            )
            for line in draft.lines
        ])

        # Re-checks stock row by row; raising here undoes everything above
        InventoryService.commit_order_stock(
            [{"product_id": line.product.pk, "quantity": line.quantity} for line in draft.lines],
            reference=order_number,
            user=user,
        )

        Payment.objects.create(
            order=order,
            amount=order.total,
            currency=settings.PAYMENT_CURRENCY,
            method=order.payment_method,
            status=order.payment_status,
        )
        OrderTimeline.objects.create(
            order=order,
            status=OrderStatus.PENDING,
            note=f"Order placed ({order.get_payment_method_display()}).",
            created_by=user,
        )
        return order


class OrderStatusMachine:
    """
    Guards every status change against ALLOWED_TRANSITIONS and owns the
    order history lookups.
    """

    @staticmethod
    @transaction.atomic
    def transition(order_id, target_status, actor=None, note=""):
        target = _parse_choice(target_status, OrderStatus, "order status")
        order = _lock_order(order_id)
        current = order.status

        if not order.can_transition_to(target):
            logger.warning(
                f"Rejected transition {current} -> {target} for {order.order_number}",
                extra={"order_id": str(order.id)},
            )
            raise InvalidTransition(current, target)

        order.status = target
        update_fields = ["status", "updated_at"]
        if target == OrderStatus.DELIVERED:
            order.delivered_at = now()
            update_fields.append("delivered_at")
        elif target == OrderStatus.CANCELLED:
            order.cancelled_at = now()
            update_fields.append("cancelled_at")
        order.save(update_fields=update_fields)

        if target == OrderStatus.CANCELLED and settings.ORDER_RESTOCK_ON_CANCEL:
            InventoryService.restock_order(
                _order_lines(order), reference=f"CANCEL-{order.order_number}", user=actor
            )

        OrderTimeline.objects.create(
            order=order,
            status=target,
            note=note or f"Status changed from {current} to {target}.",
            created_by=actor,
        )
        logger.info(
            f"Order {order.order_number}: {current} -> {target}",
            extra={"order_id": str(order.id)},
        )
        transaction.on_commit(
            lambda: order_status_changed.send(
                sender=Order, order=order, old_status=current, new_status=target
            )
        )
        return order

    @staticmethod
    @transaction.atomic
    def update_payment_status(order_id, payment_status, actor=None, transaction_id=None):
        new_status = _parse_choice(payment_status, PaymentStatus, "payment status")
        order = _lock_order(order_id)
        current = order.payment_status

        if current == new_status:
            return order
        if order.status == OrderStatus.CANCELLED and new_status != PaymentStatus.REFUNDED:
            raise InvalidTransition(f"payment {current} (order cancelled)", new_status)

        order.payment_status = new_status
        order.save(update_fields=["payment_status", "updated_at"])

        payment_fields = {"status": new_status, "updated_at": now()}
        if transaction_id:
            payment_fields["transaction_id"] = transaction_id
        Payment.objects.filter(order=order).update(**payment_fields)

        OrderTimeline.objects.create(
            order=order,
            status=order.status,
            note=f"Payment {current} -> {new_status}.",
            created_by=actor,
        )
        logger.info(
            f"Order {order.order_number}: payment {current} -> {new_status}",
            extra={"order_id": str(order.id)},
        )
        return order

    @staticmethod
    @transaction.atomic
    def update_fulfilment(order_id, tracking_number=None, notes=None):
        order = _lock_order(order_id)
        update_fields = ["updated_at"]
        if tracking_number is not None:
            order.tracking_number = tracking_number.strip()
            update_fields.append("tracking_number")
        if notes is not None:
            order.notes = notes
            update_fields.append("notes")
        order.save(update_fields=update_fields)
        return order

    @staticmethod
    def link_guest_orders(user):
        """
        Attaches guest orders placed with the user's email to the account.
        Orders already owned by anyone are left alone, so re-running is a no-op.
        """
        email = (user.email or "").strip()
        if not email:
            return 0
        linked = (
            Order.objects
            .filter(user__isnull=True, customer_email__iexact=email)
            .update(user=user, updated_at=now())
        )
        if linked:
            logger.info(f"Linked {linked} guest order(s) to {user.pk}", extra={"user_id": str(user.pk)})
        return linked

    @classmethod
    def get_orders_for_user(cls, user=None, user_id=None, email=None):
        """
        Orders owned by the user id; when there are none, orders placed
        with the email. A known user gets guest orders linked first.
        The email fallback never exposes orders owned by another account
        when an id was given.
        """
        if user is not None:
            user_id = user.pk
            email = email or user.email
            cls.link_guest_orders(user)

        orders = Order.objects.prefetch_related("items")
        if user_id:
            by_owner = orders.filter(user_id=user_id)
            if by_owner.exists():
                return by_owner
        if email:
            by_email = orders.filter(customer_email__iexact=email.strip())
            if user_id:
                by_email = by_email.filter(user__isnull=True)
            return by_email
        return orders.none()


class OrderService:
    """
    Entry points used by the views.
    """

    @staticmethod
    def place_order(payload, user=None, client_reference=None):
        """
        Validate then write. A reference that already produced an order is
        answered before validation, stock may legitimately be gone by then.
        """
        if client_reference:
            existing = Order.objects.filter(client_reference=str(client_reference).strip()).first()
            if existing:
                logger.info(f"Replaying order {existing.order_number} for reference {client_reference}")
                return existing, False

        draft = OrderValidator.validate(payload, user=user, client_reference=client_reference)
        return OrderWriter.create(draft)

    @staticmethod
    @transaction.atomic
    def admin_update(order_id, data, actor=None):
        """
        Applies an admin edit (status, payment status, tracking, notes) as
        one unit: a rejected status change leaves the other fields untouched.
        """
        order = None
        if data.get("status"):
            order = OrderStatusMachine.transition(order_id, data["status"], actor=actor)
        if data.get("payment_status"):
            order = OrderStatusMachine.update_payment_status(order_id, data["payment_status"], actor=actor)
        if "tracking_number" in data or "notes" in data:
            order = OrderStatusMachine.update_fulfilment(
                order_id,
                tracking_number=data.get("tracking_number"),
                notes=data.get("notes"),
            )
        if order is None:
            order = _lock_order(order_id)
        return order


def search_orders(queryset, term):
    term = (term or "").strip()
    if not term:
        return queryset
    return queryset.filter(
        Q(order_number__icontains=term)
        | Q(customer_name__icontains=term)
        | Q(customer_email__icontains=term)
        | Q(customer_phone__icontains=term)
        | Q(items__product_name__icontains=term)
        | Q(items__sku__icontains=term)
    ).distinct()
