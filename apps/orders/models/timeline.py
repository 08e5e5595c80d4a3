import uuid
from django.db import models
from django.conf import settings
from .order import Order, OrderStatus


class OrderTimeline(models.Model):
    """
    Audit trail for an order. One row per lifecycle event; payment and
    fulfilment edits record the order status current at the time.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, related_name="timeline", on_delete=models.CASCADE)

    status = models.CharField(max_length=20, choices=OrderStatus.choices)
    timestamp = models.DateTimeField(auto_now_add=True)
    note = models.TextField(blank=True)

    # Null for guest checkouts and system actions
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL
    )

    class Meta:
        ordering = ["-timestamp"]

    def __str__(self):
        return f"{self.order_id} -> {self.status}"
