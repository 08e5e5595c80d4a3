from django.db import models
from django.conf import settings
from apps.catalog.models import Product
from apps.utils.models import TimestampedModel


class StockMovementLog(TimestampedModel):
    """
    Immutable Ledger of all changes to Product.stock.
    Sum of quantity_change per product equals its current stock.
    """
    class MovementType(models.TextChoices):
        OUTBOUND_ORDER = "OUTBOUND", "Outbound (Order)"
        RESTOCK = "RESTOCK", "Restock (Cancellation)"
        ADJUSTMENT = "ADJUST", "Manual Adjustment"
        RECONCILIATION = "RECON", "System Reconciliation"

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='stock_movements'
    )

    quantity_change = models.IntegerField(help_text="Delta value (+/-)")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)

    # Traceability
    reference = models.CharField(max_length=100, db_index=True, help_text="Order number, adjustment reason, etc.")
    balance_after = models.IntegerField(help_text="Snapshot of Product.stock after the change")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL
    )

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='stockmove_product_created_idx'),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity_change:+d} {self.product_id} ({self.reference})"
