import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("catalog", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="StockMovementLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("quantity_change", models.IntegerField(help_text="Delta value (+/-)")),
                (
                    "movement_type",
                    models.CharField(
                        choices=[
                            ("OUTBOUND", "Outbound (Order)"),
                            ("RESTOCK", "Restock (Cancellation)"),
                            ("ADJUST", "Manual Adjustment"),
                            ("RECON", "System Reconciliation"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "reference",
                    models.CharField(
                        db_index=True,
                        help_text="Order number, adjustment reason, etc.",
                        max_length=100,
                    ),
                ),
                ("balance_after", models.IntegerField(help_text="Snapshot of Product.stock after the change")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stock_movements",
                        to="catalog.product",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["product", "created_at"], name="stockmove_product_created_idx"),
                ],
            },
        ),
    ]
