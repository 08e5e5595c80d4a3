from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Sum

from apps.catalog.models import Product
from apps.inventory.models import StockMovementLog


class Command(BaseCommand):
    help = "Compares Product.stock with the stock movement ledger and reports drift"

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Write a RECON ledger entry so the ledger matches Product.stock",
        )

    def handle(self, *args, **options):
        self.stdout.write("Starting Inventory Reconciliation...")

        ledger = dict(
            StockMovementLog.objects.values("product_id")
            .annotate(total=Sum("quantity_change"))
            .values_list("product_id", "total")
        )

        drift_count = 0
        for product in Product.objects.order_by("sku").iterator():
            expected = ledger.get(product.id) or 0
            if expected == product.stock:
                continue

            drift_count += 1
            diff = product.stock - expected
            self.stdout.write(
                self.style.WARNING(
                    f"{product.sku}: stock={product.stock} ledger={expected} (drift {diff:+d})"
                )
            )

            if options["fix"]:
                # Product.stock is the source of truth, the ledger catches up
                with transaction.atomic():
                    StockMovementLog.objects.create(
                        product=product,
                        quantity_change=diff,
                        movement_type=StockMovementLog.MovementType.RECONCILIATION,
                        reference="RECON",
                        balance_after=product.stock,
                    )

        self.stdout.write(self.style.SUCCESS(f"Reconciliation done. {drift_count} product(s) drifted."))
