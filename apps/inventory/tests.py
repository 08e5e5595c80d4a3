import io

from django.core.management import call_command
from django.db import transaction
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient
from rest_framework import status

from apps.accounts.models import User
from apps.catalog.models import Product
from apps.utils.exceptions import BusinessLogicException, InsufficientStock, ProductNotFound
from .models import StockMovementLog
from .services import InventoryService


class CommitOrderStockTests(TestCase):

    def setUp(self):
        self.bat = Product.objects.create(name="Bat", sku="BAT", price="100.00", stock=5)
        self.ball = Product.objects.create(name="Ball", sku="BALL", price="10.00", stock=2)

    def test_decrements_and_writes_ledger(self):
        with transaction.atomic():
            InventoryService.commit_order_stock(
                [{"product_id": self.bat.id, "quantity": 2}, {"product_id": self.ball.id, "quantity": 1}],
                reference="ORD_1_A",
            )
        self.bat.refresh_from_db()
        self.ball.refresh_from_db()
        self.assertEqual((self.bat.stock, self.ball.stock), (3, 1))

        log = StockMovementLog.objects.get(product=self.bat)
        self.assertEqual(log.quantity_change, -2)
        self.assertEqual(log.balance_after, 3)
        self.assertEqual(log.movement_type, StockMovementLog.MovementType.OUTBOUND_ORDER)

    def test_repeated_lines_are_checked_as_one_quantity(self):
        with self.assertRaises(InsufficientStock) as ctx:
            with transaction.atomic():
                InventoryService.commit_order_stock(
                    [{"product_id": self.ball.id, "quantity": 2}, {"product_id": self.ball.id, "quantity": 1}],
                    reference="ORD_2_A",
                )
        self.assertEqual(ctx.exception.requested, 3)
        self.assertEqual(ctx.exception.available, 2)
        self.ball.refresh_from_db()
        self.assertEqual(self.ball.stock, 2)

    def test_failure_rolls_back_earlier_decrements(self):
        with self.assertRaises(InsufficientStock):
            with transaction.atomic():
                InventoryService.commit_order_stock(
                    [{"product_id": self.bat.id, "quantity": 1}, {"product_id": self.ball.id, "quantity": 9}],
                    reference="ORD_3_A",
                )
        self.bat.refresh_from_db()
        self.assertEqual(self.bat.stock, 5)
        self.assertFalse(StockMovementLog.objects.exists())

    def test_inactive_product_is_not_sold(self):
        Product.objects.filter(pk=self.bat.pk).update(is_active=False)
        with self.assertRaises(ProductNotFound):
            with transaction.atomic():
                InventoryService.commit_order_stock(
                    [{"product_id": self.bat.id, "quantity": 1}], reference="ORD_4_A",
                )


class RestockAndAdjustTests(TestCase):

    def setUp(self):
        self.admin = User.objects.create_superuser(email="admin@example.com", password="pass12345")
        self.bat = Product.objects.create(name="Bat", sku="BAT", price="100.00", stock=1)

    def test_restock_increments_and_logs(self):
        InventoryService.restock_order([{"product_id": self.bat.id, "quantity": 2}], reference="ORD_X")
        self.bat.refresh_from_db()
        self.assertEqual(self.bat.stock, 3)
        self.assertEqual(
            StockMovementLog.objects.get(product=self.bat).movement_type,
            StockMovementLog.MovementType.RESTOCK,
        )

    def test_adjustment_refuses_negative_stock(self):
        with self.assertRaises(BusinessLogicException):
            InventoryService.manual_adjustment(self.bat.id, -2, self.admin, "count")
        self.bat.refresh_from_db()
        self.assertEqual(self.bat.stock, 1)

    def test_adjust_api(self):
        client = APIClient()
        client.force_authenticate(self.admin)
        resp = client.post(
            reverse("inventory-adjust"),
            {"product_id": str(self.bat.id), "delta_quantity": 4, "reason": "GRN 17"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["stock"], 5)

        history = client.get(reverse("inventory-history"), {"sku": "BAT"})
        self.assertEqual(history.data[0]["reference"], "MANUAL: GRN 17")
        self.assertEqual(history.data[0]["performed_by"], "admin@example.com")

    def test_adjust_api_is_admin_only(self):
        client = APIClient()
        client.force_authenticate(User.objects.create_user(email="c@example.com"))
        resp = client.post(
            reverse("inventory-adjust"),
            {"product_id": str(self.bat.id), "delta_quantity": 4, "reason": "x"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)


class ReconcileCommandTests(TestCase):

    def test_reports_and_fixes_drift(self):
        product = Product.objects.create(name="Bat", sku="BAT", price="100.00", stock=0)
        InventoryService.manual_adjustment(product.id, 5, None, "opening")
        # Out-of-band edit the ledger never saw
        Product.objects.filter(pk=product.pk).update(stock=7)

        out = io.StringIO()
        call_command("reconcile_inventory", "--fix", stdout=out)
        self.assertIn("BAT: stock=7 ledger=5", out.getvalue())

        out = io.StringIO()
        call_command("reconcile_inventory", stdout=out)
        self.assertIn("0 product(s) drifted", out.getvalue())
