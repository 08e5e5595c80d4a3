# apps/catalog/tests.py
import io
import os
import tempfile
import uuid
from decimal import Decimal

from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.urls import reverse

from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from apps.inventory.models import StockMovementLog
from apps.utils.exceptions import ProductNotFound
from .models import Category, Product
from .services import CatalogService


class CategoryModelTests(TestCase):
    def test_category_slug_auto_generated(self):
        c1 = Category.objects.create(name="Cricket Bats")
        self.assertEqual(c1.slug, "cricket-bats")


class ProductModelTests(TestCase):
    def test_stock_cannot_go_negative_at_db_level(self):
        product = Product.objects.create(name="Ball", sku="BALL-1", price="10.00", stock=1)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Product.objects.filter(pk=product.pk).update(stock=-1)


class CatalogServiceTests(TestCase):
    def setUp(self):
        self.product = Product.objects.create(name="Bat", sku="BAT-1", price="2500.00", stock=4)

    def test_find_by_id(self):
        found = CatalogService.find_by_id(str(self.product.id))
        self.assertEqual(found.price, Decimal("2500.00"))
        self.assertEqual(found.stock, 4)

    def test_find_by_id_unknown_and_malformed(self):
        with self.assertRaises(ProductNotFound):
            CatalogService.find_by_id(uuid.uuid4())
        with self.assertRaises(ProductNotFound):
            CatalogService.find_by_id("not-a-uuid")

    def test_in_bulk_skips_malformed_ids(self):
        found = CatalogService.in_bulk([str(self.product.id), "P1", None])
        self.assertEqual(list(found), [str(self.product.id)])


class ProductViewSetTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.cat = Category.objects.create(name="Cricket")
        self.active = Product.objects.create(
            name="Hard Ball", sku="HB-1", category=self.cat, price="900.00", stock=3,
        )
        self.inactive = Product.objects.create(
            name="Old Pads", sku="PAD-OLD", category=self.cat, price="100.00", is_active=False,
        )

    def test_public_list_only_active_products(self):
        resp = self.client.get(reverse("product-list"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        skus = [item["sku"] for item in resp.data["results"]]
        self.assertIn("HB-1", skus)
        self.assertNotIn("PAD-OLD", skus)

    def test_detail_exposes_price_and_stock(self):
        resp = self.client.get(reverse("product-detail", kwargs={"pk": str(self.active.id)}))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["price"], "900.00")
        self.assertEqual(resp.data["stock"], 3)
        self.assertEqual(resp.data["category_name"], "Cricket")


class ImportCatalogCommandTests(TestCase):
    def _csv(self, body):
        fd, path = tempfile.mkstemp(suffix=".csv")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(body)
        self.addCleanup(os.remove, path)
        return path

    def test_import_creates_products_with_ledgered_stock(self):
        path = self._csv(
            "sku,name,category,brand,price,stock\n"
            "BAT-EW,English Willow Bat,Cricket,CA,15000.00,5\n"
            ",missing sku,Cricket,CA,1.00,1\n"
        )
        call_command("import_catalog", path, stdout=io.StringIO())

        product = Product.objects.get(sku="BAT-EW")
        self.assertEqual(product.stock, 5)
        self.assertEqual(product.category.name, "Cricket")
        log = StockMovementLog.objects.get(product=product)
        self.assertEqual(log.quantity_change, 5)
        self.assertEqual(Product.objects.count(), 1)

    def test_reimport_moves_stock_by_delta(self):
        path = self._csv("sku,name,price,stock\nBALL,Ball,10.00,5\n")
        call_command("import_catalog", path, stdout=io.StringIO())

        path2 = self._csv("sku,name,price,stock\nBALL,Ball,12.00,2\n")
        call_command("import_catalog", path2, stdout=io.StringIO())

        product = Product.objects.get(sku="BALL")
        self.assertEqual(product.stock, 2)
        self.assertEqual(product.price, Decimal("12.00"))
        self.assertEqual(
            sorted(StockMovementLog.objects.filter(product=product).values_list("quantity_change", flat=True)),
            [-3, 5],
        )
