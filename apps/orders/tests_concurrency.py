import unittest
from concurrent.futures import ThreadPoolExecutor

from django.db import connection, connections
from django.test import TransactionTestCase

from apps.catalog.models import Product
from apps.utils.exceptions import InsufficientStock

from .models import Order
from .services import OrderService
from .tests import checkout_payload


@unittest.skipUnless(connection.vendor == "postgresql", "needs real row locking (PostgreSQL)")
class ConcurrentCheckoutTests(TransactionTestCase):

    def setUp(self):
        self.product = Product.objects.create(name="Last Bat", sku="BAT-1", price="10.00", stock=3)

    def _checkout(self, reference):
        try:
            OrderService.place_order(checkout_payload((self.product, 1)), client_reference=reference)
            return "ok"
        except InsufficientStock:
            return "sold_out"
        finally:
            connections.close_all()

    def test_stock_is_never_oversold(self):
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(self._checkout, [f"race-{i}" for i in range(8)]))

        self.assertEqual(results.count("ok"), 3)
        self.assertEqual(results.count("sold_out"), 5)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 0)
        self.assertEqual(Order.objects.count(), 3)

    def test_duplicate_submissions_create_one_order(self):
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(self._checkout, ["same-token"] * 4))

        self.assertEqual(results, ["ok"] * 4)
        self.assertEqual(Order.objects.count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 2)
