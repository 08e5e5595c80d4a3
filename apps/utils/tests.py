# apps/utils/tests.py
import json
import logging
import re

from django.test import TestCase, SimpleTestCase
from django.urls import reverse

from .exceptions import (
    InsufficientStock, ValidationFailed, custom_exception_handler,
)
from .logging import JSONFormatter
from .utils import generate_order_number, money
from .validators import phone_error, email_error


class ValidatorTests(SimpleTestCase):
    def test_pakistani_numbers_in_all_three_shapes(self):
        self.assertIsNone(phone_error("+92-300-1234567"))
        self.assertIsNone(phone_error("0345 1234567"))
        self.assertIsNone(phone_error("3211234567"))

    def test_pakistani_number_with_wrong_length(self):
        self.assertIn("exactly 11 digits", phone_error("0300-123456"))
        self.assertIn("exactly 12 digits", phone_error("+92-300-123456"))

    def test_pakistani_number_with_unknown_operator_prefix(self):
        self.assertIn("valid Pakistani", phone_error("390-1234567"))

    def test_international_fallback(self):
        self.assertIsNone(phone_error("+1-555-123-4567"))
        self.assertIsNone(phone_error("+44 20 7946 0958"))
        self.assertIn("too short", phone_error("123"))
        self.assertIn("too long", phone_error("+1 5551234567 5551234"))

    def test_blank_phone(self):
        self.assertEqual(phone_error("   "), "Phone number is required")

    def test_email(self):
        self.assertIsNone(email_error("buyer@example.com"))
        self.assertEqual(email_error("buyer@"), "Invalid email format")
        self.assertEqual(email_error(""), "Customer email is required")


class UtilTests(SimpleTestCase):
    def test_order_number_format(self):
        number = generate_order_number()
        self.assertRegex(number, r"^ORD_\d{13}_[0-9A-Z]{11}$")
        self.assertEqual(number, number.upper())

    def test_order_numbers_differ(self):
        self.assertEqual(len({generate_order_number() for _ in range(200)}), 200)

    def test_money_quantizes_floats_via_str(self):
        self.assertEqual(str(money(10.1)), "10.10")
        self.assertEqual(str(money("19.999")), "20.00")


class ExceptionHandlerTests(SimpleTestCase):
    def test_domain_error_becomes_payload(self):
        resp = custom_exception_handler(ValidationFailed(["a", "b"]), {})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data["details"], ["a", "b"])
        self.assertFalse(resp.data["success"])

    def test_stock_conflict_is_409(self):
        resp = custom_exception_handler(InsufficientStock("P1", 10, 5), {})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.data["code"], "INSUFFICIENT_STOCK")
        self.assertEqual(resp.data["details"], ["P1"])

    def test_unknown_error_becomes_500(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            resp = custom_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.data["code"], "server_error")


class JSONFormatterTests(SimpleTestCase):
    def test_scrubs_sensitive_keys_and_keeps_context(self):
        record = logging.LogRecord(
            "apps.orders", logging.INFO, __file__, 1,
            {"customer_phone": "03001234567", "items": [{"password": "x", "qty": 1}]},
            None, None,
        )
        record.order_number = "ORD_1_ABC"
        out = json.loads(JSONFormatter().format(record))
        self.assertNotIn("03001234567", out["msg"])
        self.assertNotIn("'x'", out["msg"])
        self.assertEqual(out["order_number"], "ORD_1_ABC")
        self.assertTrue(re.match(r"^\d{4}-\d{2}-\d{2}T", out["ts"]))


class HealthCheckTests(TestCase):
    def test_health_ok(self):
        resp = self.client.get(reverse("health-check"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["components"]["db"], "ok")

    def test_global_config_exposes_fee(self):
        resp = self.client.get(reverse("global-config"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["cod_shipping_fee"], "50.00")

    def test_server_info(self):
        resp = self.client.get(reverse("server-info"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["version"], "1.0.0")
