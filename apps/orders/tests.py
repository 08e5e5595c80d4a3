# apps/orders/tests.py
from decimal import Decimal

from django.test import TestCase, override_settings

from apps.catalog.models import Product
from apps.utils.exceptions import InsufficientStock, ProductNotFound, ValidationFailed

from .models import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, Order, OrderStatus, PaymentMethod
from .validators import OrderValidator


def checkout_payload(*lines, total=None, **overrides):
    """
    A well-formed checkout body. `lines` are (product, quantity) pairs;
    `total` defaults to the correct COD total.
    """
    # Products created with string prices keep them as strings until refreshed
    priced = [(product, Decimal(str(product.price)), qty) for product, qty in lines]
    items = [
        {
            "productId": str(product.id),
            "quantity": qty,
            "price": str(price),
            "total": str(price * qty),
        }
        for product, price, qty in priced
    ]
    if total is None:
        total = sum((price * qty for _, price, qty in priced), Decimal("0")) + Decimal("50.00")
    payload = {
        "customerName": "Ayesha Khan",
        "customerEmail": "Ayesha@Example.com",
        "customerPhone": "0300-1234567",
        "shippingAddress": "House 12, Street 4, F-7/2",
        "shippingCity": "Islamabad",
        "shippingState": "ICT",
        "shippingZipCode": "44000",
        "paymentMethod": "cash-on-delivery",
        "items": items,
        "total": str(total),
    }
    payload.update(overrides)
    return payload


class TransitionTableTests(TestCase):

    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATUSES:
            self.assertEqual(ALLOWED_TRANSITIONS[state], frozenset())

    def test_every_non_terminal_state_can_cancel(self):
        for state, targets in ALLOWED_TRANSITIONS.items():
            if state not in TERMINAL_STATUSES:
                self.assertIn(OrderStatus.CANCELLED, targets)

    def test_no_self_loops_or_backwards_moves(self):
        order = [
            OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING,
            OrderStatus.SHIPPED, OrderStatus.DELIVERED,
        ]
        for rank, state in enumerate(order):
            for earlier in order[:rank + 1]:
                self.assertNotIn(earlier, ALLOWED_TRANSITIONS[state])

    def test_can_transition_to(self):
        order = Order(status=OrderStatus.SHIPPED)
        self.assertTrue(order.can_transition_to(OrderStatus.DELIVERED))
        self.assertFalse(order.can_transition_to(OrderStatus.CONFIRMED))
        self.assertFalse(order.is_terminal)


class OrderValidatorTests(TestCase):

    def setUp(self):
        self.bat = Product.objects.create(name="Bat", sku="BAT", price="10.00", stock=5)
        self.ball = Product.objects.create(name="Ball", sku="BALL", price="2.50", stock=3)

    def test_valid_payload_produces_normalized_draft(self):
        draft = OrderValidator.validate(
            checkout_payload((self.bat, 2), (self.ball, 1)), client_reference="tok-1"
        )
        self.assertEqual(draft.customer_email, "ayesha@example.com")
        self.assertEqual(draft.payment_method, PaymentMethod.COD)
        self.assertEqual(draft.subtotal, Decimal("22.50"))
        self.assertEqual(draft.shipping_fee, Decimal("50.00"))
        self.assertEqual(draft.total, Decimal("72.50"))
        self.assertEqual(draft.shipping_country, "Pakistan")
        self.assertEqual(draft.client_reference, "tok-1")
        self.assertEqual([line.quantity for line in draft.lines], [2, 1])

    def test_card_has_no_shipping_fee(self):
        draft = OrderValidator.validate(
            checkout_payload((self.bat, 1), paymentMethod="CARD", total="10.00")
        )
        self.assertEqual(draft.shipping_fee, Decimal("0.00"))
        self.assertEqual(draft.total, Decimal("10.00"))

    def test_total_within_tolerance_is_accepted(self):
        draft = OrderValidator.validate(checkout_payload((self.bat, 1), total="60.005"))
        self.assertEqual(draft.total, Decimal("60.00"))

    def test_collects_every_problem(self):
        payload = checkout_payload(
            (self.bat, 1),
            customerName="",
            customerEmail="not-an-email",
            customerPhone="12",
            shippingCity="  ",
            paymentMethod="bitcoin",
        )
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(payload)

        details = ctx.exception.details
        self.assertIn("Customer name is required", details)
        self.assertIn("Invalid email format", details)
        self.assertIn("Phone number too short (minimum 7 digits)", details)
        self.assertIn("Shipping city is required", details)
        self.assertIn("Unsupported payment method: bitcoin", details)
        self.assertEqual(len(details), 5)

    def test_item_problems_are_numbered(self):
        payload = checkout_payload(
            (self.bat, 1),
            items=[
                {"productId": "", "quantity": 1, "price": "10.00"},
                {"productId": str(self.bat.id), "quantity": 0, "price": "10.00"},
                {"productId": str(self.bat.id), "quantity": 1, "price": "-1"},
                {"productId": str(self.bat.id), "quantity": 1.5, "price": "10.00"},
            ],
        )
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(payload)
        self.assertEqual(ctx.exception.details, [
            "Item 1: Product ID is required",
            "Item 2: Quantity must be a positive whole number",
            "Item 3: Price must be a positive number",
            "Item 4: Quantity must be a positive whole number",
        ])

    def test_empty_cart(self):
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(checkout_payload(items=[], total="50.00"))
        self.assertIn("Order must contain at least one item", ctx.exception.details)

    def test_total_mismatch(self):
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(checkout_payload((self.bat, 2), total="20.00"))
        self.assertEqual(
            ctx.exception.details, ["Order total mismatch: expected 70.00, received 20.00"]
        )

    def test_missing_total(self):
        payload = checkout_payload((self.bat, 1))
        del payload["total"]
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(payload)
        self.assertIn("Order total is required and must be a number", ctx.exception.details)

    def test_stale_client_price_is_rejected(self):
        payload = checkout_payload((self.bat, 1))
        payload["items"][0]["price"] = "8.00"
        payload["items"][0]["total"] = "8.00"
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(payload)
        self.assertIn('Item 1: Price for "Bat" has changed (now 10.00, cart has 8.00)', ctx.exception.details)

    def test_inactive_product(self):
        Product.objects.filter(pk=self.ball.pk).update(is_active=False)
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(checkout_payload((self.ball, 1)))
        self.assertEqual(ctx.exception.details, ['Item 1: Product "Ball" is no longer available'])

    def test_unknown_product(self):
        payload = checkout_payload((self.bat, 1))
        payload["items"][0]["productId"] = "7c1e2f2a-0000-4000-8000-000000000000"
        with self.assertRaises(ProductNotFound) as ctx:
            OrderValidator.validate(payload)
        self.assertEqual(ctx.exception.product_id, "7c1e2f2a-0000-4000-8000-000000000000")

    def test_quantity_above_stock(self):
        with self.assertRaises(InsufficientStock) as ctx:
            OrderValidator.validate(checkout_payload((self.bat, 10)))
        self.assertEqual(ctx.exception.product, self.bat)
        self.assertEqual((ctx.exception.requested, ctx.exception.available), (10, 5))

    def test_repeated_product_lines_are_summed_for_stock(self):
        with self.assertRaises(InsufficientStock) as ctx:
            OrderValidator.validate(checkout_payload((self.ball, 2), (self.ball, 2)))
        self.assertEqual(ctx.exception.requested, 4)

    @override_settings(COD_SHIPPING_FEE=Decimal("0"), SHIPPING_DEFAULT_COUNTRY="PK")
    def test_settings_drive_fee_and_country(self):
        draft = OrderValidator.validate(checkout_payload((self.bat, 1), total="10.00"))
        self.assertEqual(draft.shipping_fee, Decimal("0.00"))
        self.assertEqual(draft.shipping_country, "PK")

    def test_amounts_too_large_to_store_are_field_problems(self):
        payload = checkout_payload((self.bat, 1), total="1e400")
        payload["items"][0]["price"] = "1e30"
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(payload)
        self.assertIn("Item 1: Price must be a positive number", ctx.exception.details)
        self.assertIn("Order total is required and must be a number", ctx.exception.details)

    def test_quantity_above_column_limit(self):
        for quantity in (10 ** 30, "9" * 40, 1e30):
            payload = checkout_payload((self.bat, 1))
            payload["items"][0]["quantity"] = quantity
            with self.assertRaises(ValidationFailed) as ctx:
                OrderValidator.validate(payload)
            self.assertIn("Item 1: Quantity must be a positive whole number", ctx.exception.details)

    def test_text_longer_than_its_column(self):
        payload = checkout_payload(
            (self.bat, 1),
            customerPhone="+92 (300) - 123 - 4567",
            shippingCity="x" * 101,
            shippingZipCode="4" * 21,
        )
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(payload)
        self.assertEqual(ctx.exception.details, [
            "Phone number must be at most 20 characters",
            "Shipping city must be at most 100 characters",
            "Zip code must be at most 20 characters",
        ])

    def test_reference_longer_than_its_column(self):
        with self.assertRaises(ValidationFailed) as ctx:
            OrderValidator.validate(checkout_payload((self.bat, 1)), client_reference="r" * 101)
        self.assertEqual(ctx.exception.details, ["Order reference must be at most 100 characters"])

    def test_product_id_in_any_uuid_spelling(self):
        for spelling in (self.bat.id.hex, str(self.bat.id).upper(), "{%s}" % self.bat.id):
            payload = checkout_payload((self.bat, 1))
            payload["items"][0]["productId"] = spelling
            draft = OrderValidator.validate(payload)
            self.assertEqual(draft.lines[0].product, self.bat)

    def test_body_must_be_an_object(self):
        with self.assertRaises(ValidationFailed):
            OrderValidator.validate(["not", "a", "dict"])
