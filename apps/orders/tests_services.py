from decimal import Decimal
from unittest import mock

from django.db import OperationalError
from django.test import TestCase, override_settings

from apps.accounts.models import User
from apps.catalog.models import Product
from apps.inventory.models import StockMovementLog
from apps.utils.exceptions import (
    InsufficientStock, InvalidTransition, OrderNotFound, PersistenceFailed, RequestTimeout,
    ValidationFailed,
)

from .models import Order, OrderItem, OrderStatus, OrderTimeline, Payment, PaymentStatus
from .services import OrderService, OrderStatusMachine, OrderWriter
from .signals import order_created, order_status_changed
from .tests import checkout_payload
from .validators import OrderValidator


class OrderWriterTests(TestCase):

    def setUp(self):
        self.p1 = Product.objects.create(name="P1", sku="P1", price="10.00", stock=5)

    def test_happy_path(self):
        order, created = OrderService.place_order(checkout_payload((self.p1, 2)))

        self.assertTrue(created)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 3)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.subtotal, Decimal("20.00"))
        self.assertEqual(order.total, Decimal("70.00"))
        self.assertRegex(order.order_number, r"^ORD_\d{13}_[0-9A-Z]{11}$")
        self.assertEqual(order.customer_email, "ayesha@example.com")
        self.assertAlmostEqual(
            (order.estimated_delivery - order.created_at).total_seconds(), 3 * 86400, delta=60
        )

        item = OrderItem.objects.get(order=order)
        self.assertEqual((item.product_name, item.sku, item.quantity), ("P1", "P1", 2))
        self.assertEqual(item.total_price, Decimal("20.00"))

        payment = Payment.objects.get(order=order)
        self.assertEqual(payment.amount, Decimal("70.00"))
        self.assertEqual(payment.currency, "PKR")

        self.assertEqual(OrderTimeline.objects.get(order=order).status, OrderStatus.PENDING)
        log = StockMovementLog.objects.get(reference=order.order_number)
        self.assertEqual(log.quantity_change, -2)

    def test_insufficient_stock_writes_nothing(self):
        with self.assertRaises(InsufficientStock) as ctx:
            OrderService.place_order(checkout_payload((self.p1, 10)))

        self.assertIn('"P1"', ctx.exception.message)
        self.assertFalse(Order.objects.exists())
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 5)

    def test_stock_taken_between_validation_and_write(self):
        draft = OrderValidator.validate(checkout_payload((self.p1, 4)))
        # Another checkout wins the race after validation
        Product.objects.filter(pk=self.p1.pk).update(stock=1)

        with self.assertRaises(InsufficientStock):
            OrderWriter.create(draft)

        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())
        self.assertFalse(Payment.objects.exists())
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 1)

    def test_same_token_creates_one_order(self):
        first, created = OrderService.place_order(checkout_payload((self.p1, 2)), client_reference="tok-1")
        second, replayed_created = OrderService.place_order(
            checkout_payload((self.p1, 2)), client_reference="tok-1"
        )

        self.assertTrue(created)
        self.assertFalse(replayed_created)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(Order.objects.count(), 1)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 3)

    def test_replay_skips_validation(self):
        OrderService.place_order(checkout_payload((self.p1, 5)), client_reference="tok-2")
        # Stock is now 0, the retry must still get its order back
        order, created = OrderService.place_order(checkout_payload((self.p1, 5)), client_reference="tok-2")
        self.assertFalse(created)
        self.assertEqual(order.items.get().quantity, 5)

    def test_guest_order_attached_to_existing_account(self):
        user = User.objects.create_user(email="ayesha@example.com", password="pass12345")
        order, _ = OrderService.place_order(checkout_payload((self.p1, 1)))
        self.assertEqual(order.user, user)

    def test_order_number_collision_is_retried(self):
        taken, _ = OrderService.place_order(checkout_payload((self.p1, 1)))
        numbers = iter([taken.order_number, "ORD_1700000000000_FRESHNUMBER"])

        with mock.patch("apps.orders.services.generate_order_number", side_effect=lambda: next(numbers)):
            order, created = OrderService.place_order(checkout_payload((self.p1, 1)))

        self.assertTrue(created)
        self.assertEqual(order.order_number, "ORD_1700000000000_FRESHNUMBER")
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 3)

    @override_settings(ORDER_NUMBER_MAX_ATTEMPTS=2)
    def test_gives_up_after_bounded_collisions(self):
        taken, _ = OrderService.place_order(checkout_payload((self.p1, 1)))

        with mock.patch("apps.orders.services.generate_order_number", return_value=taken.order_number):
            with self.assertRaises(PersistenceFailed):
                OrderService.place_order(checkout_payload((self.p1, 1)))

        self.assertEqual(Order.objects.count(), 1)

    def test_database_error_is_wrapped(self):
        with mock.patch.object(Payment.objects, "create", side_effect=OperationalError("disk full")):
            with self.assertRaises(PersistenceFailed) as ctx:
                OrderService.place_order(checkout_payload((self.p1, 1)))

        self.assertEqual(ctx.exception.code, "ORDER_CREATION_FAILED")
        self.assertFalse(Order.objects.exists())
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 5)

    def test_statement_timeout_is_retryable(self):
        error = OperationalError("canceling statement due to statement timeout")
        with mock.patch.object(Payment.objects, "create", side_effect=error):
            with self.assertRaises(RequestTimeout):
                OrderService.place_order(checkout_payload((self.p1, 1)))
        self.assertFalse(Order.objects.exists())

    def test_order_created_signal_fires_on_commit(self):
        received = []

        def handler(sender, order, **kwargs):
            received.append(order.order_number)

        order_created.connect(handler)
        self.addCleanup(order_created.disconnect, handler)

        with self.captureOnCommitCallbacks(execute=True):
            order, _ = OrderService.place_order(checkout_payload((self.p1, 1)))

        self.assertEqual(received, [order.order_number])


class OrderStatusMachineTests(TestCase):

    def setUp(self):
        self.p1 = Product.objects.create(name="P1", sku="P1", price="10.00", stock=5)
        self.order, _ = OrderService.place_order(checkout_payload((self.p1, 2)))

    def test_forward_path_and_terminal_state(self):
        for target in ("CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED"):
            OrderStatusMachine.transition(self.order.id, target)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(self.order.delivered_at)

        with self.assertRaises(InvalidTransition):
            OrderStatusMachine.transition(self.order.id, "CONFIRMED")

    def test_shipped_to_delivered_then_back_is_rejected(self):
        OrderStatusMachine.transition(self.order.id, OrderStatus.SHIPPED)
        order = OrderStatusMachine.transition(self.order.id, OrderStatus.DELIVERED)
        self.assertEqual(order.status, OrderStatus.DELIVERED)

        with self.assertRaises(InvalidTransition) as ctx:
            OrderStatusMachine.transition(self.order.id, OrderStatus.CONFIRMED)
        self.assertEqual(ctx.exception.code, "INVALID_TRANSITION")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)

    def test_skipping_forward_is_allowed(self):
        order = OrderStatusMachine.transition(self.order.id, "delivered")
        self.assertEqual(order.status, OrderStatus.DELIVERED)

    def test_same_status_is_rejected(self):
        with self.assertRaises(InvalidTransition):
            OrderStatusMachine.transition(self.order.id, OrderStatus.PENDING)

    def test_unknown_status_and_order(self):
        with self.assertRaises(ValidationFailed):
            OrderStatusMachine.transition(self.order.id, "LOST_IN_TRANSIT")
        with self.assertRaises(OrderNotFound):
            OrderStatusMachine.transition("6f1c1c1e-0000-4000-8000-000000000000", "CONFIRMED")
        with self.assertRaises(OrderNotFound):
            OrderStatusMachine.transition("ORD_1", "CONFIRMED")

    def test_cancel_does_not_restock_by_default(self):
        order = OrderStatusMachine.transition(self.order.id, OrderStatus.CANCELLED, note="Customer request")
        self.assertIsNotNone(order.cancelled_at)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 3)
        self.assertEqual(
            OrderTimeline.objects.get(order=order, status=OrderStatus.CANCELLED).note, "Customer request"
        )

        with self.assertRaises(InvalidTransition):
            OrderStatusMachine.transition(self.order.id, OrderStatus.PROCESSING)

    @override_settings(ORDER_RESTOCK_ON_CANCEL=True)
    def test_cancel_restocks_when_enabled(self):
        OrderStatusMachine.transition(self.order.id, OrderStatus.CANCELLED)
        self.p1.refresh_from_db()
        self.assertEqual(self.p1.stock, 5)
        self.assertTrue(
            StockMovementLog.objects.filter(
                reference=f"CANCEL-{self.order.order_number}",
                movement_type=StockMovementLog.MovementType.RESTOCK,
            ).exists()
        )

    def test_status_change_signal(self):
        received = []

        def handler(sender, order, old_status, new_status, **kwargs):
            received.append((old_status, new_status))

        order_status_changed.connect(handler)
        self.addCleanup(order_status_changed.disconnect, handler)

        with self.captureOnCommitCallbacks(execute=True):
            OrderStatusMachine.transition(self.order.id, OrderStatus.CONFIRMED)

        self.assertEqual(received, [(OrderStatus.PENDING, OrderStatus.CONFIRMED)])

    def test_payment_status_syncs_payment_record(self):
        OrderStatusMachine.update_payment_status(self.order.id, "paid", transaction_id="TX-9")
        payment = Payment.objects.get(order=self.order)
        self.assertEqual(payment.status, PaymentStatus.PAID)
        self.assertEqual(payment.transaction_id, "TX-9")

    def test_cancelled_order_only_accepts_refund(self):
        OrderStatusMachine.transition(self.order.id, OrderStatus.CANCELLED)
        with self.assertRaises(InvalidTransition):
            OrderStatusMachine.update_payment_status(self.order.id, PaymentStatus.PAID)
        order = OrderStatusMachine.update_payment_status(self.order.id, PaymentStatus.REFUNDED)
        self.assertEqual(order.payment_status, PaymentStatus.REFUNDED)

    def test_fulfilment_fields(self):
        order = OrderStatusMachine.update_fulfilment(self.order.id, tracking_number=" TCS-123 ", notes="Fragile")
        self.assertEqual((order.tracking_number, order.notes), ("TCS-123", "Fragile"))
        self.assertEqual(order.status, OrderStatus.PENDING)

    def test_admin_update_is_all_or_nothing(self):
        # The status change succeeds, the payment change then fails on the cancelled order
        with self.assertRaises(InvalidTransition):
            OrderService.admin_update(
                self.order.id, {"status": "CANCELLED", "payment_status": "PAID"}
            )
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PENDING)
        self.assertEqual(self.order.payment_status, PaymentStatus.PENDING)


class OrderHistoryTests(TestCase):

    def setUp(self):
        self.p1 = Product.objects.create(name="P1", sku="P1", price="10.00", stock=50)

    def _guest_order(self, email):
        order, _ = OrderService.place_order(checkout_payload((self.p1, 1), customerEmail=email))
        return order

    def test_linking_is_idempotent(self):
        self._guest_order("sara@example.com")
        self._guest_order("SARA@example.com")
        user = User.objects.create_user(email="sara@example.com", password="pass12345")

        self.assertEqual(OrderStatusMachine.link_guest_orders(user), 2)
        self.assertEqual(OrderStatusMachine.link_guest_orders(user), 0)
        self.assertEqual(Order.objects.filter(user=user).count(), 2)

    def test_orders_of_another_user_are_never_reassigned(self):
        owner = User.objects.create_user(email="owner@example.com", password="pass12345")
        order, _ = OrderService.place_order(
            checkout_payload((self.p1, 1), customerEmail="shared@example.com"), user=owner
        )
        other = User.objects.create_user(email="shared@example.com", password="pass12345")

        self.assertEqual(OrderStatusMachine.link_guest_orders(other), 0)
        order.refresh_from_db()
        self.assertEqual(order.user, owner)

    def test_history_by_id_falls_back_to_email(self):
        guest = self._guest_order("noor@example.com")

        by_email = OrderStatusMachine.get_orders_for_user(user_id=None, email="NOOR@example.com")
        self.assertEqual(list(by_email), [guest])

        user = User.objects.create_user(email="noor@example.com", password="pass12345")
        history = OrderStatusMachine.get_orders_for_user(user=user)
        self.assertEqual(list(history), [guest])
        guest.refresh_from_db()
        self.assertEqual(guest.user, user)

        # Once linked the id lookup covers everything the email lookup does
        by_id = set(OrderStatusMachine.get_orders_for_user(user_id=user.pk))
        self.assertTrue(set(OrderStatusMachine.get_orders_for_user(email=user.email)) >= by_id)

    def test_no_identity_means_no_orders(self):
        self._guest_order("noor@example.com")
        self.assertEqual(list(OrderStatusMachine.get_orders_for_user()), [])
