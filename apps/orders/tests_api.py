from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from apps.accounts.models import User
from apps.catalog.models import Product

from .models import Order, OrderStatus, PaymentStatus
from .services import OrderService
from .tests import checkout_payload


class CheckoutAPITests(APITestCase):

    def setUp(self):
        self.client = APIClient()
        self.p1 = Product.objects.create(name="P1", sku="P1", price="10.00", stock=5)
        self.url = reverse("checkout")

    def test_guest_checkout(self):
        resp = self.client.post(self.url, checkout_payload((self.p1, 2), orderId="cart-77"), format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data["success"])
        self.assertTrue(resp.data["orderNumber"].startswith("ORD_"))
        self.assertEqual(resp.data["total"], "70.00")
        self.assertEqual(resp.data["status"], "PENDING")
        self.assertFalse(resp.data["replayed"])

        order = Order.objects.get(pk=resp.data["orderId"])
        self.assertIsNone(order.user)
        self.assertEqual(order.client_reference, "cart-77")

    def test_resubmission_returns_the_same_order(self):
        first = self.client.post(self.url, checkout_payload((self.p1, 2), orderId="cart-1"), format="json")
        second = self.client.post(self.url, checkout_payload((self.p1, 2), orderId="cart-1"), format="json")

        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(first.data["orderNumber"], second.data["orderNumber"])
        self.assertTrue(second.data["replayed"])
        self.assertEqual(Order.objects.count(), 1)

    def test_idempotency_header(self):
        for _ in range(2):
            resp = self.client.post(
                self.url, checkout_payload((self.p1, 1)), format="json",
                HTTP_X_IDEMPOTENCY_KEY="hdr-1",
            )
            self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(Order.objects.get().client_reference, "hdr-1")

    def test_signed_in_customer_owns_the_order(self):
        user = User.objects.create_user(email="buyer@example.com", password="pass12345")
        self.client.force_authenticate(user)
        resp = self.client.post(self.url, checkout_payload((self.p1, 1)), format="json")
        self.assertEqual(Order.objects.get(pk=resp.data["orderId"]).user, user)

    def test_validation_errors(self):
        resp = self.client.post(
            self.url, checkout_payload((self.p1, 1), customerEmail="nope", customerName=""), format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["success"], False)
        self.assertEqual(resp.data["error"], "Validation failed")
        self.assertEqual(resp.data["details"], ["Customer name is required", "Invalid email format"])

    def test_absurd_quantity_is_a_bad_request(self):
        resp = self.client.post(self.url, checkout_payload((self.p1, 10 ** 30)), format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("Item 1: Quantity must be a positive whole number", resp.data["details"])
        self.assertFalse(Order.objects.exists())

    def test_overlong_idempotency_key_is_a_bad_request(self):
        resp = self.client.post(
            self.url, checkout_payload((self.p1, 1)), format="json",
            HTTP_X_IDEMPOTENCY_KEY="k" * 101,
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["details"], ["Order reference must be at most 100 characters"])

    def test_insufficient_stock(self):
        resp = self.client.post(self.url, checkout_payload((self.p1, 10)), format="json")
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["code"], "INSUFFICIENT_STOCK")
        self.assertIn("P1", resp.data["error"])
        self.assertEqual(resp.data["details"], [str(self.p1.id)])
        self.assertFalse(Order.objects.exists())

    def test_unknown_product(self):
        payload = checkout_payload((self.p1, 1))
        payload["items"][0]["productId"] = "00000000-0000-4000-8000-000000000000"
        resp = self.client.post(self.url, payload, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "PRODUCT_NOT_FOUND")

    def test_non_object_body(self):
        resp = self.client.post(self.url, [1, 2, 3], format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["details"], ["Request body must be a JSON object"])


class CustomerOrderAPITests(APITestCase):

    def setUp(self):
        self.client = APIClient()
        self.p1 = Product.objects.create(name="P1", sku="P1", price="10.00", stock=50)
        self.user = User.objects.create_user(email="sara@example.com", password="pass12345")
        self.other = User.objects.create_user(email="zain@example.com", password="pass12345")

        self.own, _ = OrderService.place_order(
            checkout_payload((self.p1, 1), customerEmail="sara@example.com"), user=self.user
        )
        self.foreign, _ = OrderService.place_order(
            checkout_payload((self.p1, 1), customerEmail="zain@example.com"), user=self.other
        )

    def test_history_requires_auth(self):
        resp = self.client.get(reverse("order-list"))
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_history_lists_own_orders_only(self):
        self.client.force_authenticate(self.user)
        resp = self.client.get(reverse("order-list"))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        numbers = [o["order_number"] for o in resp.data["results"]]
        self.assertEqual(numbers, [self.own.order_number])
        self.assertEqual(resp.data["pagination"]["total"], 1)

    def test_history_status_filter(self):
        self.client.force_authenticate(self.user)
        resp = self.client.get(reverse("order-list"), {"status": "shipped"})
        self.assertEqual(resp.data["results"], [])

    def test_detail_of_someone_elses_order_is_404(self):
        self.client.force_authenticate(self.user)
        resp = self.client.get(reverse("order-detail", kwargs={"pk": str(self.foreign.id)}))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

        resp = self.client.get(reverse("order-detail", kwargs={"pk": str(self.own.id)}))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["items"][0]["sku"], "P1")

    def test_link_endpoint(self):
        OrderService.place_order(checkout_payload((self.p1, 1), customerEmail="new@example.com"))
        newcomer = User.objects.create_user(email="new@example.com", password="pass12345")
        self.client.force_authenticate(newcomer)

        resp = self.client.post(reverse("order-link"))
        self.assertEqual(resp.data["linkedCount"], 1)
        resp = self.client.post(reverse("order-link"))
        self.assertEqual(resp.data["linkedCount"], 0)


class AdminOrderAPITests(APITestCase):

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_superuser(email="admin@example.com", password="pass12345")
        self.customer = User.objects.create_user(email="sara@example.com", password="pass12345")
        self.bat = Product.objects.create(name="English Willow Bat", sku="BAT-EW", price="10.00", stock=50)
        self.ball = Product.objects.create(name="Tape Ball", sku="BALL-T", price="2.00", stock=50)

        self.bat_order, _ = OrderService.place_order(
            checkout_payload((self.bat, 1), customerEmail="sara@example.com", customerName="Sara Ahmed"),
            user=self.customer,
        )
        self.ball_order, _ = OrderService.place_order(
            checkout_payload((self.ball, 2), customerEmail="guest@example.com", customerName="Guest Buyer")
        )
        self.client.force_authenticate(self.admin)
        self.list_url = reverse("admin-order-list")

    def _numbers(self, resp):
        return {o["order_number"] for o in resp.data["results"]}

    def test_customers_are_forbidden(self):
        self.client.force_authenticate(self.customer)
        self.assertEqual(self.client.get(self.list_url).status_code, status.HTTP_403_FORBIDDEN)

    def test_lists_everything_newest_first(self):
        resp = self.client.get(self.list_url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["pagination"]["total"], 2)
        self.assertEqual(resp.data["results"][0]["order_number"], self.ball_order.order_number)

    def test_filters(self):
        resp = self.client.get(self.list_url, {"userId": str(self.customer.id)})
        self.assertEqual(self._numbers(resp), {self.bat_order.order_number})

        resp = self.client.get(self.list_url, {"email": "GUEST@example.com"})
        self.assertEqual(self._numbers(resp), {self.ball_order.order_number})

        resp = self.client.get(self.list_url, {"status": "pending", "paymentStatus": "all"})
        self.assertEqual(len(resp.data["results"]), 2)

        tomorrow = (timezone.localdate() + timedelta(days=1)).isoformat()
        resp = self.client.get(self.list_url, {"startDate": tomorrow})
        self.assertEqual(resp.data["results"], [])

    def test_search_covers_items(self):
        resp = self.client.get(self.list_url, {"search": "willow"})
        self.assertEqual(self._numbers(resp), {self.bat_order.order_number})

        resp = self.client.get(self.list_url, {"search": "ball-t"})
        self.assertEqual(self._numbers(resp), {self.ball_order.order_number})

        resp = self.client.get(self.list_url, {"search": self.bat_order.order_number[-6:]})
        self.assertIn(self.bat_order.order_number, self._numbers(resp))

    def test_pagination_limit(self):
        resp = self.client.get(self.list_url, {"limit": 1, "page": 2})
        self.assertEqual(len(resp.data["results"]), 1)
        self.assertEqual(resp.data["pagination"]["pages"], 2)

    def test_update_status_and_tracking(self):
        url = reverse("admin-order-detail", kwargs={"pk": str(self.bat_order.id)})
        resp = self.client.patch(
            url, {"status": "SHIPPED", "paymentStatus": "PAID", "trackingNumber": "TCS-1"}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["status"], OrderStatus.SHIPPED)
        self.assertEqual(resp.data["payment_status"], PaymentStatus.PAID)
        self.assertEqual(resp.data["tracking_number"], "TCS-1")
        self.assertEqual(resp.data["payment"]["status"], PaymentStatus.PAID)

    def test_invalid_transition_payload(self):
        url = reverse("admin-order-detail", kwargs={"pk": str(self.bat_order.id)})
        self.client.put(url, {"status": "DELIVERED"}, format="json")

        resp = self.client.put(url, {"status": "CONFIRMED"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(resp.data["success"], False)
        self.assertEqual(resp.data["code"], "INVALID_TRANSITION")

    def test_unknown_status_and_order(self):
        url = reverse("admin-order-detail", kwargs={"pk": str(self.bat_order.id)})
        resp = self.client.put(url, {"status": "TELEPORTED"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

        missing = reverse("admin-order-detail", kwargs={"pk": "00000000-0000-4000-8000-000000000000"})
        resp = self.client.put(missing, {"status": "SHIPPED"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["code"], "ORDER_NOT_FOUND")

    def test_empty_update_is_rejected(self):
        url = reverse("admin-order-detail", kwargs={"pk": str(self.bat_order.id)})
        resp = self.client.patch(url, {}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
