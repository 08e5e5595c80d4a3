import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.permissions import IsAdminRole
from apps.utils.throttle import CheckoutRateThrottle
from .filters import CustomerOrderFilter, OrderFilter
from .models import Order
from .serializers import (
    AdminOrderSerializer, AdminOrderUpdateSerializer, OrderSerializer, checkout_response,
)
from .services import OrderService, OrderStatusMachine

logger = logging.getLogger(__name__)

UUID_PATTERN = '[0-9a-fA-F-]{36}'


class CheckoutView(APIView):
    """
    Guest or signed-in checkout.

    The correlation token is `orderId` in the body or the
    X-Idempotency-Key header; resubmitting it returns the first order.
    """
    permission_classes = [AllowAny]
    throttle_classes = [CheckoutRateThrottle]

    def post(self, request):
        data = request.data
        reference = None
        if isinstance(data, dict):
            reference = data.get('orderId')
        reference = reference or request.headers.get('X-Idempotency-Key')
        user = request.user if request.user.is_authenticated else None

        order, created = OrderService.place_order(data, user=user, client_reference=reference)
        body = checkout_response(order)
        body['replayed'] = not created
        return Response(body, status=status.HTTP_200_OK)


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    The signed-in customer's order history. Guest orders placed with the
    account email are linked on first read.
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_class = CustomerOrderFilter
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):
        return OrderStatusMachine.get_orders_for_user(user=self.request.user).order_by('-created_at')


class LinkGuestOrdersView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        linked = OrderStatusMachine.link_guest_orders(request.user)
        return Response({"success": True, "linkedCount": linked})


class AdminOrderViewSet(viewsets.ReadOnlyModelViewSet):
    permission_classes = [IsAuthenticated, IsAdminRole]
    serializer_class = AdminOrderSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_class = OrderFilter
    ordering_fields = ['created_at', 'total', 'status']
    ordering = ['-created_at']
    lookup_value_regex = UUID_PATTERN

    def get_queryset(self):
        return (
            Order.objects
            .select_related('user', 'payment')
            .prefetch_related('items', 'timeline')
        )

    def update(self, request, pk=None, partial=False):
        serializer = AdminOrderUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = OrderService.admin_update(pk, serializer.validated_data, actor=request.user)
        order = self.get_queryset().get(pk=order.pk)
        return Response(AdminOrderSerializer(order).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)
