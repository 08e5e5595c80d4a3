from rest_framework import serializers

from .models import Order, OrderItem, OrderTimeline, Payment


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['product', 'product_name', 'sku', 'quantity', 'unit_price', 'total_price']


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ['amount', 'currency', 'method', 'status', 'transaction_id']


class OrderTimelineSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderTimeline
        fields = ['status', 'note', 'timestamp']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'status', 'status_display',
            'customer_name', 'customer_email', 'customer_phone',
            'shipping_address', 'shipping_city', 'shipping_state',
            'shipping_zip_code', 'shipping_country',
            'subtotal', 'shipping_fee', 'total',
            'payment_method', 'payment_status',
            'tracking_number', 'estimated_delivery', 'delivered_at', 'cancelled_at',
            'created_at', 'items',
        ]


class AdminOrderSerializer(OrderSerializer):
    payment = PaymentSerializer(read_only=True)
    timeline = OrderTimelineSerializer(many=True, read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + [
            'user', 'client_reference', 'notes', 'updated_at', 'payment', 'timeline',
        ]


class AdminOrderUpdateSerializer(serializers.Serializer):
    """
    Status values are parsed by the status machine, which knows the enum.
    """
    status = serializers.CharField(required=False)
    paymentStatus = serializers.CharField(required=False, source='payment_status')
    trackingNumber = serializers.CharField(
        required=False, allow_blank=True, max_length=100, source='tracking_number'
    )
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError(
                "Provide at least one of status, paymentStatus, trackingNumber, notes."
            )
        return attrs


def checkout_response(order):
    return {
        "success": True,
        "orderId": str(order.id),
        "orderNumber": order.order_number,
        "total": str(order.total),
        "status": order.status,
        "paymentStatus": order.payment_status,
        "estimatedDelivery": order.estimated_delivery.isoformat() if order.estimated_delivery else None,
    }
