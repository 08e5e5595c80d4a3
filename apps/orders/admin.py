from django.contrib import admin

from .models import Order, OrderItem, OrderTimeline, Payment


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('product', 'product_name', 'sku', 'unit_price', 'quantity', 'total_price')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class OrderTimelineInline(admin.TabularInline):
    model = OrderTimeline
    extra = 0
    readonly_fields = ('timestamp', 'status', 'note', 'created_by')

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class PaymentInline(admin.StackedInline):
    model = Payment
    extra = 0
    readonly_fields = ('amount', 'currency', 'method', 'status', 'transaction_id')
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Read-only view; status changes go through the API so the
    transition rules apply.
    """
    list_display = (
        'order_number',
        'customer_name',
        'customer_email',
        'status',
        'payment_status',
        'total',
        'created_at'
    )
    list_filter = ('status', 'payment_status', 'payment_method', 'created_at')
    search_fields = ('order_number', 'customer_name', 'customer_email', 'customer_phone')

    inlines = [OrderItemInline, PaymentInline, OrderTimelineInline]

    readonly_fields = (
        'id',
        'order_number',
        'client_reference',
        'user',
        'status',
        'payment_status',
        'payment_method',
        'subtotal',
        'shipping_fee',
        'total',
        'created_at',
        'updated_at',
        'estimated_delivery',
        'delivered_at',
        'cancelled_at',
    )

    fieldsets = (
        ('Order Details', {
            'fields': ('order_number', 'id', 'status', 'user', 'client_reference')
        }),
        ('Customer', {
            'fields': ('customer_name', 'customer_email', 'customer_phone')
        }),
        ('Shipping', {
            'fields': (
                'shipping_address', 'shipping_city', 'shipping_state',
                'shipping_zip_code', 'shipping_country', 'tracking_number', 'notes',
            )
        }),
        ('Financials', {
            'fields': ('subtotal', 'shipping_fee', 'total', 'payment_method', 'payment_status')
        }),
        ('System Data', {
            'fields': ('created_at', 'updated_at', 'estimated_delivery', 'delivered_at', 'cancelled_at'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        return False


@admin.register(OrderItem)
class OrderItemAdmin(admin.ModelAdmin):
    list_display = ('order', 'sku', 'product_name', 'quantity', 'total_price')
    search_fields = ('order__order_number', 'sku', 'product_name')
