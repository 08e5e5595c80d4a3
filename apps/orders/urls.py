from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import AdminOrderViewSet, CheckoutView, LinkGuestOrdersView, OrderViewSet

router = SimpleRouter()
router.register(r'admin/orders', AdminOrderViewSet, basename='admin-order')
router.register(r'', OrderViewSet, basename='order')

urlpatterns = [
    path('checkout/', CheckoutView.as_view(), name='checkout'),
    path('link/', LinkGuestOrdersView.as_view(), name='order-link'),
    path('', include(router.urls)),
]
