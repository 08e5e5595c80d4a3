# apps/utils/views.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import AllowAny
from django.conf import settings


class ServerInfoView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({
            "app_name": settings.PROJECT_NAME,
            "version": "1.0.0",
            "debug": settings.DEBUG,
        })


class GlobalConfigView(APIView):
    """
    Checkout UI reads fees and currency from here instead of hardcoding them.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({
            "cod_shipping_fee": str(settings.COD_SHIPPING_FEE),
            "currency": settings.PAYMENT_CURRENCY,
            "default_country": settings.SHIPPING_DEFAULT_COUNTRY,
        })
