from rest_framework import views, status
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from apps.accounts.permissions import IsAdminRole
from .models import StockMovementLog
from .serializers import StockMovementLogSerializer, StockAdjustmentSerializer
from .services import InventoryService


class InventoryHistoryListAPIView(views.APIView):
    permission_classes = [IsAuthenticated, IsAdminRole]

    def get(self, request):
        qs = StockMovementLog.objects.select_related('product', 'created_by').all()
        # Filters
        if sku := request.query_params.get('sku'):
            qs = qs.filter(product__sku=sku)
        if reference := request.query_params.get('reference'):
            qs = qs.filter(reference=reference)

        qs = qs[:100]  # Limit for performance
        data = StockMovementLogSerializer(qs, many=True).data
        return Response(data)


class AdjustStockAPIView(views.APIView):
    """
    Manual override for store admins (goods received, cycle counts).
    """
    permission_classes = [IsAuthenticated, IsAdminRole]

    def post(self, request):
        serializer = StockAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        d = serializer.validated_data
        product = InventoryService.manual_adjustment(
            product_id=d['product_id'],
            delta_qty=d['delta_quantity'],
            user=request.user,
            reason=d['reason']
        )
        return Response(
            {"status": "Adjustment recorded", "product_id": str(product.id), "stock": product.stock},
            status=status.HTTP_200_OK
        )
