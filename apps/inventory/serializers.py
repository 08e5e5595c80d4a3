from rest_framework import serializers
from .models import StockMovementLog


class StockMovementLogSerializer(serializers.ModelSerializer):
    sku = serializers.CharField(source='product.sku', read_only=True)
    performed_by = serializers.CharField(source='created_by.email', read_only=True, default=None)

    class Meta:
        model = StockMovementLog
        fields = [
            'id', 'created_at', 'movement_type', 'product', 'sku',
            'quantity_change', 'balance_after',
            'reference', 'performed_by'
        ]


class StockAdjustmentSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    delta_quantity = serializers.IntegerField()
    reason = serializers.CharField(max_length=80)

    def validate_delta_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError("Change cannot be zero.")
        return value
