from decimal import Decimal

from rest_framework import serializers
from .models import Sale, SaleItem


class SaleItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = SaleItem
        fields = ['id', 'product', 'product_ref', 'name', 'unit', 'unit_price', 'quantity', 'line_total']


class SaleSerializer(serializers.ModelSerializer):
    items = SaleItemSerializer(many=True, read_only=True)
    stock_synced = serializers.SerializerMethodField()

    class Meta:
        model = Sale
        fields = [
            'id', 'sale_number', 'settlement_id', 'subtotal', 'tax_rate', 'tax_amount',
            'total_amount', 'payment_method', 'payment_status', 'created_at', 'items', 'stock_synced',
        ]
        read_only_fields = fields

    def get_stock_synced(self, obj):
        """True once every line has a recorded stock adjustment"""
        applied = {adj.product_ref for adj in obj.stock_adjustments.all()}
        return all(item.product_ref in applied for item in obj.items.all())


class SaleListSerializer(serializers.ModelSerializer):
    item_count = serializers.IntegerField(source='items.count', read_only=True)

    class Meta:
        model = Sale
        fields = ['id', 'sale_number', 'total_amount', 'payment_method', 'payment_status', 'item_count', 'created_at']


class CheckoutLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    """
    ``items`` bills those products directly; without it the caller's
    working cart is billed.
    """
    items = CheckoutLineSerializer(many=True, required=False)
    payment_method = serializers.CharField(max_length=20)
    settlement_id = serializers.UUIDField(required=False, allow_null=True)

    def validate_items(self, value):
        seen = set()
        for line in value:
            if line['product_id'] in seen:
                raise serializers.ValidationError(f"Product {line['product_id']} is listed more than once")
            seen.add(line['product_id'])
        return value


class CartAddSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)


class CartQuantitySerializer(serializers.Serializer):
    quantity = serializers.IntegerField()


class UpiRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    note = serializers.CharField(max_length=80, required=False, allow_blank=True)
