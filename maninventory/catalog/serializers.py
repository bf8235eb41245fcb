from decimal import Decimal
from rest_framework import serializers
from .models import Product, CartItem


class ProductSerializer(serializers.ModelSerializer):
    stock_status = serializers.CharField(read_only=True)
    is_low_stock = serializers.BooleanField(read_only=True)
    unit_price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'))

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'description', 'category', 'unit', 'unit_price',
            'quantity_on_hand', 'reorder_threshold', 'image_url',
            'stock_status', 'is_low_stock', 'created_at', 'updated_at',
        ]
        read_only_fields = ['created_at', 'updated_at']

    def validate_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError('Name cannot be blank')
        return value


class ProductImportRowSerializer(serializers.Serializer):
    """
    One product row as produced by the stock-file extraction. Uses the field
    names the extraction returns (price, stock, minimum_stock).
    """
    name = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    category = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    unit = serializers.CharField(max_length=20, required=False, default='pcs')
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.00'))
    stock = serializers.IntegerField(min_value=0, default=0)
    minimum_stock = serializers.IntegerField(min_value=0, required=False, default=0)

    def to_product_fields(self):
        data = self.validated_data
        return {
            'name': data['name'].strip(),
            'description': data.get('description', ''),
            'category': data.get('category', ''),
            'unit': data.get('unit') or 'pcs',
            'unit_price': data['price'],
            'quantity_on_hand': data['stock'],
            'reorder_threshold': data.get('minimum_stock', 0),
        }


class CartItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    unit = serializers.CharField(source='product.unit', read_only=True)
    unit_price = serializers.DecimalField(source='product.unit_price', max_digits=10, decimal_places=2, read_only=True)
    quantity_on_hand = serializers.IntegerField(source='product.quantity_on_hand', read_only=True)

    class Meta:
        model = CartItem
        fields = ['id', 'product', 'product_name', 'unit', 'unit_price', 'quantity_on_hand', 'quantity', 'added_at', 'updated_at']
        read_only_fields = ['added_at', 'updated_at']
