from django.db import models
from decimal import Decimal
from maninventory.core.models import User


class Product(models.Model):
    """Catalog item owned by one shop account"""
    UNIT_CHOICES = [
        ('pcs', 'Pieces'),
        ('kg', 'Kilogram'),
        ('g', 'Gram'),
        ('L', 'Litre'),
        ('ml', 'Millilitre'),
        ('dozen', 'Dozen'),
        ('pack', 'Pack'),
    ]

    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True, db_index=True)
    unit = models.CharField(max_length=20, default='pcs')
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    quantity_on_hand = models.PositiveIntegerField(default=0)
    reorder_threshold = models.PositiveIntegerField(default=0)
    image_url = models.URLField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.quantity_on_hand} {self.unit})"

    @property
    def is_low_stock(self):
        return self.quantity_on_hand <= self.reorder_threshold

    @property
    def stock_status(self):
        """Low at or below the threshold, medium up to 1.5x, good above"""
        if self.quantity_on_hand <= self.reorder_threshold:
            return 'low'
        if self.quantity_on_hand <= self.reorder_threshold * Decimal('1.5'):
            return 'medium'
        return 'good'

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['owner', 'name'], name='idx_product_owner_name'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity_on_hand__gte=0),
                name='product_quantity_non_negative',
            ),
        ]


class CartItem(models.Model):
    """Working cart rows for the cart-based billing screen"""
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='cart_items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='cart_items')
    quantity = models.PositiveIntegerField(default=1)
    added_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'cart_items'
        ordering = ['added_at', 'id']
        unique_together = [['owner', 'product']]
