from django.db import models
from decimal import Decimal
from maninventory.catalog.models import Product
from maninventory.core.models import User


class Sale(models.Model):
    """
    Recorded sale. Append-only: amounts are frozen at settlement and never
    recomputed from the catalog.
    """
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('upi', 'UPI'),
    ]

    PAYMENT_STATUS_CHOICES = [
        ('completed', 'Completed'),
    ]

    sale_number = models.CharField(max_length=100, unique=True)
    settlement_id = models.UUIDField(unique=True, help_text='Idempotency key of the checkout that produced this sale')
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sales')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_rate = models.DecimalField(max_digits=5, decimal_places=4, default=Decimal('0.0500'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='completed')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    def __str__(self):
        return self.sale_number

    class Meta:
        db_table = 'sales'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner', '-created_at'], name='idx_sale_owner_created'),
        ]


class SaleItem(models.Model):
    """Line snapshot: name, unit and price as they were when the sale was made"""
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='sale_items')
    product_ref = models.BigIntegerField(help_text='Catalog id at the time of sale, kept after the product is deleted')
    name = models.CharField(max_length=200)
    unit = models.CharField(max_length=20, default='pcs')
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    quantity = models.PositiveIntegerField()
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.name} x {self.quantity}"

    class Meta:
        db_table = 'sale_items'
        ordering = ['id']


class SaleStockAdjustment(models.Model):
    """Marks that the stock decrement for one sale line has been applied"""
    sale = models.ForeignKey(Sale, on_delete=models.CASCADE, related_name='stock_adjustments')
    product = models.ForeignKey(Product, on_delete=models.SET_NULL, null=True, blank=True, related_name='stock_adjustments')
    product_ref = models.BigIntegerField()
    quantity = models.PositiveIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'sale_stock_adjustments'
        unique_together = [['sale', 'product_ref']]
