from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Shop owner account; every catalog and sales row belongs to one"""
    phone = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'


class ShopSettings(models.Model):
    """Per-owner shop profile, including the UPI receiving account"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='shop_settings')
    shop_name = models.CharField(max_length=200)
    location = models.CharField(max_length=255, blank=True)
    upi_id = models.CharField(max_length=100, blank=True, help_text='Receiving UPI ID, e.g. shop@okbank')
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.shop_name

    @property
    def accepts_upi(self):
        return bool(self.upi_id and self.upi_id.strip())

    class Meta:
        db_table = 'shop_settings'
        verbose_name_plural = 'shop settings'


class AuditLog(models.Model):
    """Audit log for catalog edits, stock writes and checkouts"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('stock_adjust', 'Stock Adjustment'),
        ('stock_sale', 'Stock Removed (Sale)'),
        ('cart_add', 'Add to Cart'),
        ('cart_update', 'Cart Update'),
        ('cart_remove', 'Remove from Cart'),
        ('checkout', 'Checkout'),
        ('stock_import', 'Stock Imported'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, sale number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., sale number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_auditlog_created'),
            models.Index(fields=['action'], name='idx_auditlog_action'),
            models.Index(fields=['object_reference'], name='idx_auditlog_reference'),
        ]
