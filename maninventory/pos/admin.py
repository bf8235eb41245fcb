from django.contrib import admin
from .models import Sale, SaleItem, SaleStockAdjustment


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    readonly_fields = ['product', 'product_ref', 'name', 'unit', 'unit_price', 'quantity', 'line_total']


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ['sale_number', 'owner', 'payment_method', 'payment_status', 'subtotal', 'tax_amount', 'total_amount', 'created_at']
    list_filter = ['payment_method', 'payment_status', 'created_at']
    search_fields = ['sale_number', 'settlement_id', 'owner__username']
    ordering = ['-created_at']
    readonly_fields = ['sale_number', 'settlement_id', 'subtotal', 'tax_rate', 'tax_amount', 'total_amount', 'created_at']
    inlines = [SaleItemInline]


@admin.register(SaleStockAdjustment)
class SaleStockAdjustmentAdmin(admin.ModelAdmin):
    list_display = ['sale', 'product_ref', 'quantity', 'created_at']
    search_fields = ['sale__sale_number']
