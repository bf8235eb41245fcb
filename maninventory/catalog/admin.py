from django.contrib import admin
from .models import Product, CartItem


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'owner', 'category', 'unit', 'unit_price', 'quantity_on_hand', 'reorder_threshold', 'updated_at']
    list_filter = ['category', 'unit', 'created_at']
    search_fields = ['name', 'category', 'owner__username']
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ['owner', 'product', 'quantity', 'added_at']
    search_fields = ['owner__username', 'product__name']
    raw_id_fields = ['product']
