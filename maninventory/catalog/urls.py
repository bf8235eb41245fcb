from django.urls import path
from .views import product_list_create, product_detail, product_low_stock, product_import

urlpatterns = [
    path('products/', product_list_create, name='product-list-create'),
    path('products/low-stock/', product_low_stock, name='product-low-stock'),
    path('products/import/', product_import, name='product-import'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
]
