from django.urls import path
from .views import sales_summary, top_products, dashboard_kpis, product_sales

urlpatterns = [
    path('reports/sales-summary/', sales_summary, name='sales-summary'),
    path('reports/top-products/', top_products, name='top-products'),
    path('reports/dashboard-kpis/', dashboard_kpis, name='dashboard-kpis'),
    path('reports/product-sales/', product_sales, name='product-sales'),
]
