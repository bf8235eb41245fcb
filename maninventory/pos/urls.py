from django.urls import path
from .views import (
    cart, cart_item, checkout,
    sale_list, sale_detail, sale_receipt, sale_resync_stock, upi_request,
)

urlpatterns = [
    path('pos/cart/', cart, name='cart'),
    path('pos/cart/<int:product_id>/', cart_item, name='cart-item'),
    path('pos/checkout/', checkout, name='checkout'),
    path('pos/upi-request/', upi_request, name='upi-request'),
    path('pos/sales/', sale_list, name='sale-list'),
    path('pos/sales/<int:pk>/', sale_detail, name='sale-detail'),
    path('pos/sales/<int:pk>/receipt/', sale_receipt, name='sale-receipt'),
    path('pos/sales/<int:pk>/resync-stock/', sale_resync_stock, name='sale-resync-stock'),
]
