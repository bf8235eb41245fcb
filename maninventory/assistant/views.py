import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from maninventory.catalog.models import Product
from maninventory.core.exceptions import POSError
from maninventory.pos.models import Sale
from maninventory.reports.views import period_start, product_sales_since
from . import services

logger = logging.getLogger(__name__)


def _inventory_payload(user):
    return [
        {
            'name': p.name,
            'stock': p.quantity_on_hand,
            'unit': p.unit,
            'minimum_stock': p.reorder_threshold,
            'price': str(p.unit_price),
            'category': p.category,
        }
        for p in Product.objects.filter(owner=user).order_by('name')[:1000]
    ]


def _transactions_payload(user, period):
    sales = Sale.objects.filter(
        owner=user, created_at__gte=period_start(period),
    ).prefetch_related('items').order_by('-created_at')[:1000]
    return [
        {
            'created_at': sale.created_at.isoformat(),
            'total_amount': str(sale.total_amount),
            'payment_method': sale.payment_method,
            'items': [
                {'name': item.name, 'quantity': item.quantity, 'total': str(item.line_total)}
                for item in sale.items.all()
            ],
        }
        for sale in sales
    ]


def _error(exc):
    return Response({'error': exc.message}, status=exc.status_code)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def restock_suggestions(request):
    """
    Restock suggestions. ``inventory`` and ``sales`` default to the caller's
    catalog and last 7 days of sales.
    """
    inventory = request.data.get('inventory')
    sales = request.data.get('sales')
    if inventory is None:
        inventory = _inventory_payload(request.user)
    if sales is None:
        sales = [
            {'name': row['name'], 'total_sold': row['quantity']}
            for row in product_sales_since(request.user, days=7)
        ]
    try:
        result = services.suggest_restock(inventory, sales)
    except POSError as e:
        return _error(e)
    return Response({'result': result})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def analytics_insights(request):
    """Narrated analytics; ``transactions`` and ``inventory`` default to the caller's data"""
    period = request.data.get('period', 'week')
    transactions = request.data.get('transactions')
    inventory = request.data.get('inventory')
    try:
        if transactions is None:
            if period not in ('today', 'day', 'week', 'month'):
                return Response({'error': 'Invalid period'}, status=status.HTTP_400_BAD_REQUEST)
            transactions = _transactions_payload(request.user, period)
        if inventory is None:
            inventory = _inventory_payload(request.user)
        result = services.narrate_analytics(transactions, inventory, period)
    except POSError as e:
        return _error(e)
    return Response({'result': result})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def extract_products(request):
    """Product rows from stock file text, ready for products/import/"""
    try:
        result = services.extract_products(request.data.get('file_content'), request.data.get('file_name'))
    except POSError as e:
        return _error(e)
    return Response({'result': result})
