import logging
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Sum, Count, Avg, F, DecimalField
from django.db.models.functions import TruncDate
from django.utils import timezone
from datetime import timedelta
from decimal import Decimal

from maninventory.catalog.models import Product
from maninventory.core.cache_utils import cached_owner_query, DASHBOARD_KPI_CACHE_TTL, REPORTS_CACHE_TTL
from maninventory.pos.models import Sale, SaleItem

logger = logging.getLogger(__name__)

PERIODS = ('today', 'day', 'week', 'month')


def period_start(period, now=None):
    """Start of the reporting window: midnight today, 7 days back, or one month back"""
    now = now or timezone.now()
    if period in ('today', 'day'):
        return timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
    if period == 'week':
        return now - timedelta(days=7)
    return now - timedelta(days=30)


def _money(value):
    return str((value or Decimal('0.00')).quantize(Decimal('0.01')))


@cached_owner_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix='sales_summary')
def build_sales_summary(owner, period):
    start = period_start(period)
    sales = Sale.objects.filter(owner=owner, created_at__gte=start)

    totals = sales.aggregate(
        total_revenue=Sum('total_amount', output_field=DecimalField()),
        total_tax=Sum('tax_amount', output_field=DecimalField()),
        avg_transaction=Avg('total_amount', output_field=DecimalField()),
        transaction_count=Count('id'),
    )

    by_method = list(
        sales.values('payment_method').annotate(
            count=Count('id'),
            total=Sum('total_amount', output_field=DecimalField()),
        ).order_by('-count', 'payment_method')
    )

    daily_sales = sales.annotate(
        date=TruncDate('created_at')
    ).values('date').annotate(
        total=Sum('total_amount', output_field=DecimalField()),
        count=Count('id')
    ).order_by('date')

    return {
        'period': period,
        'from': start.isoformat(),
        'summary': {
            'total_revenue': _money(totals['total_revenue']),
            'total_tax': _money(totals['total_tax']),
            'transaction_count': totals['transaction_count'],
            'avg_transaction': _money(totals['avg_transaction']),
            'top_payment_method': by_method[0]['payment_method'] if by_method else None,
        },
        'payment_methods': [
            {'payment_method': row['payment_method'], 'count': row['count'], 'total': _money(row['total'])}
            for row in by_method
        ],
        'daily_breakdown': [
            {'date': row['date'].isoformat(), 'total': _money(row['total']), 'count': row['count']}
            for row in daily_sales
        ],
    }


@cached_owner_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix='top_products')
def build_top_products(owner, period, limit):
    start = period_start(period)
    rows = SaleItem.objects.filter(
        sale__owner=owner,
        sale__created_at__gte=start,
    ).values('name').annotate(
        total_quantity=Sum('quantity'),
        total_revenue=Sum('line_total', output_field=DecimalField()),
        order_count=Count('sale', distinct=True),
    ).order_by('-total_revenue', 'name')[:limit]
    return [
        {
            'name': row['name'],
            'total_quantity': row['total_quantity'],
            'total_revenue': _money(row['total_revenue']),
            'order_count': row['order_count'],
        }
        for row in rows
    ]


@cached_owner_query(cache_ttl=DASHBOARD_KPI_CACHE_TTL, key_prefix='dashboard_kpis')
def build_dashboard_kpis(owner):
    today_start = period_start('today')
    yesterday_start = today_start - timedelta(days=1)

    today_sales = Sale.objects.filter(owner=owner, created_at__gte=today_start)
    today_total = today_sales.aggregate(total=Sum('total_amount', output_field=DecimalField()))['total'] or Decimal('0.00')
    yesterday_total = Sale.objects.filter(
        owner=owner, created_at__gte=yesterday_start, created_at__lt=today_start,
    ).aggregate(total=Sum('total_amount', output_field=DecimalField()))['total'] or Decimal('0.00')

    change_pct = None
    if yesterday_total:
        change_pct = str(((today_total - yesterday_total) / yesterday_total * 100).quantize(Decimal('0.1')))

    products = Product.objects.filter(owner=owner)
    low_stock = products.filter(quantity_on_hand__lte=F('reorder_threshold'))

    recent = Sale.objects.filter(owner=owner).order_by('-created_at')[:5]

    return {
        'today_sales': _money(today_total),
        'today_transactions': today_sales.count(),
        'change_from_yesterday_pct': change_pct,
        'total_products': products.count(),
        'total_units_on_hand': products.aggregate(total=Sum('quantity_on_hand'))['total'] or 0,
        'low_stock_count': low_stock.count(),
        'low_stock_items': [
            {'id': p.id, 'name': p.name, 'current': p.quantity_on_hand, 'min': p.reorder_threshold}
            for p in low_stock.order_by('quantity_on_hand', 'name')[:10]
        ],
        'recent_sales': [
            {
                'id': sale.id,
                'sale_number': sale.sale_number,
                'total_amount': _money(sale.total_amount),
                'payment_method': sale.payment_method,
                'created_at': sale.created_at.isoformat(),
            }
            for sale in recent
        ],
    }


def product_sales_since(owner, days=7):
    """Units sold and revenue per product name over the last ``days`` days"""
    start = timezone.now() - timedelta(days=days)
    rows = SaleItem.objects.filter(
        sale__owner=owner,
        sale__created_at__gte=start,
    ).values('name').annotate(
        quantity=Sum('quantity'),
        revenue=Sum('line_total', output_field=DecimalField()),
    ).order_by('name')
    return [
        {'name': row['name'], 'quantity': row['quantity'], 'revenue': _money(row['revenue'])}
        for row in rows
    ]


def _period_param(request):
    period = request.query_params.get('period', 'week')
    if period not in PERIODS:
        return None
    return period


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def sales_summary(request):
    """Revenue, count, average and payment-method split for today, the week or the month"""
    period = _period_param(request)
    if period is None:
        return Response({'error': 'validation_error', 'message': f'period must be one of {", ".join(PERIODS)}'},
                        status=status.HTTP_400_BAD_REQUEST)
    return Response(build_sales_summary(request.user, period))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def top_products(request):
    """Top selling products by revenue"""
    period = _period_param(request)
    if period is None:
        return Response({'error': 'validation_error', 'message': f'period must be one of {", ".join(PERIODS)}'},
                        status=status.HTTP_400_BAD_REQUEST)
    try:
        limit = min(max(int(request.query_params.get('limit', 5)), 1), 100)
    except ValueError:
        return Response({'error': 'validation_error', 'message': 'limit must be an integer'},
                        status=status.HTTP_400_BAD_REQUEST)
    return Response({'period': period, 'products': build_top_products(request.user, period, limit)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard_kpis(request):
    return Response(build_dashboard_kpis(request.user))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def product_sales(request):
    """Per-product sales for the restock assistant"""
    try:
        days = min(max(int(request.query_params.get('days', 7)), 1), 365)
    except ValueError:
        return Response({'error': 'validation_error', 'message': 'days must be an integer'},
                        status=status.HTTP_400_BAD_REQUEST)
    return Response({'days': days, 'products': product_sales_since(request.user, days)})
