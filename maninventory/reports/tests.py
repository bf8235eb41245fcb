"""
Test suite for Reports module
Tests: Sales Summary, Top Products, Dashboard KPIs, Product Sales, cache invalidation
"""
from datetime import timedelta

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from maninventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from maninventory.pos.models import Sale
from maninventory.reports.views import period_start


class ReportsTests(TestCase):
    """Test report endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.rice = TestDataFactory.create_product(self.user, name='Rice', unit_price='50.00', quantity_on_hand=100)
        self.oil = TestDataFactory.create_product(self.user, name='Oil', unit_price='150.00', quantity_on_hand=3, reorder_threshold=5)

    def test_sales_summary(self):
        """Test sales summary report"""
        TestDataFactory.create_sale(self.user, [(self.rice, 2)], payment_method='cash')
        TestDataFactory.create_sale(self.user, [(self.oil, 1)], payment_method='upi')
        TestDataFactory.create_sale(self.user, [(self.rice, 1)], payment_method='upi')
        response = self.client.get('/api/v1/reports/sales-summary/?period=today')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['summary']
        self.assertEqual(summary['transaction_count'], 3)
        # 105.00 + 157.50 + 52.50
        self.assertEqual(summary['total_revenue'], '315.00')
        self.assertEqual(summary['avg_transaction'], '105.00')
        self.assertEqual(summary['top_payment_method'], 'upi')

    def test_sales_summary_excludes_old_sales(self):
        sale = TestDataFactory.create_sale(self.user, [(self.rice, 1)])
        Sale.objects.filter(pk=sale.pk).update(created_at=timezone.now() - timedelta(days=10))
        response = self.client.get('/api/v1/reports/sales-summary/?period=week')
        self.assertEqual(response.data['summary']['transaction_count'], 0)
        response = self.client.get('/api/v1/reports/sales-summary/?period=month')
        self.assertEqual(response.data['summary']['transaction_count'], 1)

    def test_sales_summary_invalid_period(self):
        response = self.client.get('/api/v1/reports/sales-summary/?period=decade')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_sales_summary_is_owner_scoped(self):
        other = TestDataFactory.create_user()
        TestDataFactory.create_sale(other, [(self.rice, 1)])
        response = self.client.get('/api/v1/reports/sales-summary/')
        self.assertEqual(response.data['summary']['transaction_count'], 0)

    def test_top_products(self):
        """Test top products report"""
        TestDataFactory.create_sale(self.user, [(self.rice, 1), (self.oil, 2)])
        TestDataFactory.create_sale(self.user, [(self.rice, 2)])
        response = self.client.get('/api/v1/reports/top-products/?period=week')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        products = response.data['products']
        self.assertEqual([p['name'] for p in products], ['Oil', 'Rice'])
        self.assertEqual(products[1]['total_quantity'], 3)
        self.assertEqual(products[1]['order_count'], 2)

    def test_dashboard_kpis(self):
        TestDataFactory.create_sale(self.user, [(self.rice, 2)])
        response = self.client.get('/api/v1/reports/dashboard-kpis/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['today_sales'], '105.00')
        self.assertEqual(response.data['total_products'], 2)
        self.assertEqual(response.data['low_stock_count'], 1)
        self.assertEqual(response.data['low_stock_items'][0]['name'], 'Oil')

    def test_dashboard_refreshes_after_checkout(self):
        first = self.client.get('/api/v1/reports/dashboard-kpis/')
        self.assertEqual(first.data['today_transactions'], 0)
        response = self.client.post('/api/v1/pos/checkout/', {
            'items': [{'product_id': self.rice.pk, 'quantity': 1}],
            'payment_method': 'cash',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        second = self.client.get('/api/v1/reports/dashboard-kpis/')
        self.assertEqual(second.data['today_transactions'], 1)

    def test_product_sales(self):
        TestDataFactory.create_sale(self.user, [(self.rice, 2)])
        TestDataFactory.create_sale(self.user, [(self.rice, 3)])
        response = self.client.get('/api/v1/reports/product-sales/?days=7')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['products'], [{'name': 'Rice', 'quantity': 5, 'revenue': '250.00'}])

    def test_product_sales_invalid_days(self):
        response = self.client.get('/api/v1/reports/product-sales/?days=abc')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_period_start(self):
        now = timezone.now()
        self.assertEqual(period_start('week', now), now - timedelta(days=7))
        self.assertEqual(timezone.localtime(period_start('today', now)).hour, 0)
