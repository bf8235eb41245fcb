"""
Test suite for Catalog module
Tests: product CRUD, owner scoping, stock writes, filters, bulk import, catalog store
"""
from decimal import Decimal
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase
from rest_framework import status
from maninventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from maninventory.core.exceptions import (
    NotFoundError, OutOfStockAtSettlementError, StoreUnavailableError, ValidationError,
)
from maninventory.core.models import AuditLog
from maninventory.catalog.models import Product, CartItem
from maninventory.catalog.store import CatalogStore


class ProductModelTests(TestCase):
    """Test stock status bands"""

    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_stock_status(self):
        product = TestDataFactory.create_product(self.user, quantity_on_hand=10, reorder_threshold=10)
        self.assertEqual(product.stock_status, 'low')
        self.assertTrue(product.is_low_stock)
        product.quantity_on_hand = 15
        self.assertEqual(product.stock_status, 'medium')
        product.quantity_on_hand = 16
        self.assertEqual(product.stock_status, 'good')
        self.assertFalse(product.is_low_stock)


class CatalogStoreTests(TestCase):
    """Test owner-scoped reads, writes and the conditional decrement"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.store = CatalogStore(self.user)
        self.product = TestDataFactory.create_product(self.user, name='Rice', quantity_on_hand=5)

    def test_read_quantity(self):
        self.assertEqual(self.store.read_quantity(self.product.pk), 5)

    def test_other_owner_cannot_read(self):
        with self.assertRaises(NotFoundError):
            CatalogStore(self.other).read_quantity(self.product.pk)

    def test_decrement_applies(self):
        self.assertEqual(self.store.decrement_quantity(self.product.pk, 3), 2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity_on_hand, 2)

    def test_decrement_refuses_to_go_negative(self):
        self.store.decrement_quantity(self.product.pk, 3)
        with self.assertRaises(OutOfStockAtSettlementError) as ctx:
            self.store.decrement_quantity(self.product.pk, 3)
        self.assertEqual(ctx.exception.available, 2)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity_on_hand, 2)

    def test_decrement_missing_product(self):
        with self.assertRaises(NotFoundError):
            self.store.decrement_quantity(999999, 1)

    def test_decrement_other_owner_product(self):
        with self.assertRaises(NotFoundError):
            CatalogStore(self.other).decrement_quantity(self.product.pk, 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity_on_hand, 5)

    def test_write_quantity_rejects_negative(self):
        with self.assertRaises(ValidationError):
            self.store.write_quantity(self.product.pk, -1)

    def test_write_quantity_overwrites(self):
        self.assertEqual(self.store.write_quantity(self.product.pk, 40), 40)
        self.assertEqual(self.store.read_quantity(self.product.pk), 40)

    def test_database_failure_becomes_store_unavailable(self):
        with mock.patch.object(CatalogStore, '_products', side_effect=DatabaseError('connection lost')):
            with self.assertRaises(StoreUnavailableError):
                self.store.read_quantity(self.product.pk)

    def test_clear_working_cart_is_best_effort(self):
        TestDataFactory.create_cart_item(self.user, self.product, 2)
        with mock.patch.object(CartItem.objects, 'filter', side_effect=DatabaseError('locked')):
            self.assertEqual(self.store.clear_working_cart(), 0)
        self.assertEqual(self.store.clear_working_cart(), 1)

    def test_low_stock(self):
        TestDataFactory.create_product(self.user, name='Oil', quantity_on_hand=20, reorder_threshold=5)
        sugar = TestDataFactory.create_product(self.user, name='Sugar', quantity_on_hand=1, reorder_threshold=5)
        self.assertEqual([p.pk for p in self.store.low_stock()], [sugar.pk])


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_product(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Basmati Rice', 'unit': 'kg', 'unit_price': '85.50',
            'quantity_on_hand': 40, 'reorder_threshold': 10, 'category': 'Grains',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        product = Product.objects.get(pk=response.data['id'])
        self.assertEqual(product.owner, self.user)
        self.assertEqual(product.unit_price, Decimal('85.50'))
        self.assertTrue(AuditLog.objects.filter(action='create', object_id=str(product.pk)).exists())

    def test_create_rejects_negative_price(self):
        response = self.client.post('/api/v1/products/', {
            'name': 'Salt', 'unit_price': '-1.00', 'quantity_on_hand': 1,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_is_owner_scoped(self):
        TestDataFactory.create_product(self.user, name='Mine')
        TestDataFactory.create_product(self.other, name='Theirs')
        response = self.client.get('/api/v1/products/')
        self.assertEqual([p['name'] for p in response.data], ['Mine'])

    def test_list_filters(self):
        TestDataFactory.create_product(self.user, name='Toor Dal', category='Pulses', quantity_on_hand=1, reorder_threshold=5)
        TestDataFactory.create_product(self.user, name='Milk', category='Dairy', quantity_on_hand=30, reorder_threshold=5)
        response = self.client.get('/api/v1/products/?search=dal')
        self.assertEqual([p['name'] for p in response.data], ['Toor Dal'])
        response = self.client.get('/api/v1/products/?category=dairy')
        self.assertEqual([p['name'] for p in response.data], ['Milk'])
        response = self.client.get('/api/v1/products/?low_stock=true')
        self.assertEqual([p['name'] for p in response.data], ['Toor Dal'])

    def test_other_owner_product_is_404(self):
        product = TestDataFactory.create_product(self.other)
        response = self.client.get(f'/api/v1/products/{product.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_patch_stock_writes_audit(self):
        product = TestDataFactory.create_product(self.user, quantity_on_hand=5)
        response = self.client.patch(f'/api/v1/products/{product.pk}/', {'quantity_on_hand': 12}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['quantity_on_hand'], 12)
        log = AuditLog.objects.get(action='stock_adjust')
        self.assertEqual(log.changes['quantity_on_hand'], {'old': 5, 'new': 12})

    def test_patch_negative_stock_rejected(self):
        product = TestDataFactory.create_product(self.user, quantity_on_hand=5)
        response = self.client.patch(f'/api/v1/products/{product.pk}/', {'quantity_on_hand': -3}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        product.refresh_from_db()
        self.assertEqual(product.quantity_on_hand, 5)

    def test_rejected_stock_edit_keeps_other_fields(self):
        product = TestDataFactory.create_product(self.user, name='Tea', quantity_on_hand=5)
        response = self.client.patch(f'/api/v1/products/{product.pk}/', {
            'name': 'Renamed', 'quantity_on_hand': -3,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        product.refresh_from_db()
        self.assertEqual(product.name, 'Tea')
        self.assertEqual(product.quantity_on_hand, 5)
        self.assertFalse(AuditLog.objects.filter(action='update', object_id=str(product.pk)).exists())

    def test_store_failure_rolls_back_field_edits(self):
        product = TestDataFactory.create_product(self.user, name='Tea', quantity_on_hand=5)
        with mock.patch.object(CatalogStore, 'write_quantity', side_effect=StoreUnavailableError()):
            response = self.client.patch(f'/api/v1/products/{product.pk}/', {
                'name': 'Renamed', 'quantity_on_hand': 8,
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        product.refresh_from_db()
        self.assertEqual(product.name, 'Tea')

    def test_put_updates_fields(self):
        product = TestDataFactory.create_product(self.user, name='Tea')
        response = self.client.put(f'/api/v1/products/{product.pk}/', {
            'name': 'Masala Tea', 'unit_price': '120.00', 'unit': 'pack', 'reorder_threshold': 3,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertEqual(product.name, 'Masala Tea')
        self.assertTrue(AuditLog.objects.filter(action='update', object_id=str(product.pk)).exists())

    def test_delete_product(self):
        product = TestDataFactory.create_product(self.user)
        response = self.client.delete(f'/api/v1/products/{product.pk}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())

    def test_low_stock_endpoint(self):
        TestDataFactory.create_product(self.user, name='Sugar', quantity_on_hand=2, reorder_threshold=10)
        TestDataFactory.create_product(self.user, name='Flour', quantity_on_hand=50, reorder_threshold=10)
        response = self.client.get('/api/v1/products/low-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['name'] for p in response.data], ['Sugar'])


class ProductImportTests(TestCase):
    """Test bulk import of extracted rows"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_import_rows(self):
        response = self.client.post('/api/v1/products/import/', {'products': [
            {'name': 'Rice', 'price': 60, 'stock': 100, 'unit': 'kg', 'minimum_stock': 20, 'category': 'Grains'},
            {'name': 'Soap', 'price': '35.00', 'stock': 24},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['count'], 2)
        rice = Product.objects.get(owner=self.user, name='Rice')
        self.assertEqual(rice.quantity_on_hand, 100)
        self.assertEqual(rice.reorder_threshold, 20)
        self.assertTrue(AuditLog.objects.filter(action='stock_import').exists())

    def test_invalid_row_rejects_whole_batch(self):
        response = self.client.post('/api/v1/products/import/', {'products': [
            {'name': 'Rice', 'price': 60, 'stock': 100},
            {'name': 'Broken', 'price': 'abc', 'stock': -1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('1', {str(k) for k in response.data['rows']})
        self.assertFalse(Product.objects.filter(owner=self.user).exists())

    def test_too_many_rows(self):
        rows = [{'name': f'Item {i}', 'price': 1, 'stock': 1} for i in range(1001)]
        response = self.client.post('/api/v1/products/import/', {'products': rows}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
