"""
Test suite for Core module
Tests: registration, JWT login, shop settings, audit logs, error responses
"""
from django.core.cache import cache
from django.test import TestCase
from rest_framework import status
from maninventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from maninventory.core.exceptions import (
    InsufficientStockError, PartialStockSyncWarning, SettlementFailedError, UpstreamRateLimitError,
)
from maninventory.core.models import AuditLog, ShopSettings
from maninventory.core.utils import create_audit_log, error_response
from maninventory.core.cache_utils import cached_owner_query, get_owner_version, invalidate_owner_cache


class AuthTests(TestCase):
    """Test registration and token endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_returns_tokens(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'shopowner',
            'email': 'owner@test.com',
            'password': 'Kirana#Store2024',
            'password_confirm': 'Kirana#Store2024',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'shopowner')

    def test_register_password_mismatch(self):
        response = self.client.post('/api/v1/auth/register/', {
            'username': 'shopowner',
            'password': 'Kirana#Store2024',
            'password_confirm': 'Different#Pass2024',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_login_and_me(self):
        TestDataFactory.create_user(username='owner1', password='Kirana#Store2024')
        response = self.client.post('/api/v1/auth/login/', {
            'username': 'owner1', 'password': 'Kirana#Store2024',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        me = self.client.get('/api/v1/auth/me/')
        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data['username'], 'owner1')
        self.assertIsNone(me.data['shop'])

    def test_unauthenticated_request_rejected(self):
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class ShopSettingsTests(TestCase):
    """Test the shop settings upsert"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_get_missing_settings(self):
        response = self.client.get('/api/v1/shop-settings/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_create_then_update(self):
        response = self.client.put('/api/v1/shop-settings/', {
            'shop_name': 'Sharma General Store', 'location': 'Pune', 'upi_id': 'sharma@okaxis',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['accepts_upi'])

        response = self.client.put('/api/v1/shop-settings/', {
            'shop_name': 'Sharma Stores', 'location': 'Pune', 'upi_id': '',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['accepts_upi'])
        self.assertEqual(ShopSettings.objects.filter(user=self.user).count(), 1)

    def test_invalid_upi_id(self):
        response = self.client.put('/api/v1/shop-settings/', {
            'shop_name': 'Sharma Stores', 'upi_id': 'not-an-upi-id',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('upi_id', response.data)


class AuditLogTests(TestCase):
    """Test audit log helpers and listing"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_audit_log_requires_fields(self):
        self.assertIsNone(create_audit_log(action='create', model_name=None, object_id='1', user=self.user))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_list_only_own_logs(self):
        create_audit_log(action='create', model_name='Product', object_id='1', user=self.user)
        create_audit_log(action='delete', model_name='Product', object_id='2', user=self.other)
        response = self.client.get('/api/v1/audit-logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['action'], 'create')

    def test_filter_by_action(self):
        create_audit_log(action='create', model_name='Product', object_id='1', user=self.user)
        create_audit_log(action='checkout', model_name='Sale', object_id='5', user=self.user)
        response = self.client.get('/api/v1/audit-logs/?action=checkout')
        self.assertEqual([row['model_name'] for row in response.data], ['Sale'])


class ErrorTests(TestCase):
    """Test domain error messages and response shape"""

    def test_error_response_shape(self):
        response = error_response(SettlementFailedError())
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data, {
            'error': 'settlement_failed',
            'message': 'Payment could not be recorded, nothing changed.',
        })

    def test_error_response_extra_fields(self):
        response = error_response(InsufficientStockError(7, 5, 3, name='Sugar', unit='kg'), available=3)
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['available'], 3)
        self.assertEqual(response.data['message'], 'Only 3 kg of Sugar available in stock')

    def test_partial_sync_message_names_items(self):
        class Failure:
            def __init__(self, name):
                self.name = name
        warning = PartialStockSyncWarning([Failure('Rice'), Failure('Dal')])
        self.assertEqual(warning.message, 'Payment recorded, but stock may be out of date for: Rice, Dal')

    def test_upstream_status_codes(self):
        self.assertEqual(UpstreamRateLimitError().status_code, 429)


class OwnerCacheTests(TestCase):
    """Test per-owner report caching and invalidation"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.calls = []

        @cached_owner_query(cache_ttl=60, key_prefix="test_report")
        def build(owner, period):
            self.calls.append((owner.pk, period))
            return {'period': period, 'calls': len(self.calls)}

        self.build = build

    def test_second_call_is_cached(self):
        self.build(self.user, 'week')
        self.build(self.user, 'week')
        self.assertEqual(len(self.calls), 1)

    def test_invalidation_drops_every_entry_for_owner(self):
        self.build(self.user, 'week')
        self.build(self.user, 'month')
        self.build(self.other, 'week')
        invalidate_owner_cache(self.user.pk)
        self.build(self.user, 'week')
        self.build(self.user, 'month')
        self.build(self.other, 'week')
        self.assertEqual(len(self.calls), 5)

    def test_invalidation_without_prior_reads(self):
        invalidate_owner_cache(self.user.pk)
        self.assertEqual(get_owner_version(self.user.pk), 2)
        invalidate_owner_cache(self.user.pk)
        self.assertEqual(get_owner_version(self.user.pk), 3)

