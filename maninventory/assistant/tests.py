"""
Test suite for Assistant module
Tests: gateway error mapping, JSON array extraction, payload bounds, endpoints
"""
import json
from unittest import mock

import requests
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from maninventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from maninventory.core.exceptions import (
    ConfigurationError, UpstreamError, UpstreamParseError, UpstreamPaymentRequiredError,
    UpstreamRateLimitError, ValidationError,
)
from maninventory.assistant.gateway import LLMGateway
from maninventory.assistant.parsing import extract_json_array
from maninventory.assistant import services


def gateway_response(content=None, status_code=200, body=None):
    response = mock.Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = 'error' if not response.ok else ''
    if body is None:
        body = {'choices': [{'message': {'content': content}}]}
    response.json.return_value = body
    return response


class ExtractJsonArrayTests(SimpleTestCase):
    """Test lenient array extraction"""

    def test_plain_array(self):
        self.assertEqual(extract_json_array('[{"item": "Rice"}]'), [{'item': 'Rice'}])

    def test_array_inside_prose_and_fences(self):
        text = 'Here are my suggestions:\n```json\n[{"item": "Sugar", "priority": "High"}]\n```\nHope this helps!'
        self.assertEqual(extract_json_array(text), [{'item': 'Sugar', 'priority': 'High'}])

    def test_object_wrapping_a_list(self):
        self.assertEqual(extract_json_array('{"products": [{"name": "Tea"}]}'), [{'name': 'Tea'}])

    def test_unparseable_text(self):
        with self.assertRaises(UpstreamParseError):
            extract_json_array('Sorry, I cannot help with that [yet')

    def test_non_list_json(self):
        with self.assertRaises(UpstreamParseError):
            extract_json_array('"just a string"')

    def test_empty(self):
        with self.assertRaises(UpstreamParseError):
            extract_json_array('')


@override_settings(AI_GATEWAY_API_KEY='test-key', AI_GATEWAY_URL='https://gateway.test/v1/chat/completions')
class LLMGatewayTests(SimpleTestCase):
    """Test gateway request and error mapping"""

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_returns_content(self, post):
        post.return_value = gateway_response('hello')
        self.assertEqual(LLMGateway().complete([{'role': 'user', 'content': 'hi'}]), 'hello')
        args, kwargs = post.call_args
        self.assertEqual(args[0], 'https://gateway.test/v1/chat/completions')
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer test-key')
        self.assertEqual(kwargs['json']['messages'][0]['content'], 'hi')
        self.assertIn('timeout', kwargs)

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_rate_limited(self, post):
        post.return_value = gateway_response(status_code=429)
        with self.assertRaises(UpstreamRateLimitError):
            LLMGateway().complete([])

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_payment_required(self, post):
        post.return_value = gateway_response(status_code=402)
        with self.assertRaises(UpstreamPaymentRequiredError):
            LLMGateway().complete([])

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_server_error(self, post):
        post.return_value = gateway_response(status_code=500)
        with self.assertRaises(UpstreamError):
            LLMGateway().complete([])

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_transport_failure(self, post):
        post.side_effect = requests.exceptions.ConnectionError('refused')
        with self.assertRaises(UpstreamError):
            LLMGateway().complete([])

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_missing_content(self, post):
        post.return_value = gateway_response(body={'choices': []})
        with self.assertRaises(UpstreamParseError):
            LLMGateway().complete([])

    @override_settings(AI_GATEWAY_API_KEY='')
    def test_missing_key(self):
        with self.assertRaises(ConfigurationError):
            LLMGateway().complete([])


class ServiceBoundsTests(SimpleTestCase):
    """Test payload bounds are enforced before any gateway call"""

    def setUp(self):
        self.gateway = mock.Mock()

    def test_too_many_inventory_items(self):
        with self.assertRaises(ValidationError):
            services.suggest_restock([{}] * 1001, [], gateway=self.gateway)
        self.gateway.complete.assert_not_called()

    def test_inventory_must_be_list(self):
        with self.assertRaises(ValidationError):
            services.narrate_analytics([], 'not a list', 'week', gateway=self.gateway)

    def test_rows_must_be_objects(self):
        with self.assertRaises(ValidationError):
            services.suggest_restock([1, 2], [], gateway=self.gateway)
        self.gateway.complete.assert_not_called()

    def test_analytics_payload_over_text_limit(self):
        transactions = [{'note': 'x' * 60000}]
        inventory = [{'name': 'y' * 60000}]
        with self.assertRaises(ValidationError):
            services.narrate_analytics(transactions, inventory, 'week', gateway=self.gateway)
        self.gateway.complete.assert_not_called()

    def test_period_too_long(self):
        with self.assertRaises(ValidationError):
            services.narrate_analytics([], [], 'x' * 21, gateway=self.gateway)

    def test_file_too_large(self):
        with self.assertRaises(ValidationError):
            services.extract_products('a' * 100001, 'stock.csv', gateway=self.gateway)

    def test_file_name_too_long(self):
        with self.assertRaises(ValidationError):
            services.extract_products('Rice,10', 'f' * 256, gateway=self.gateway)
        self.gateway.complete.assert_not_called()

    def test_extract_products_normalizes_rows(self):
        self.gateway.complete.return_value = json.dumps([
            {'name': ' Rice ', 'price': 60, 'stock': 100, 'unit': 'kg', 'extra': 'ignored'},
            {'name': ''},
            'garbage',
        ])
        products = services.extract_products('Rice,60,100', 'stock.csv', gateway=self.gateway)
        self.assertEqual(len(products), 1)
        self.assertEqual(products[0]['name'], 'Rice')
        self.assertNotIn('extra', products[0])
        self.assertIsNone(products[0]['minimum_stock'])


@override_settings(AI_GATEWAY_API_KEY='test-key')
class AssistantAPITests(TestCase):
    """Test assistant endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.sugar = TestDataFactory.create_product(self.user, name='Sugar', quantity_on_hand=2, reorder_threshold=10)

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_restock_suggestions_from_own_data(self, post):
        TestDataFactory.create_sale(self.user, [(self.sugar, 1)])
        post.return_value = gateway_response(
            'Sure!\n[{"item": "Sugar", "priority": "High", "orderQuantity": "20 kg"}]'
        )
        response = self.client.post('/api/v1/assistant/restock-suggestions/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['result'][0]['item'], 'Sugar')
        prompt = post.call_args[1]['json']['messages'][1]['content']
        self.assertIn('Sugar: Current stock 2', prompt)
        self.assertIn('Sugar: Sold 1', prompt)

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_restock_rejects_non_object_rows(self, post):
        response = self.client.post('/api/v1/assistant/restock-suggestions/', {
            'inventory': [1, 2], 'sales': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'error': 'Invalid inventory data'})
        post.assert_not_called()

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_unparseable_answer(self, post):
        post.return_value = gateway_response('I could not find anything useful.')
        response = self.client.post('/api/v1/assistant/restock-suggestions/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertIn('error', response.data)

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_rate_limit_passthrough(self, post):
        post.return_value = gateway_response(status_code=429)
        response = self.client.post('/api/v1/assistant/analytics-insights/', {'period': 'week'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response.data, {'error': 'Rate limit exceeded. Please try again later.'})

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_analytics_insights(self, post):
        post.return_value = gateway_response('Sales grew 10% this week.')
        response = self.client.post('/api/v1/assistant/analytics-insights/', {
            'period': 'month', 'transactions': [{'total_amount': '42.00'}], 'inventory': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['result'], 'Sales grew 10% this week.')

    def test_analytics_invalid_period(self):
        response = self.client.post('/api/v1/assistant/analytics-insights/', {'period': 'forever'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @mock.patch('maninventory.assistant.gateway.requests.post')
    def test_extract_products(self, post):
        post.return_value = gateway_response(
            '[{"name": "Tea", "price": 120, "stock": 30, "unit": "pack", "minimum_stock": 6}]'
        )
        response = self.client.post('/api/v1/assistant/extract-products/', {
            'file_content': 'Tea,120,30', 'file_name': 'stock.csv',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['result'][0]['name'], 'Tea')

    def test_extract_products_missing_content(self):
        response = self.client.post('/api/v1/assistant/extract-products/', {'file_name': 'x.csv'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {'error': 'Invalid file content'})

    @override_settings(AI_GATEWAY_API_KEY='')
    def test_missing_key_is_configuration_error(self):
        response = self.client.post('/api/v1/assistant/extract-products/', {
            'file_content': 'Tea,120,30', 'file_name': 'stock.csv',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'error': 'Service configuration error'})
