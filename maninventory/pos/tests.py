"""
Test suite for POS module
Tests: bill drafts, checkout settlement, idempotent retries, receipts, cart and sales endpoints
"""
import uuid
from decimal import Decimal
from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from maninventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from maninventory.core.exceptions import (
    InsufficientStockError, NotFoundError, PaymentMethodUnavailableError, SettlementFailedError,
    StoreUnavailableError, ValidationError,
)
from maninventory.core.models import AuditLog
from maninventory.catalog.models import CartItem, Product
from maninventory.catalog.store import CatalogStore
from maninventory.pos.billing import BillDraft, to_currency
from maninventory.pos.ledger import LedgerOutcome, LedgerStore, LedgerWrite
from maninventory.pos.models import Sale, SaleStockAdjustment
from maninventory.pos.receipts import assemble_receipt, build_upi_uri, render_text
from maninventory.pos.settlement import CheckoutSettlement


def make_product(pk, name, price, stock, unit='pcs'):
    return Product(pk=pk, name=name, unit_price=Decimal(price), quantity_on_hand=stock, unit=unit)


class BillDraftTests(SimpleTestCase):
    """Test the in-memory bill"""

    def setUp(self):
        self.a = make_product(1, 'Atta', '10.00', 10, 'kg')
        self.b = make_product(2, 'Biscuits', '20.00', 5, 'pack')
        self.c = make_product(3, 'Chai', '7.35', 50)

    def test_worked_example_totals(self):
        draft = BillDraft(tax_rate=Decimal('0.05'))
        draft.add_item(self.a, 2)
        draft.add_item(self.b, 1)
        totals = draft.compute_totals()
        self.assertEqual(to_currency(totals.subtotal), Decimal('40.00'))
        self.assertEqual(to_currency(totals.tax_amount), Decimal('2.00'))
        self.assertEqual(to_currency(totals.total), Decimal('42.00'))

    def test_subtotal_matches_recomputation_after_edits(self):
        draft = BillDraft(tax_rate=Decimal('0.05'))
        draft.add_item(self.a, 3)
        draft.add_item(self.c, 4)
        draft.add_item(self.b)
        draft.set_quantity(self.c.pk, 9)
        draft.add_item(self.a, 1)
        draft.remove_item(self.b.pk)
        draft.set_quantity(self.a.pk, 2)

        expected = sum(line.unit_price * line.quantity for line in draft.lines)
        totals = draft.compute_totals()
        self.assertEqual(totals.subtotal, expected)
        self.assertEqual(totals.subtotal, Decimal('10.00') * 2 + Decimal('7.35') * 9)
        self.assertEqual(totals.total, totals.subtotal + totals.subtotal * Decimal('0.05'))

    def test_totals_are_exact(self):
        draft = BillDraft(tax_rate=Decimal('0.05'))
        draft.add_item(self.c, 3)
        totals = draft.compute_totals()
        self.assertEqual(totals.tax_amount, Decimal('1.1025'))
        self.assertEqual(totals.total, Decimal('23.1525'))

    def test_add_merges_existing_line(self):
        draft = BillDraft()
        draft.add_item(self.a, 2)
        draft.add_item(self.a, 3)
        self.assertEqual(len(draft), 1)
        self.assertEqual(draft.lines[0].quantity, 5)

    def test_add_beyond_stock(self):
        draft = BillDraft()
        draft.add_item(self.b, 4)
        with self.assertRaises(InsufficientStockError) as ctx:
            draft.add_item(self.b, 2)
        self.assertEqual(ctx.exception.available, 5)
        self.assertEqual(draft.lines[0].quantity, 4)

    def test_add_requires_positive_quantity(self):
        with self.assertRaises(ValidationError):
            BillDraft().add_item(self.a, 0)

    def test_set_quantity_zero_equals_remove(self):
        first = BillDraft()
        second = BillDraft()
        for draft in (first, second):
            draft.add_item(self.a, 2)
            draft.add_item(self.b, 1)
        first.set_quantity(self.a.pk, 0)
        second.remove_item(self.a.pk)
        self.assertEqual(first.lines, second.lines)
        self.assertNotIn(self.a.pk, first)

    def test_set_quantity_above_ceiling_reports_available(self):
        draft = BillDraft()
        draft.add_item(self.b, 1)
        with self.assertRaises(InsufficientStockError) as ctx:
            draft.set_quantity(self.b.pk, 8)
        self.assertEqual(ctx.exception.available, 5)
        draft.set_quantity(self.b.pk, ctx.exception.available)
        self.assertEqual(draft.lines[0].quantity, 5)

    def test_set_quantity_unknown_product(self):
        with self.assertRaises(NotFoundError):
            BillDraft().set_quantity(99, 1)

    def test_remove_is_idempotent(self):
        draft = BillDraft()
        draft.add_item(self.a)
        draft.remove_item(self.a.pk)
        draft.remove_item(self.a.pk)
        self.assertTrue(draft.is_empty)

    def test_lines_keep_insertion_order(self):
        draft = BillDraft()
        draft.add_item(self.c)
        draft.add_item(self.a)
        draft.add_item(self.b)
        draft.add_item(self.c)
        self.assertEqual([line.product_id for line in draft.lines], [3, 1, 2])

    def test_from_products_missing_id(self):
        with self.assertRaises(NotFoundError):
            BillDraft.from_products({1: self.a}, [(1, 1), (2, 1)])

    @override_settings(POS_TAX_RATE=Decimal('0.18'))
    def test_tax_rate_from_settings(self):
        self.assertEqual(BillDraft().tax_rate, Decimal('0.18'))


class SettlementTests(TestCase):
    """Test the three settlement steps against real stores"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.shop = TestDataFactory.create_shop_settings(self.user)
        self.rice = TestDataFactory.create_product(self.user, name='Rice', unit_price='10.00', quantity_on_hand=10)
        self.dal = TestDataFactory.create_product(self.user, name='Dal', unit_price='20.00', quantity_on_hand=10)
        self.catalog = CatalogStore(self.user)
        self.ledger = LedgerStore(self.user)
        self.settlement = CheckoutSettlement(self.catalog, self.ledger, self.shop)

    def draft(self, *lines):
        products = self.catalog.get_products(p.pk for p, _ in lines)
        return BillDraft.from_products(products, [(p.pk, q) for p, q in lines], tax_rate=Decimal('0.05'))

    def stock(self, product):
        product.refresh_from_db()
        return product.quantity_on_hand

    def test_settle_records_sale_and_decrements(self):
        draft = self.draft((self.rice, 2), (self.dal, 1))
        result = self.settlement.settle(draft, 'cash')

        self.assertEqual(result.outcome, LedgerOutcome.CREATED)
        self.assertIsNone(result.warning)
        self.assertEqual(result.sale.subtotal, Decimal('40.00'))
        self.assertEqual(result.sale.tax_amount, Decimal('2.00'))
        self.assertEqual(result.sale.total_amount, Decimal('42.00'))
        self.assertEqual(result.sale.payment_status, 'completed')
        self.assertEqual(self.stock(self.rice), 8)
        self.assertEqual(self.stock(self.dal), 9)
        self.assertTrue(draft.is_empty)

    def test_stored_total_is_sum_of_rounded_parts(self):
        chai = TestDataFactory.create_product(self.user, name='Chai', unit_price='0.15', quantity_on_hand=10)
        result = self.settlement.settle(self.draft((chai, 3)), 'cash')
        sale = result.sale
        self.assertEqual(sale.subtotal, Decimal('0.45'))
        self.assertEqual(sale.tax_amount, Decimal('0.02'))
        self.assertEqual(sale.total_amount, sale.subtotal + sale.tax_amount)

    def test_settle_clears_working_cart(self):
        TestDataFactory.create_cart_item(self.user, self.rice, 2)
        self.settlement.settle(self.draft((self.rice, 2)), 'cash')
        self.assertFalse(CartItem.objects.filter(owner=self.user).exists())

    def test_empty_draft_rejected_before_store_calls(self):
        with mock.patch.object(LedgerStore, 'insert') as insert:
            with self.assertRaises(ValidationError):
                self.settlement.settle(BillDraft(), 'cash')
            insert.assert_not_called()

    def test_unknown_payment_method(self):
        with self.assertRaises(ValidationError):
            self.settlement.settle(self.draft((self.rice, 1)), 'cheque')

    def test_upi_requires_upi_id(self):
        self.shop.upi_id = ''
        self.shop.save()
        with self.assertRaises(PaymentMethodUnavailableError):
            self.settlement.settle(self.draft((self.rice, 1)), 'upi')
        self.assertEqual(Sale.objects.count(), 0)

    def test_upi_with_upi_id(self):
        result = self.settlement.settle(self.draft((self.rice, 1)), 'upi')
        self.assertEqual(result.sale.payment_method, 'upi')

    def test_ledger_failure_leaves_stock_unchanged(self):
        draft = self.draft((self.rice, 2), (self.dal, 1))
        with mock.patch.object(LedgerStore, 'insert', side_effect=StoreUnavailableError()):
            with self.assertRaises(SettlementFailedError) as ctx:
                self.settlement.settle(draft, 'cash')
        self.assertEqual(ctx.exception.message, 'Payment could not be recorded, nothing changed.')
        self.assertEqual(self.stock(self.rice), 10)
        self.assertEqual(self.stock(self.dal), 10)
        self.assertEqual(Sale.objects.count(), 0)
        self.assertFalse(draft.is_empty)

    def test_ledger_rejected_outcome(self):
        with mock.patch.object(LedgerStore, 'insert', return_value=LedgerWrite(LedgerOutcome.FAILED)):
            with self.assertRaises(SettlementFailedError):
                self.settlement.settle(self.draft((self.rice, 1)), 'cash')
        self.assertEqual(self.stock(self.rice), 10)

    def test_one_failed_decrement_keeps_the_other(self):
        real_decrement = CatalogStore.decrement_quantity
        dal_id = self.dal.pk

        def flaky(store, product_id, quantity):
            if product_id == dal_id:
                raise StoreUnavailableError()
            return real_decrement(store, product_id, quantity)

        with mock.patch.object(CatalogStore, 'decrement_quantity', autospec=True, side_effect=flaky):
            result = self.settlement.settle(self.draft((self.rice, 2), (self.dal, 1)), 'cash')

        self.assertEqual(result.outcome, LedgerOutcome.CREATED)
        self.assertTrue(result.is_partial)
        self.assertEqual([f.name for f in result.stock_failures], ['Dal'])
        self.assertEqual(result.warning.message, 'Payment recorded, but stock may be out of date for: Dal')
        self.assertTrue(Sale.objects.filter(pk=result.sale.pk).exists())
        self.assertEqual(self.stock(self.rice), 8)
        self.assertEqual(self.stock(self.dal), 10)

    def test_competing_settlements_apply_exactly_one_decrement(self):
        self.rice.quantity_on_hand = 5
        self.rice.save()
        first = self.draft((self.rice, 3))
        second = self.draft((self.rice, 3))

        one = self.settlement.settle(first, 'cash')
        two = self.settlement.settle(second, 'cash')

        self.assertFalse(one.is_partial)
        self.assertTrue(two.is_partial)
        self.assertEqual(two.stock_failures[0].reason, 'out_of_stock')
        self.assertEqual(self.stock(self.rice), 2)
        self.assertEqual(SaleStockAdjustment.objects.filter(product_ref=self.rice.pk).count(), 1)
        self.assertEqual(Sale.objects.count(), 2)

    def test_interleaved_settlement_sees_stale_stock(self):
        self.rice.quantity_on_hand = 5
        self.rice.save()
        # Both bills are built from the same reading of 5 units
        first = self.draft((self.rice, 3))
        second = self.draft((self.rice, 3))
        self.assertEqual(first.ceiling(self.rice.pk), 5)
        self.assertEqual(second.ceiling(self.rice.pk), 5)

        real_decrement = CatalogStore.decrement_quantity
        competing = {}

        def decrement_after_competitor(store, product_id, quantity):
            # The competing checkout commits between this one's ledger write and its decrement
            if 'started' not in competing:
                competing['started'] = True
                competing['result'] = CheckoutSettlement(
                    CatalogStore(self.user), LedgerStore(self.user), self.shop,
                ).settle(second, 'cash')
            return real_decrement(store, product_id, quantity)

        with mock.patch.object(CatalogStore, 'decrement_quantity', autospec=True,
                               side_effect=decrement_after_competitor):
            late = self.settlement.settle(first, 'cash')

        self.assertFalse(competing['result'].is_partial)
        self.assertTrue(late.is_partial)
        self.assertEqual(late.stock_failures[0].reason, 'out_of_stock')
        self.assertEqual(self.stock(self.rice), 2)
        self.assertEqual(Sale.objects.count(), 2)
        self.assertEqual(SaleStockAdjustment.objects.filter(product_ref=self.rice.pk).count(), 1)

    def test_deleted_product_is_reported(self):
        draft = self.draft((self.rice, 1), (self.dal, 1))
        Product.objects.filter(pk=self.dal.pk).delete()
        result = self.settlement.settle(draft, 'cash')
        self.assertEqual([f.reason for f in result.stock_failures], ['not_found'])
        self.assertEqual(self.stock(self.rice), 9)

    def test_retry_with_same_settlement_id(self):
        settlement_id = uuid.uuid4()
        first = self.settlement.settle(self.draft((self.rice, 2)), 'cash', settlement_id)
        second = self.settlement.settle(self.draft((self.rice, 2)), 'cash', str(settlement_id))

        self.assertEqual(first.outcome, LedgerOutcome.CREATED)
        self.assertEqual(second.outcome, LedgerOutcome.ALREADY_EXISTS)
        self.assertEqual(second.sale.pk, first.sale.pk)
        self.assertEqual(Sale.objects.count(), 1)
        self.assertEqual(self.stock(self.rice), 8)

    def test_retry_applies_only_missing_decrements(self):
        settlement_id = uuid.uuid4()
        dal_id = self.dal.pk
        real_decrement = CatalogStore.decrement_quantity

        def flaky(store, product_id, quantity):
            if product_id == dal_id:
                raise StoreUnavailableError()
            return real_decrement(store, product_id, quantity)

        with mock.patch.object(CatalogStore, 'decrement_quantity', autospec=True, side_effect=flaky):
            first = self.settlement.settle(self.draft((self.rice, 2), (self.dal, 1)), 'cash', settlement_id)
        self.assertTrue(first.is_partial)

        second = self.settlement.settle(self.draft((self.rice, 2), (self.dal, 1)), 'cash', settlement_id)
        self.assertEqual(second.outcome, LedgerOutcome.ALREADY_EXISTS)
        self.assertFalse(second.is_partial)
        self.assertEqual(self.stock(self.rice), 8)
        self.assertEqual(self.stock(self.dal), 9)

    def test_invalid_settlement_id(self):
        with self.assertRaises(ValidationError):
            self.settlement.settle(self.draft((self.rice, 1)), 'cash', 'not-a-uuid')

    def test_resync_sale_stock(self):
        sale = TestDataFactory.create_sale(self.user, [(self.rice, 4)], stock_applied=False)
        result = self.settlement.resync_sale_stock(sale)
        self.assertFalse(result.is_partial)
        self.assertEqual(self.stock(self.rice), 6)
        self.settlement.resync_sale_stock(sale)
        self.assertEqual(self.stock(self.rice), 6)


class ReceiptTests(TestCase):
    """Test receipt assembly from stored sales"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.shop = TestDataFactory.create_shop_settings(self.user, shop_name='Ram & Sons', location='Nagpur')
        self.chai = TestDataFactory.create_product(self.user, name='Chai', unit_price='0.15')

    def test_receipt_reproduces_stored_total(self):
        sale = TestDataFactory.create_sale(self.user, [(self.chai, 3)])
        receipt = assemble_receipt(sale, self.shop)
        self.assertEqual(receipt.total, sale.total_amount)
        self.assertEqual(receipt.subtotal, Decimal('0.45'))
        self.assertEqual(receipt.tax_amount, Decimal('0.02'))
        self.assertEqual(receipt.as_dict()['total'], '0.47')
        self.assertIsNone(receipt.upi_uri)

    def test_receipt_uses_stored_amounts(self):
        sale = TestDataFactory.create_sale(self.user, [(self.chai, 3)])
        Sale.objects.filter(pk=sale.pk).update(total_amount=Decimal('99.99'))
        sale.refresh_from_db()
        self.assertEqual(assemble_receipt(sale).total, Decimal('99.99'))

    def test_upi_receipt_carries_payment_link(self):
        sale = TestDataFactory.create_sale(self.user, [(self.chai, 3)], payment_method='upi')
        receipt = assemble_receipt(sale, self.shop)
        self.assertEqual(receipt.upi_uri, 'upi://pay?pa=shop@okbank&pn=Ram%20%26%20Sons&am=0.47&cu=INR')

    def test_build_upi_uri(self):
        self.assertEqual(
            build_upi_uri('kirana@ybl', 'Gupta Store', Decimal('42')),
            'upi://pay?pa=kirana@ybl&pn=Gupta%20Store&am=42.00&cu=INR',
        )

    def test_build_upi_uri_with_note(self):
        self.assertEqual(
            build_upi_uri('kirana@ybl', 'Gupta Store', Decimal('99.5'), note='Milk & bread'),
            'upi://pay?pa=kirana@ybl&pn=Gupta%20Store&am=99.50&cu=INR&tn=Milk%20%26%20bread',
        )

    def test_render_text(self):
        sale = TestDataFactory.create_sale(self.user, [(self.chai, 3)])
        text = render_text(assemble_receipt(sale, self.shop))
        self.assertIn('Ram & Sons', text)
        self.assertIn(sale.sale_number, text)
        self.assertIn('Tax (5%)', text)
        self.assertRegex(text, r'TOTAL\s+0\.47')


class CartAPITests(TestCase):
    """Test the working cart endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.product = TestDataFactory.create_product(self.user, name='Soap', unit_price='25.00', quantity_on_hand=4)

    def test_add_and_list(self):
        response = self.client.post('/api/v1/pos/cart/', {'product_id': self.product.pk, 'quantity': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post('/api/v1/pos/cart/', {'product_id': self.product.pk, 'quantity': 1}, format='json')
        self.assertEqual(response.data['items'][0]['quantity'], 3)
        self.assertEqual(response.data['subtotal'], '75.00')
        self.assertEqual(response.data['tax_amount'], '3.75')
        self.assertEqual(response.data['total'], '78.75')
        self.assertTrue(AuditLog.objects.filter(action='cart_add').exists())

    def test_add_beyond_stock(self):
        response = self.client.post('/api/v1/pos/cart/', {'product_id': self.product.pk, 'quantity': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'insufficient_stock')
        self.assertEqual(response.data['available'], 4)

    def test_patch_zero_removes(self):
        TestDataFactory.create_cart_item(self.user, self.product, 2)
        response = self.client.patch(f'/api/v1/pos/cart/{self.product.pk}/', {'quantity': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['items'], [])

    def test_patch_beyond_stock(self):
        TestDataFactory.create_cart_item(self.user, self.product, 2)
        response = self.client.patch(f'/api/v1/pos/cart/{self.product.pk}/', {'quantity': 9}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_clear_cart(self):
        TestDataFactory.create_cart_item(self.user, self.product, 2)
        response = self.client.delete('/api/v1/pos/cart/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(CartItem.objects.filter(owner=self.user).exists())


class CheckoutAPITests(TestCase):
    """Test the checkout endpoint"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.shop = TestDataFactory.create_shop_settings(self.user, upi_id='')
        self.a = TestDataFactory.create_product(self.user, name='A', unit_price='10.00', quantity_on_hand=10)
        self.b = TestDataFactory.create_product(self.user, name='B', unit_price='20.00', quantity_on_hand=10)

    def checkout(self, **data):
        return self.client.post('/api/v1/pos/checkout/', data, format='json')

    def test_direct_checkout(self):
        response = self.checkout(items=[
            {'product_id': self.a.pk, 'quantity': 2},
            {'product_id': self.b.pk, 'quantity': 1},
        ], payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['outcome'], 'created')
        self.assertEqual(response.data['sale']['total_amount'], '42.00')
        self.assertEqual(response.data['receipt']['total'], '42.00')
        self.assertTrue(response.data['sale']['stock_synced'])
        self.assertNotIn('warning', response.data)
        self.a.refresh_from_db()
        self.assertEqual(self.a.quantity_on_hand, 8)
        self.assertTrue(AuditLog.objects.filter(action='checkout').exists())

    def test_checkout_from_cart(self):
        TestDataFactory.create_cart_item(self.user, self.a, 3)
        response = self.checkout(payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['sale']['subtotal'], '30.00')
        self.assertFalse(CartItem.objects.filter(owner=self.user).exists())

    def test_empty_cart_checkout(self):
        response = self.checkout(payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'validation_error')

    def test_retry_returns_existing_sale(self):
        settlement_id = str(uuid.uuid4())
        items = [{'product_id': self.a.pk, 'quantity': 2}]
        first = self.checkout(items=items, payment_method='cash', settlement_id=settlement_id)
        second = self.checkout(items=items, payment_method='cash', settlement_id=settlement_id)
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(second.data['outcome'], 'already_exists')
        self.assertEqual(first.data['sale']['id'], second.data['sale']['id'])
        self.a.refresh_from_db()
        self.assertEqual(self.a.quantity_on_hand, 8)

    def test_upi_without_upi_id(self):
        response = self.checkout(items=[{'product_id': self.a.pk, 'quantity': 1}], payment_method='upi')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(Sale.objects.count(), 0)

    def test_quantity_above_stock(self):
        response = self.checkout(items=[{'product_id': self.a.pk, 'quantity': 11}], payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['available'], 10)

    def test_unknown_product(self):
        other = TestDataFactory.create_product(TestDataFactory.create_user())
        response = self.checkout(items=[{'product_id': other.pk, 'quantity': 1}], payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_duplicate_lines_rejected(self):
        response = self.checkout(items=[
            {'product_id': self.a.pk, 'quantity': 1},
            {'product_id': self.a.pk, 'quantity': 1},
        ], payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_ledger_failure(self):
        with mock.patch.object(LedgerStore, 'insert', side_effect=StoreUnavailableError()):
            response = self.checkout(items=[{'product_id': self.a.pk, 'quantity': 1}], payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['message'], 'Payment could not be recorded, nothing changed.')

    def test_partial_sync_warning(self):
        real_decrement = CatalogStore.decrement_quantity
        b_id = self.b.pk

        def flaky(store, product_id, quantity):
            if product_id == b_id:
                raise StoreUnavailableError()
            return real_decrement(store, product_id, quantity)

        with mock.patch.object(CatalogStore, 'decrement_quantity', autospec=True, side_effect=flaky):
            response = self.checkout(items=[
                {'product_id': self.a.pk, 'quantity': 1},
                {'product_id': self.b.pk, 'quantity': 1},
            ], payment_method='cash')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['warning']['code'], 'partial_stock_sync')
        self.assertEqual(response.data['warning']['items'][0]['name'], 'B')
        self.assertFalse(response.data['sale']['stock_synced'])


class UpiRequestAPITests(TestCase):
    """Test standalone UPI payment requests"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.shop = TestDataFactory.create_shop_settings(self.user)

    def request_payment(self, **data):
        return self.client.post('/api/v1/pos/upi-request/', data, format='json')

    def test_payment_link(self):
        response = self.request_payment(amount='250', note='Advance for order')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data['upi_uri'],
            'upi://pay?pa=shop@okbank&pn=Test%20Kirana&am=250.00&cu=INR&tn=Advance%20for%20order',
        )
        self.assertEqual(response.data['amount'], '250.00')
        self.assertFalse(Sale.objects.exists())

    def test_note_is_optional(self):
        response = self.request_payment(amount='12.50')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertNotIn('tn=', response.data['upi_uri'])

    def test_amount_must_be_positive(self):
        for amount in ('0', '-5'):
            response = self.request_payment(amount=amount)
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertIn('amount', response.data)

    def test_requires_upi_id(self):
        self.shop.upi_id = ''
        self.shop.save()
        response = self.request_payment(amount='100')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(response.data['error'], 'payment_method_unavailable')

    def test_requires_shop_settings(self):
        self.shop.delete()
        response = self.request_payment(amount='100')
        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)


class SaleAPITests(TestCase):
    """Test sale listing, receipts and stock resync"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        TestDataFactory.create_shop_settings(self.user)
        self.product = TestDataFactory.create_product(self.user, name='Ghee', unit_price='550.00', quantity_on_hand=10)

    def test_list_and_filter(self):
        TestDataFactory.create_sale(self.user, [(self.product, 1)], payment_method='cash')
        TestDataFactory.create_sale(self.user, [(self.product, 2)], payment_method='upi')
        TestDataFactory.create_sale(TestDataFactory.create_user(), [(self.product, 1)])
        response = self.client.get('/api/v1/pos/sales/')
        self.assertEqual(len(response.data), 2)
        response = self.client.get('/api/v1/pos/sales/?payment_method=upi')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['item_count'], 1)

    def test_detail_of_other_owner(self):
        sale = TestDataFactory.create_sale(TestDataFactory.create_user(), [(self.product, 1)])
        response = self.client.get(f'/api/v1/pos/sales/{sale.pk}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_receipt_json_and_text(self):
        sale = TestDataFactory.create_sale(self.user, [(self.product, 1)])
        response = self.client.get(f'/api/v1/pos/sales/{sale.pk}/receipt/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], '577.50')

        response = self.client.get(f'/api/v1/pos/sales/{sale.pk}/receipt/?output=text')
        self.assertEqual(response['Content-Type'], 'text/plain; charset=utf-8')
        self.assertIn('577.50', response.content.decode())

    def test_resync_endpoint(self):
        sale = TestDataFactory.create_sale(self.user, [(self.product, 3)], stock_applied=False)
        response = self.client.post(f'/api/v1/pos/sales/{sale.pk}/resync-stock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['stock_synced'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity_on_hand, 7)


class ResyncCommandTests(TestCase):
    """Test the resync_sale_stock management command"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.product = TestDataFactory.create_product(self.user, quantity_on_hand=10)

    def test_resyncs_unsynced_sales_only(self):
        TestDataFactory.create_sale(self.user, [(self.product, 2)])
        pending = TestDataFactory.create_sale(self.user, [(self.product, 3)], stock_applied=False)
        out = StringIO()
        call_command('resync_sale_stock', stdout=out)
        self.assertIn('Sales to resync: 1', out.getvalue())
        self.assertIn(f'{pending.sale_number}: stock in sync', out.getvalue())
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity_on_hand, 7)

    def test_dry_run(self):
        TestDataFactory.create_sale(self.user, [(self.product, 3)], stock_applied=False)
        out = StringIO()
        call_command('resync_sale_stock', '--dry-run', stdout=out)
        self.product.refresh_from_db()
        self.assertEqual(self.product.quantity_on_hand, 10)
