"""
Checkout settlement: turn a BillDraft into a recorded sale and adjusted stock.

Steps, in order:

1. Write the sale to the ledger. If this fails nothing else happens and the
   caller gets SettlementFailedError.
2. Decrement stock line by line with a conditional update. Each decrement is
   committed together with a SaleStockAdjustment row, so a line is applied at
   most once per sale. Failures are collected, never retried here.
3. Clear the draft and the working cart, and report a partial-sync warning
   if any line failed.

Once step 1 succeeds the sale stands, whatever happens in step 2.
"""
import logging
import uuid
from dataclasses import dataclass, field

from django.conf import settings
from django.db import DatabaseError, transaction

from maninventory.core.cache_utils import invalidate_owner_cache
from maninventory.core.exceptions import (
    NotFoundError, OutOfStockAtSettlementError, PartialStockSyncWarning,
    PaymentMethodUnavailableError, SettlementFailedError, StoreUnavailableError,
    ValidationError,
)
from .ledger import LedgerOutcome

logger = logging.getLogger(__name__)

STOCK_SYNC_ERRORS = (NotFoundError, OutOfStockAtSettlementError, StoreUnavailableError)


@dataclass
class StockSyncFailure:
    product_id: int
    name: str
    quantity: int
    reason: str

    def as_dict(self):
        return {
            'product_id': self.product_id,
            'name': self.name,
            'quantity': self.quantity,
            'reason': self.reason,
        }


@dataclass
class SettlementResult:
    sale: object
    outcome: LedgerOutcome
    stock_failures: list = field(default_factory=list)
    warning: PartialStockSyncWarning = None

    @property
    def created(self):
        return self.outcome == LedgerOutcome.CREATED

    @property
    def is_partial(self):
        return bool(self.stock_failures)


def parse_settlement_id(value):
    if value is None or value == '':
        return uuid.uuid4()
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError('settlement_id must be a UUID')


class CheckoutSettlement:
    def __init__(self, catalog, ledger, shop_settings=None):
        self.catalog = catalog
        self.ledger = ledger
        self.shop_settings = shop_settings

    def _validate(self, draft, payment_method):
        if draft is None or draft.is_empty:
            raise ValidationError('Bill is empty')
        methods = getattr(settings, 'POS_PAYMENT_METHODS', ('cash', 'upi'))
        if payment_method not in methods:
            raise ValidationError(f'Unknown payment method: {payment_method}')
        if payment_method == 'upi' and not (self.shop_settings and self.shop_settings.upi_id):
            raise PaymentMethodUnavailableError()

    def settle(self, draft, payment_method, settlement_id=None):
        self._validate(draft, payment_method)
        settlement_id = parse_settlement_id(settlement_id)

        try:
            write = self.ledger.insert(draft, payment_method, settlement_id)
        except StoreUnavailableError as e:
            logger.error(f"Settlement {settlement_id} failed at ledger write: {e.message}")
            raise SettlementFailedError() from e
        if write.outcome == LedgerOutcome.FAILED:
            logger.error(f"Settlement {settlement_id} rejected by ledger")
            raise SettlementFailedError()

        failures = self._apply_stock(write.sale)

        draft.clear()
        self.catalog.clear_working_cart()
        invalidate_owner_cache(self.catalog.owner.pk)

        result = self._result(write.sale, write.outcome, failures)
        logger.info(
            f"Settlement {settlement_id}: sale {write.sale.sale_number} {write.outcome.value}, "
            f"{len(failures)} stock line(s) not synced"
        )
        return result

    def resync_sale_stock(self, sale):
        """Apply any stock decrements still missing for an already recorded sale"""
        failures = self._apply_stock(sale)
        invalidate_owner_cache(self.catalog.owner.pk)
        return self._result(sale, LedgerOutcome.ALREADY_EXISTS, failures)

    def _result(self, sale, outcome, failures):
        warning = PartialStockSyncWarning(failures) if failures else None
        return SettlementResult(sale=sale, outcome=outcome, stock_failures=failures, warning=warning)

    def _apply_stock(self, sale):
        failures = []
        try:
            applied = self.ledger.applied_refs(sale)
            items = list(sale.items.all())
        except (StoreUnavailableError, DatabaseError) as e:
            logger.error(f"Could not read lines of sale {sale.pk} for stock sync: {str(e)}")
            return [StockSyncFailure(None, 'all items', 0, StoreUnavailableError.error_code)]

        for item in items:
            if item.product_ref in applied:
                continue
            try:
                with transaction.atomic():
                    remaining = self.catalog.decrement_quantity(item.product_ref, item.quantity)
                    self.ledger.record_adjustment(sale, item)
            except STOCK_SYNC_ERRORS as e:
                logger.warning(f"Stock not updated for {item.name} on sale {sale.sale_number}: {e.message}")
                failures.append(StockSyncFailure(item.product_ref, item.name, item.quantity, e.error_code))
                continue
            except DatabaseError as e:
                logger.warning(f"Stock not updated for {item.name} on sale {sale.sale_number}: {str(e)}")
                failures.append(StockSyncFailure(
                    item.product_ref, item.name, item.quantity, StoreUnavailableError.error_code,
                ))
                continue
            logger.debug(f"Sale {sale.sale_number}: {item.name} -{item.quantity}, {remaining} left")
        return failures
