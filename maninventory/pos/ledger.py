"""
Ledger store: append-only sale records keyed by settlement id.

A sale is inserted once per settlement id. Inserting again with the same id
answers ALREADY_EXISTS with the stored sale instead of writing a second one,
which is what makes a retried checkout safe.
"""
import logging
import uuid
from dataclasses import dataclass
from enum import Enum

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from maninventory.core.exceptions import StoreUnavailableError
from maninventory.catalog.models import Product
from .billing import to_currency
from .models import Sale, SaleItem, SaleStockAdjustment

logger = logging.getLogger(__name__)


class LedgerOutcome(Enum):
    CREATED = 'created'
    ALREADY_EXISTS = 'already_exists'
    FAILED = 'failed'


@dataclass
class LedgerWrite:
    outcome: LedgerOutcome
    sale: Sale = None


def generate_sale_number():
    sale_number = f"SALE-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    while Sale.objects.filter(sale_number=sale_number).exists():
        sale_number = f"SALE-{timezone.now().strftime('%Y%m%d')}-{str(uuid.uuid4())[:8].upper()}"
    return sale_number


class LedgerStore:
    def __init__(self, owner):
        self.owner = owner

    def sales(self):
        return Sale.objects.filter(owner=self.owner)

    def find(self, settlement_id):
        try:
            return self.sales().filter(settlement_id=settlement_id).first()
        except DatabaseError as e:
            logger.error(f"Ledger lookup failed for settlement {settlement_id}: {str(e)}")
            raise StoreUnavailableError() from e

    def insert(self, draft, payment_method, settlement_id):
        """
        Record the draft as a completed sale.

        Subtotal and tax are each rounded half up to 2 decimals and the total
        is stored as their sum, so the stored row always satisfies
        total_amount == subtotal + tax_amount.
        """
        existing = self.find(settlement_id)
        if existing is not None:
            logger.info(f"Settlement {settlement_id} already recorded as {existing.sale_number}")
            return LedgerWrite(LedgerOutcome.ALREADY_EXISTS, existing)

        totals = draft.compute_totals()
        lines = draft.lines
        subtotal = to_currency(totals.subtotal)
        tax_amount = to_currency(totals.tax_amount)

        try:
            live_ids = set(
                Product.objects.filter(owner=self.owner, pk__in=[line.product_id for line in lines])
                .values_list('pk', flat=True)
            )
            with transaction.atomic():
                sale = Sale.objects.create(
                    sale_number=generate_sale_number(),
                    settlement_id=settlement_id,
                    owner=self.owner,
                    subtotal=subtotal,
                    tax_rate=draft.tax_rate,
                    tax_amount=tax_amount,
                    total_amount=subtotal + tax_amount,
                    payment_method=payment_method,
                    payment_status='completed',
                )
                SaleItem.objects.bulk_create([
                    SaleItem(
                        sale=sale,
                        product_id=line.product_id if line.product_id in live_ids else None,
                        product_ref=line.product_id,
                        name=line.name,
                        unit=line.unit,
                        unit_price=line.unit_price,
                        quantity=line.quantity,
                        line_total=to_currency(line.line_total),
                    )
                    for line in lines
                ])
        except IntegrityError as e:
            # Lost a race with the same settlement id, or the id belongs to another account
            existing = self.find(settlement_id)
            if existing is not None:
                return LedgerWrite(LedgerOutcome.ALREADY_EXISTS, existing)
            logger.error(f"Ledger rejected settlement {settlement_id}: {str(e)}")
            return LedgerWrite(LedgerOutcome.FAILED)
        except DatabaseError as e:
            logger.error(f"Ledger write failed for settlement {settlement_id}: {str(e)}")
            raise StoreUnavailableError() from e

        logger.info(f"Recorded sale {sale.sale_number} (settlement {settlement_id}, total {sale.total_amount})")
        return LedgerWrite(LedgerOutcome.CREATED, sale)

    def applied_refs(self, sale):
        """product_refs whose stock decrement is already recorded for this sale"""
        try:
            return set(SaleStockAdjustment.objects.filter(sale=sale).values_list('product_ref', flat=True))
        except DatabaseError as e:
            logger.error(f"Ledger read failed for sale {sale.pk}: {str(e)}")
            raise StoreUnavailableError() from e

    def record_adjustment(self, sale, item):
        try:
            return SaleStockAdjustment.objects.create(
                sale=sale,
                product_id=item.product_id,
                product_ref=item.product_ref,
                quantity=item.quantity,
            )
        except DatabaseError as e:
            logger.error(f"Could not mark stock adjustment for sale {sale.pk}, product {item.product_ref}: {str(e)}")
            raise StoreUnavailableError() from e
