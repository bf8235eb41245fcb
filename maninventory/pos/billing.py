"""
In-memory bill being built at the counter.

A BillDraft belongs to one request; it is built from catalog rows, edited,
and handed to CheckoutSettlement. Stock checks here are advisory only: they
use the quantity on hand that was known when the product was added, and the
real guard is the conditional decrement at settlement.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

from maninventory.core.exceptions import InsufficientStockError, NotFoundError, ValidationError

CENT = Decimal('0.01')


def to_currency(value):
    """Round half up to 2 decimal places"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def default_tax_rate():
    return Decimal(str(getattr(settings, 'POS_TAX_RATE', '0.05')))


@dataclass
class LineItem:
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    unit: str = 'pcs'

    @property
    def line_total(self):
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


class BillDraft:
    """Ordered product id -> LineItem mapping; every line has quantity >= 1"""

    def __init__(self, tax_rate=None):
        self.tax_rate = default_tax_rate() if tax_rate is None else Decimal(str(tax_rate))
        self._lines = {}
        self._ceilings = {}

    @classmethod
    def from_products(cls, products, quantities, tax_rate=None):
        """
        Build a draft from catalog rows.

        ``products`` maps product id -> Product, ``quantities`` is an iterable
        of (product_id, quantity) pairs in bill order. Ids missing from
        ``products`` raise NotFoundError.
        """
        draft = cls(tax_rate=tax_rate)
        for product_id, quantity in quantities:
            product = products.get(product_id)
            if product is None:
                raise NotFoundError(f'Product {product_id} not found', product_id=product_id)
            draft.add_item(product, quantity)
        return draft

    @property
    def lines(self):
        return list(self._lines.values())

    @property
    def is_empty(self):
        return not self._lines

    def __len__(self):
        return len(self._lines)

    def __contains__(self, product_id):
        return product_id in self._lines

    def ceiling(self, product_id):
        return self._ceilings.get(product_id)

    def add_item(self, product, requested_qty=1):
        requested_qty = int(requested_qty)
        if requested_qty < 1:
            raise ValidationError('Quantity must be at least 1')

        # Last known stock becomes the advisory ceiling for this line
        self._ceilings[product.pk] = product.quantity_on_hand
        existing = self._lines.get(product.pk)
        queued = existing.quantity if existing else 0
        if queued + requested_qty > product.quantity_on_hand:
            raise InsufficientStockError(
                product.pk, queued + requested_qty, product.quantity_on_hand,
                name=product.name, unit=product.unit,
            )

        if existing:
            existing.quantity += requested_qty
        else:
            self._lines[product.pk] = LineItem(
                product_id=product.pk,
                name=product.name,
                unit_price=Decimal(product.unit_price),
                quantity=requested_qty,
                unit=product.unit,
            )
        return self._lines[product.pk]

    def set_quantity(self, product_id, new_qty):
        """
        Zero or less removes the line. Above the known stock raises
        InsufficientStockError whose ``available`` is the ceiling to clamp to.
        """
        new_qty = int(new_qty)
        if new_qty <= 0:
            self.remove_item(product_id)
            return None

        line = self._lines.get(product_id)
        if line is None:
            raise NotFoundError(f'Product {product_id} is not on the bill', product_id=product_id)

        available = self._ceilings.get(product_id)
        if available is not None and new_qty > available:
            raise InsufficientStockError(product_id, new_qty, available, name=line.name, unit=line.unit)
        line.quantity = new_qty
        return line

    def remove_item(self, product_id):
        self._lines.pop(product_id, None)
        self._ceilings.pop(product_id, None)

    def clear(self):
        self._lines.clear()
        self._ceilings.clear()

    def compute_totals(self):
        """Exact totals; rounding happens only when a sale is recorded"""
        subtotal = sum((line.line_total for line in self._lines.values()), Decimal('0'))
        tax_amount = subtotal * self.tax_rate
        return Totals(subtotal=subtotal, tax_amount=tax_amount, total=subtotal + tax_amount)
