"""Receipt assembly from a recorded sale. Amounts come from the stored row only."""
from dataclasses import dataclass, field
from decimal import Decimal
from urllib.parse import quote

from django.conf import settings

from .billing import to_currency

RECEIPT_WIDTH = 40
URI_SAFE = "-_.!~*'()"


@dataclass
class ReceiptLine:
    name: str
    quantity: int
    unit: str
    unit_price: Decimal
    line_total: Decimal


@dataclass
class Receipt:
    sale_number: str
    created_at: object
    payment_method: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    shop_name: str = ''
    location: str = ''
    lines: list = field(default_factory=list)
    upi_uri: str = None

    def as_dict(self):
        return {
            'sale_number': self.sale_number,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'shop_name': self.shop_name,
            'location': self.location,
            'payment_method': self.payment_method,
            'lines': [
                {
                    'name': line.name,
                    'quantity': line.quantity,
                    'unit': line.unit,
                    'unit_price': str(line.unit_price),
                    'line_total': str(line.line_total),
                }
                for line in self.lines
            ],
            'subtotal': str(self.subtotal),
            'tax_rate': str(self.tax_rate),
            'tax_amount': str(self.tax_amount),
            'total': str(self.total),
            'upi_uri': self.upi_uri,
        }


def build_upi_uri(upi_id, shop_name, amount, currency=None, note=None):
    """upi://pay link for the receiving account, amount to 2 decimals, optional tn note"""
    currency = currency or getattr(settings, 'POS_CURRENCY', 'INR')
    payee = quote(shop_name or '', safe=URI_SAFE)
    uri = f"upi://pay?pa={upi_id}&pn={payee}&am={to_currency(amount)}&cu={currency}"
    if note:
        uri += f"&tn={quote(note, safe=URI_SAFE)}"
    return uri


def assemble_receipt(sale, shop_settings=None):
    lines = [
        ReceiptLine(
            name=item.name,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=to_currency(item.unit_price),
            line_total=to_currency(item.line_total),
        )
        for item in sale.items.all()
    ]

    shop_name = shop_settings.shop_name if shop_settings else ''
    upi_uri = None
    if sale.payment_method == 'upi' and shop_settings and shop_settings.upi_id:
        upi_uri = build_upi_uri(shop_settings.upi_id, shop_name, sale.total_amount)

    return Receipt(
        sale_number=sale.sale_number,
        created_at=sale.created_at,
        payment_method=sale.payment_method,
        subtotal=to_currency(sale.subtotal),
        tax_rate=sale.tax_rate,
        tax_amount=to_currency(sale.tax_amount),
        total=to_currency(sale.total_amount),
        shop_name=shop_name,
        location=shop_settings.location if shop_settings else '',
        lines=lines,
        upi_uri=upi_uri,
    )


def _row(left, right, width=RECEIPT_WIDTH):
    space = max(width - len(left) - len(right), 1)
    return f"{left}{' ' * space}{right}"


def render_text(receipt, width=RECEIPT_WIDTH):
    """Plain-text receipt for thermal printers and the print dialog"""
    out = []
    if receipt.shop_name:
        out.append(receipt.shop_name.center(width).rstrip())
    if receipt.location:
        out.append(receipt.location.center(width).rstrip())
    out.append('-' * width)
    out.append(f"Bill: {receipt.sale_number}")
    if receipt.created_at:
        out.append(f"Date: {receipt.created_at.strftime('%d-%m-%Y %H:%M')}")
    out.append('-' * width)
    for line in receipt.lines:
        out.append(line.name[:width])
        out.append(_row(f"  {line.quantity} {line.unit} x {line.unit_price}", str(line.line_total), width))
    out.append('-' * width)
    rate_pct = (Decimal(receipt.tax_rate) * 100).normalize()
    out.append(_row('Subtotal', str(receipt.subtotal), width))
    out.append(_row(f'Tax ({rate_pct:f}%)', str(receipt.tax_amount), width))
    out.append(_row('TOTAL', str(receipt.total), width))
    out.append(_row('Paid by', receipt.payment_method.upper(), width))
    out.append('-' * width)
    out.append('Thank you for shopping with us!'.center(width).rstrip())
    return '\n'.join(out) + '\n'
