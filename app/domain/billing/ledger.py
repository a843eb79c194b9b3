"""
Billing ledger - pure invoice arithmetic and status rules.

Amounts are Decimal. Totals are computed once at invoice creation and
never recomputed; payment status only moves pending → partial → paid.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from ...config import PAYMENT_TOLERANCE

CENT = Decimal("0.01")

# Document status
INVOICE_DRAFT = "draft"
INVOICE_ISSUED = "issued"
INVOICE_CANCELLED = "cancelled"

# Payment status
PAYMENT_PENDING = "pending"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"

OPEN_PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL)

CANCELLED_PREFIX = "[ANULADA]"


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to a Decimal without float noise"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def has_sub_cents(value) -> bool:
    """True when the amount carries a fraction of a cent (0.004, 12.345)"""
    exponent = to_money(value).normalize().as_tuple().exponent
    return isinstance(exponent, int) and exponent < -2


@dataclass(frozen=True)
class LineAmount:
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    lines: tuple[LineAmount, ...]
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def compute_totals(items: Iterable[tuple[Optional[int], object]], tax_rate_percent) -> InvoiceTotals:
    """
    items: (quantity, unit_price) pairs; a missing quantity counts as 1.

    subtotal = Σ quantity × unit_price, tax = subtotal × rate / 100 rounded
    half-up to cents, total = subtotal + tax.
    """
    lines = []
    for quantity, unit_price in items:
        qty = 1 if quantity is None else quantity
        price = to_money(unit_price)
        lines.append(LineAmount(qty, price, round_cents(price * qty)))

    subtotal = sum((line.subtotal for line in lines), Decimal("0"))
    tax = round_cents(subtotal * to_money(tax_rate_percent) / Decimal(100))
    return InvoiceTotals(tuple(lines), subtotal, tax, subtotal + tax)


def total_paid(amounts: Iterable) -> Decimal:
    return sum((to_money(a) for a in amounts), Decimal("0"))


def exceeds_balance(amount: Decimal, total: Decimal, paid: Decimal) -> bool:
    """True when amount is more than the remaining balance plus tolerance"""
    return amount > (total - paid) + PAYMENT_TOLERANCE


def payment_status_for(total: Decimal, paid: Decimal) -> str:
    if paid >= total - PAYMENT_TOLERANCE:
        return PAYMENT_PAID
    if paid > 0:
        return PAYMENT_PARTIAL
    return PAYMENT_PENDING


def format_invoice_number(year: int, sequence: int) -> str:
    """FAC-<4-digit year>-<6-digit zero padded sequence>"""
    return f"FAC-{year:04d}-{sequence:06d}"


def cancellation_note(reason: Optional[str]) -> str:
    return f"{CANCELLED_PREFIX} {reason}" if reason else CANCELLED_PREFIX
