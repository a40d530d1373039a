# Overview: Invoice computation rule shared by every invoice type; pure functions, no database access.

"""
Invoice Financial State Rules (authoritative)

All five invoice types derive the same cached fields (gross, outstanding,
status, mirror currency) from their inputs through compute_invoice_aggregates.
Every mutation site calls it explicitly.

DERIVATION (re-run from scratch on create, edit, payment add, payment delete):
1. subtotal = quantity * rate (line-item invoices) or the flat principal
2. vat_amount = subtotal * vat_percentage / 100 (0 without VAT)
3. gross_amount = max(0, subtotal + vat_amount - discount)
4. outstanding_amount = gross_amount - (received_amount + discount_allowed)
   (stored raw; payment guards clamp at 0)
5. status, first match wins:
   outstanding <= 0 -> paid
   credited > 0     -> partially_paid
   now > due_date   -> overdue
   otherwise        -> unpaid
6. mirror currency amounts for dual-currency invoices

discount_allowed is the sum of per-payment discounts (sales only).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from .currency import AED, PKR, ZERO, convert, quantize_money, to_decimal


STATUS_UNPAID = "unpaid"
STATUS_PARTIALLY_PAID = "partially_paid"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"

VALID_STATUSES = [STATUS_UNPAID, STATUS_PARTIALLY_PAID, STATUS_PAID, STATUS_OVERDUE]

PAYMENT_TYPES = ["partial", "full"]
PAYMENT_METHODS = ["cash", "bank_transfer", "check", "card", "other"]


@dataclass(frozen=True)
class InvoiceVariant:
    """
    Describes one invoice type.

    has_line_items: subtotal is quantity * rate instead of a flat amount
    currency: currency the invoice and its payments are denominated in
    mirror_currency: second currency derived through conversion_rate (or None)
    """
    key: str
    label: str
    url_slug: str
    prefix: str
    pad: int
    counter_key: str
    currency: str
    mirror_currency: str | None = None
    has_line_items: bool = False
    has_vat: bool = False
    has_discount: bool = False
    has_payment_discount: bool = False
    posts_to_daily_ledger: bool = False

    @property
    def is_dual_currency(self) -> bool:
        return self.mirror_currency is not None


SALES = InvoiceVariant(
    key="sales",
    label="Sales",
    url_slug="sales",
    prefix="INV",
    pad=6,
    counter_key="invoiceNumber",
    currency=AED,
    has_line_items=True,
    has_vat=True,
    has_discount=True,
    has_payment_discount=True,
    posts_to_daily_ledger=True,
)

FREIGHT = InvoiceVariant(
    key="freight",
    label="Freight",
    url_slug="freight",
    prefix="FR",
    pad=4,
    counter_key="freight_invoice",
    currency=PKR,
    mirror_currency=AED,
)

TRANSPORT = InvoiceVariant(
    key="transport",
    label="Transport",
    url_slug="transport",
    prefix="TR",
    pad=4,
    counter_key="transport_invoice",
    currency=PKR,
    mirror_currency=AED,
)

DUBAI_TRANSPORT = InvoiceVariant(
    key="dubai_transport",
    label="Dubai Transport",
    url_slug="dubai-transport",
    prefix="DT",
    pad=4,
    counter_key="dubai_transport_invoice",
    currency=AED,
    mirror_currency=PKR,
)

DUBAI_CLEARANCE = InvoiceVariant(
    key="dubai_clearance",
    label="Dubai Clearance",
    url_slug="dubai-clearance",
    prefix="DC",
    pad=4,
    counter_key="dubai_clearance_invoice",
    currency=AED,
    mirror_currency=PKR,
)

VARIANTS: dict[str, InvoiceVariant] = {
    v.key: v for v in (SALES, FREIGHT, TRANSPORT, DUBAI_TRANSPORT, DUBAI_CLEARANCE)
}


def get_variant(key: str) -> InvoiceVariant:
    try:
        return VARIANTS[key]
    except KeyError:
        raise ValueError(f"Unknown invoice type: {key}. Must be one of {list(VARIANTS)}")


@dataclass(frozen=True)
class InvoiceInputs:
    """Authoritative inputs; everything else on an invoice is derived."""
    due_date: datetime
    amount: Decimal | None = None
    quantity: Decimal | None = None
    rate: Decimal | None = None
    vat_percentage: Decimal = ZERO
    discount: Decimal = ZERO
    conversion_rate: Decimal | None = None
    received_amount: Decimal = ZERO
    discount_allowed: Decimal = ZERO


@dataclass(frozen=True)
class DerivedFields:
    subtotal: Decimal
    vat_amount: Decimal
    gross_amount: Decimal
    received_amount: Decimal
    discount_allowed: Decimal
    outstanding_amount: Decimal
    status: str
    converted_amount: Decimal | None = None
    converted_received_amount: Decimal | None = None
    converted_outstanding_amount: Decimal | None = None

    @property
    def credited_amount(self) -> Decimal:
        return self.received_amount + self.discount_allowed


def derive_status(
    outstanding_amount: Decimal,
    credited_amount: Decimal,
    due_date: datetime | None,
    now: datetime,
) -> str:
    """Status is a pure function of outstanding, credited, due date and now."""
    if outstanding_amount <= 0:
        return STATUS_PAID
    if credited_amount > 0:
        return STATUS_PARTIALLY_PAID
    if due_date is not None and now > due_date:
        return STATUS_OVERDUE
    return STATUS_UNPAID


def compute_subtotal(variant: InvoiceVariant, inputs: InvoiceInputs) -> Decimal:
    if variant.has_line_items:
        return quantize_money(to_decimal(inputs.quantity) * to_decimal(inputs.rate))
    return quantize_money(inputs.amount)


def compute_invoice_aggregates(
    variant: InvoiceVariant,
    inputs: InvoiceInputs,
    now: datetime,
) -> DerivedFields:
    subtotal = compute_subtotal(variant, inputs)

    vat_amount = ZERO
    if variant.has_vat:
        vat_amount = quantize_money(subtotal * to_decimal(inputs.vat_percentage) / Decimal(100))

    discount = quantize_money(inputs.discount) if variant.has_discount else ZERO
    gross_amount = max(ZERO, subtotal + vat_amount - discount)

    received = quantize_money(inputs.received_amount)
    discount_allowed = quantize_money(inputs.discount_allowed) if variant.has_payment_discount else ZERO
    credited = received + discount_allowed

    outstanding = gross_amount - credited
    status = derive_status(outstanding, credited, inputs.due_date, now)

    converted_amount = converted_received = converted_outstanding = None
    if variant.is_dual_currency:
        def _mirror(value: Decimal) -> Decimal:
            return convert(
                value,
                source=variant.currency,
                target=variant.mirror_currency,
                conversion_rate=inputs.conversion_rate,
            )

        converted_amount = _mirror(gross_amount)
        converted_received = _mirror(received)
        converted_outstanding = _mirror(outstanding)

    return DerivedFields(
        subtotal=subtotal,
        vat_amount=vat_amount,
        gross_amount=gross_amount,
        received_amount=received,
        discount_allowed=discount_allowed,
        outstanding_amount=outstanding,
        status=status,
        converted_amount=converted_amount,
        converted_received_amount=converted_received,
        converted_outstanding_amount=converted_outstanding,
    )


def format_invoice_number(prefix: str, sequence: int, pad: int) -> str:
    """INV-000123 style human-readable invoice number."""
    return f"{prefix}-{sequence:0{pad}d}"
