# Overview: Service-layer operations for invoice payments; guards, insertion, deletion and re-derivation.

"""
Payment Ledger Service

WHY: An invoice's received/outstanding/status fields are a cache over its
payments. Every payment insert or delete re-sums the authoritative payment
set and re-runs the invoice computation rule, inside one transaction.

GUARDS (add_payment), evaluated in order against the re-derived invoice:
1. invoice exists                        -> InvoiceNotFoundError (404)
2. outstanding > 0                       -> already_paid
3. amount > 0 or discount > 0            -> invalid_amount
4. amount + discount <= outstanding      -> overpayment (attempted, limit)

A non-zero discount on a type without payment discounts is a
ValidationError before any of the above.

DAILY LEDGER: for types that post to the daily ledger (sales) the payment's
cash is posted as a receipt on the payment date in the same transaction,
and removed again when the payment is deleted.

CONCURRENCY: the invoice row is locked (FOR UPDATE where supported) and
carries a version_id; a concurrent writer makes the flush raise
StaleDataError, and run_with_retry re-runs the whole unit, guards included.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal

from ..currency import ZERO, quantize_money, to_decimal
from ..extensions import db
from ..invoice_rules import PAYMENT_METHODS, PAYMENT_TYPES, InvoiceVariant
from ..time_utils import to_utc_z, utcnow
from ..validation import PAYMENT_POLICY, enforce_rules_payment, validate_payload
from .concurrency import run_with_retry
from .invoice_service import (
    get_invoice,
    load_payments,
    lock_invoice,
    payment_model,
    recompute_invoice,
)
from .ledger_service import record_sales_payment, remove_payment_entries


class PaymentError(Exception):
    """
    Business-rule rejection of a payment.

    kind: already_paid | invalid_amount | overpayment
    """

    def __init__(self, message: str, kind: str, details: dict | None = None):
        super().__init__(message)
        self.kind = kind
        self.details = details or {}


class PaymentNotFoundError(Exception):
    """Raised when a payment is not found on the given invoice."""
    pass


def _display(value: Decimal) -> str:
    """1,234.50 or, when cents are not enough, 1,234.5025."""
    value = quantize_money(value)
    places = 2 if value == value.quantize(Decimal("0.01")) else 4
    return f"{value:,.{places}f}"


def validate_payment_payload(variant: InvoiceVariant, payload: dict) -> dict:
    patch = validate_payload(
        model=payment_model(variant),
        payload=payload,
        policy=PAYMENT_POLICY,
        partial=False,
    )
    enforce_rules_payment(variant, patch)
    return patch


def add_payment(
    variant: InvoiceVariant,
    invoice_id: int,
    payload: dict,
    *,
    user_id: int,
):
    """
    Record a payment against an invoice.

    payload: amount (required), payment_type (required), discount,
    payment_method, reference, notes, payment_date.

    Returns (payment, invoice) after commit.

    Raises:
        ValidationError: payload shape, or a discount on a non-sales type
        InvoiceNotFoundError: unknown invoice
        PaymentError: already_paid, invalid_amount, overpayment
    """
    patch = validate_payment_payload(variant, payload)
    amount = quantize_money(patch.get("amount"))
    discount = quantize_money(patch.get("discount"))
    model = payment_model(variant)

    def _op():
        invoice = lock_invoice(variant, invoice_id)

        # Guard against the state the payment set implies, not the cache
        before = recompute_invoice(invoice)
        outstanding = before.outstanding_amount

        if outstanding <= 0:
            raise PaymentError(
                f"Invoice {invoice.invoice_number} is already fully paid",
                kind="already_paid",
                details={"invoice_number": invoice.invoice_number},
            )

        if amount <= 0 and discount <= 0:
            raise PaymentError(
                "Payment amount or discount must be greater than 0",
                kind="invalid_amount",
            )

        attempted = amount + discount
        if attempted > outstanding:
            raise PaymentError(
                f"Payment of {_display(attempted)} exceeds outstanding amount of {_display(outstanding)}",
                kind="overpayment",
                details={"attempted": attempted, "limit": outstanding},
            )

        payment = model(
            invoice_id=invoice.id,
            amount=amount,
            discount=discount,
            payment_type=patch["payment_type"],
            payment_method=patch.get("payment_method") or "cash",
            reference=patch.get("reference"),
            notes=patch.get("notes"),
            payment_date=patch.get("payment_date") or utcnow(),
            received_by_user_id=user_id,
        )
        db.session.add(payment)
        db.session.flush()

        recompute_invoice(invoice)
        invoice.updated_by_user_id = user_id

        if variant.posts_to_daily_ledger:
            record_sales_payment(invoice, payment, user_id=user_id)

        db.session.commit()
        return payment, invoice

    return run_with_retry(_op)


def delete_payment(variant: InvoiceVariant, invoice_id: int, payment_id: int, *, user_id: int):
    """
    Remove a payment and re-derive its invoice from the remaining payments.

    Authorization (admin + password re-entry) is enforced by the route.
    Returns the updated invoice.
    """
    model = payment_model(variant)

    def _op():
        invoice = lock_invoice(variant, invoice_id)

        payment = (
            db.session.query(model)
            .filter(model.id == payment_id, model.invoice_id == invoice.id)
            .first()
        )
        if not payment:
            raise PaymentNotFoundError(f"Payment {payment_id} not found on invoice {invoice.invoice_number}")

        if variant.posts_to_daily_ledger:
            remove_payment_entries(payment.id)

        db.session.delete(payment)
        db.session.flush()

        recompute_invoice(invoice)
        invoice.updated_by_user_id = user_id

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_payments_for_invoice(variant: InvoiceVariant, invoice_id: int) -> list:
    """Payments of an existing invoice, by payment date then id."""
    invoice = get_invoice(variant, invoice_id)
    return load_payments(variant, invoice.id)


def get_payment_summary(variant: InvoiceVariant, invoice_id: int) -> dict:
    """Totals of an invoice's payments, with counts per type and per method."""
    invoice = get_invoice(variant, invoice_id)
    payments = load_payments(variant, invoice.id)

    total_amount: Decimal = ZERO
    total_discount: Decimal = ZERO
    by_type = {t: 0 for t in PAYMENT_TYPES}
    by_method = defaultdict(int, {m: 0 for m in PAYMENT_METHODS})

    for payment in payments:
        total_amount += to_decimal(payment.amount)
        total_discount += to_decimal(payment.discount)
        by_type[payment.payment_type] = by_type.get(payment.payment_type, 0) + 1
        by_method[payment.payment_method] += 1

    return {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "currency": variant.currency,
        "payment_count": len(payments),
        "total_paid": total_amount,
        "total_discount": total_discount,
        "total_credited": total_amount + total_discount,
        "gross_amount": to_decimal(invoice.gross_amount),
        "outstanding_amount": to_decimal(invoice.outstanding_amount),
        "status": invoice.status,
        "by_type": by_type,
        "by_method": dict(by_method),
        "last_payment_date": to_utc_z(max((p.payment_date for p in payments), default=None)),
    }
