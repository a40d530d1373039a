# Overview: Service-layer operations for the daily cash/bank ledger.

"""
Daily Ledger Service

One DailyLedger row per calendar day, with entries that are either manual
(typed in by a user) or posted automatically by sales payments.

TOTALS (always re-summed from entries, never patched):
    cash_receipts  = sum(receipt entries, mode=cash)
    bank_receipts  = sum(receipt entries, mode=bank)
    cash_payments  = sum(payment entries, mode=cash)
    bank_payments  = sum(payment entries, mode=bank)
    closing_cash   = opening_cash + cash_receipts - cash_payments
    closing_bank   = opening_bank + bank_receipts - bank_payments

CLOSED LEDGERS:
Manual entries, manual deletions and opening-balance changes are rejected
with kind="ledger_closed". Entries tied to sales payments still follow the
payment (posting and removal) so the ledger never disagrees with invoices.

Functions named *_entries / record_* run inside the caller's transaction and
do not commit. The others are complete operations and commit.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from ..currency import ZERO, to_decimal
from ..extensions import db
from ..models import DailyLedger, LedgerEntry
from ..models.ledger import (
    ENTRY_MODES,
    ENTRY_PAYMENT,
    ENTRY_RECEIPT,
    ENTRY_TYPES,
    MODE_BANK,
    MODE_CASH,
    REF_MANUAL,
    REF_SALES_PAYMENT,
)
from ..time_utils import utcnow
from .concurrency import run_with_retry


class LedgerError(Exception):
    """
    Raised for daily ledger rule violations.

    kind: not_found | ledger_closed | invalid
    """

    def __init__(self, message: str, kind: str = "invalid", details: dict | None = None):
        super().__init__(message)
        self.kind = kind
        self.details = details or {}


def get_daily_ledger(ledger_date: date) -> DailyLedger | None:
    return db.session.query(DailyLedger).filter_by(ledger_date=ledger_date).first()


def require_daily_ledger(ledger_date: date) -> DailyLedger:
    ledger = get_daily_ledger(ledger_date)
    if not ledger:
        raise LedgerError(f"Daily ledger not found for {ledger_date.isoformat()}", kind="not_found")
    return ledger


def get_or_create_daily_ledger(ledger_date: date) -> DailyLedger:
    """Fetch the ledger for a day, creating an empty one if needed. Does not commit."""
    ledger = get_daily_ledger(ledger_date)
    if ledger:
        return ledger
    ledger = DailyLedger(
        ledger_date=ledger_date,
        opening_cash=ZERO,
        opening_bank=ZERO,
        cash_receipts=ZERO,
        bank_receipts=ZERO,
        cash_payments=ZERO,
        bank_payments=ZERO,
        closing_cash=ZERO,
        closing_bank=ZERO,
        is_closed=False,
    )
    db.session.add(ledger)
    db.session.flush()
    return ledger


def recalculate_totals(ledger: DailyLedger) -> DailyLedger:
    """Re-sum a ledger's entries and re-derive closing balances. Does not commit."""
    entries = db.session.query(LedgerEntry).filter_by(ledger_id=ledger.id).all()

    totals = {(t, m): ZERO for t in ENTRY_TYPES for m in ENTRY_MODES}
    for entry in entries:
        totals[(entry.entry_type, entry.mode)] += to_decimal(entry.amount)

    ledger.cash_receipts = totals[(ENTRY_RECEIPT, MODE_CASH)]
    ledger.bank_receipts = totals[(ENTRY_RECEIPT, MODE_BANK)]
    ledger.cash_payments = totals[(ENTRY_PAYMENT, MODE_CASH)]
    ledger.bank_payments = totals[(ENTRY_PAYMENT, MODE_BANK)]

    ledger.closing_cash = to_decimal(ledger.opening_cash) + ledger.cash_receipts - ledger.cash_payments
    ledger.closing_bank = to_decimal(ledger.opening_bank) + ledger.bank_receipts - ledger.bank_payments
    return ledger


def _ensure_open(ledger: DailyLedger) -> None:
    if ledger.is_closed:
        raise LedgerError(
            f"Daily ledger for {ledger.ledger_date.isoformat()} is closed",
            kind="ledger_closed",
            details={"ledger_date": ledger.ledger_date.isoformat()},
        )


def set_opening_balances(
    ledger_date: date,
    *,
    opening_cash,
    opening_bank,
    notes: str | None = None,
) -> DailyLedger:
    """Create or update a day's opening balances."""
    cash = to_decimal(opening_cash)
    bank = to_decimal(opening_bank)

    def _op() -> DailyLedger:
        ledger = get_or_create_daily_ledger(ledger_date)
        _ensure_open(ledger)
        ledger.opening_cash = cash
        ledger.opening_bank = bank
        if notes is not None:
            ledger.notes = notes
        recalculate_totals(ledger)
        db.session.commit()
        return ledger

    return run_with_retry(_op)


def add_entry(
    ledger_date: date,
    *,
    entry_type: str,
    mode: str,
    description: str,
    amount,
    user_id: int | None = None,
) -> LedgerEntry:
    """Add a manual receipt/payment line to a day's ledger."""
    if entry_type not in ENTRY_TYPES:
        raise LedgerError(f"entry_type must be one of {ENTRY_TYPES}")
    if mode not in ENTRY_MODES:
        raise LedgerError(f"mode must be one of {ENTRY_MODES}")
    if not description or not description.strip():
        raise LedgerError("description is required")
    value = to_decimal(amount)
    if value <= 0:
        raise LedgerError("amount must be greater than 0")

    def _op() -> LedgerEntry:
        ledger = get_or_create_daily_ledger(ledger_date)
        _ensure_open(ledger)

        entry = LedgerEntry(
            ledger_id=ledger.id,
            ledger_date=ledger_date,
            entry_type=entry_type,
            mode=mode,
            description=description.strip()[:500],
            amount=value,
            reference_type=REF_MANUAL,
            created_by_user_id=user_id,
        )
        db.session.add(entry)
        db.session.flush()

        recalculate_totals(ledger)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def delete_entry(entry_id: int) -> None:
    """Delete a manual entry. Entries posted by sales payments follow their payment."""
    def _op() -> None:
        entry = db.session.get(LedgerEntry, entry_id)
        if not entry:
            raise LedgerError("Ledger entry not found", kind="not_found")
        if entry.reference_type != REF_MANUAL:
            raise LedgerError(
                "Entries posted by payments are removed by deleting the payment",
                details={"payment_id": entry.payment_id, "invoice_id": entry.invoice_id},
            )

        ledger = entry.ledger
        _ensure_open(ledger)

        db.session.delete(entry)
        db.session.flush()
        recalculate_totals(ledger)
        db.session.commit()

    run_with_retry(_op)


def close_daily_ledger(ledger_date: date, *, user_id: int | None = None) -> DailyLedger:
    def _op() -> DailyLedger:
        ledger = require_daily_ledger(ledger_date)
        if ledger.is_closed:
            raise LedgerError("Daily ledger is already closed", kind="ledger_closed")
        recalculate_totals(ledger)
        ledger.is_closed = True
        ledger.closed_at = utcnow()
        ledger.closed_by_user_id = user_id
        db.session.commit()
        return ledger

    return run_with_retry(_op)


def record_sales_payment(invoice, payment, *, user_id: int | None = None) -> LedgerEntry | None:
    """
    Post a sales payment as a receipt on the payment's day.

    mode is cash for cash payments, bank for every other method. Only the
    cash actually received is posted; the settlement discount is not money
    in. Does not commit.
    """
    amount = to_decimal(payment.amount)
    if amount <= 0:
        return None

    ledger_date = payment.payment_date.date()
    ledger = get_or_create_daily_ledger(ledger_date)

    entry = LedgerEntry(
        ledger_id=ledger.id,
        ledger_date=ledger_date,
        entry_type=ENTRY_RECEIPT,
        mode=MODE_CASH if payment.payment_method == "cash" else MODE_BANK,
        description=f"Sales payment {invoice.invoice_number} - {invoice.customer}"[:500],
        amount=amount,
        reference_type=REF_SALES_PAYMENT,
        invoice_id=invoice.id,
        payment_id=payment.id,
        created_by_user_id=user_id,
    )
    db.session.add(entry)
    db.session.flush()

    recalculate_totals(ledger)
    return entry


def _remove_entries(query) -> int:
    entries = query.all()
    ledgers = {entry.ledger_id: entry.ledger for entry in entries}
    for entry in entries:
        db.session.delete(entry)
    db.session.flush()
    for ledger in ledgers.values():
        recalculate_totals(ledger)
    return len(entries)


def remove_payment_entries(payment_id: int) -> int:
    """Remove the receipt(s) posted for a sales payment. Does not commit."""
    return _remove_entries(
        db.session.query(LedgerEntry).filter_by(reference_type=REF_SALES_PAYMENT, payment_id=payment_id)
    )


def remove_invoice_entries(invoice_id: int) -> int:
    """Remove every receipt posted for a sales invoice. Does not commit."""
    return _remove_entries(
        db.session.query(LedgerEntry).filter_by(reference_type=REF_SALES_PAYMENT, invoice_id=invoice_id)
    )


def list_daily_ledgers(start: date | None = None, end: date | None = None) -> list[DailyLedger]:
    query = db.session.query(DailyLedger)
    if start:
        query = query.filter(DailyLedger.ledger_date >= start)
    if end:
        query = query.filter(DailyLedger.ledger_date <= end)
    return query.order_by(DailyLedger.ledger_date.asc()).all()


def ledger_summary(start: date, end: date) -> dict:
    """Totals across every ledger in [start, end]."""
    ledgers = list_daily_ledgers(start, end)

    def _sum(attr: str) -> Decimal:
        return sum((to_decimal(getattr(ledger, attr)) for ledger in ledgers), ZERO)

    return {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "total_days": len(ledgers),
        "total_opening_cash": _sum("opening_cash"),
        "total_opening_bank": _sum("opening_bank"),
        "total_cash_receipts": _sum("cash_receipts"),
        "total_bank_receipts": _sum("bank_receipts"),
        "total_cash_payments": _sum("cash_payments"),
        "total_bank_payments": _sum("bank_payments"),
        "total_closing_cash": _sum("closing_cash"),
        "total_closing_bank": _sum("closing_bank"),
        "ledgers": [ledger.to_dict() for ledger in ledgers],
    }
