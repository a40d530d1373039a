from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z
from .invoices import MONEY


ENTRY_RECEIPT = "receipt"
ENTRY_PAYMENT = "payment"
ENTRY_TYPES = [ENTRY_RECEIPT, ENTRY_PAYMENT]

MODE_CASH = "cash"
MODE_BANK = "bank"
ENTRY_MODES = [MODE_CASH, MODE_BANK]

REF_MANUAL = "manual"
REF_SALES_PAYMENT = "sales_payment"


class DailyLedger(db.Model):
    """
    Per-day cash and bank book.

    Totals are re-summed from entries on every change:
        closing = opening + receipts - payments   (per mode)

    A closed ledger rejects manual entries and opening-balance changes.
    Receipts posted by sales payments are still accepted so that a payment
    is never lost because the day was closed early.
    """
    __tablename__ = "daily_ledgers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    ledger_date = db.Column(db.Date, nullable=False, unique=True, index=True)

    opening_cash = db.Column(MONEY, nullable=False, default=0)
    opening_bank = db.Column(MONEY, nullable=False, default=0)

    cash_receipts = db.Column(MONEY, nullable=False, default=0)
    bank_receipts = db.Column(MONEY, nullable=False, default=0)
    cash_payments = db.Column(MONEY, nullable=False, default=0)
    bank_payments = db.Column(MONEY, nullable=False, default=0)

    closing_cash = db.Column(MONEY, nullable=False, default=0)
    closing_bank = db.Column(MONEY, nullable=False, default=0)

    is_closed = db.Column(db.Boolean, nullable=False, default=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    entries = db.relationship(
        "LedgerEntry",
        backref="ledger",
        lazy=True,
        order_by="LedgerEntry.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_entries: bool = False) -> dict:
        data = {
            "id": self.id,
            "ledger_date": to_iso_date(self.ledger_date),
            "opening_cash": self.opening_cash,
            "opening_bank": self.opening_bank,
            "cash_receipts": self.cash_receipts,
            "bank_receipts": self.bank_receipts,
            "cash_payments": self.cash_payments,
            "bank_payments": self.bank_payments,
            "closing_cash": self.closing_cash,
            "closing_bank": self.closing_bank,
            "is_closed": self.is_closed,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_user_id": self.closed_by_user_id,
            "notes": self.notes,
        }
        if include_entries:
            data["entries"] = [entry.to_dict() for entry in self.entries]
        return data


class LedgerEntry(db.Model):
    """
    One line in a daily ledger.

    reference_type:
    - manual: entered by a user on the daily ledger screen
    - sales_payment: posted automatically when a sales payment is recorded
      (invoice_id / payment_id point back at the source)
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_payment", "reference_type", "payment_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ledger_id = db.Column(db.Integer, db.ForeignKey("daily_ledgers.id"), nullable=False, index=True)
    ledger_date = db.Column(db.Date, nullable=False, index=True)

    entry_type = db.Column(db.String(16), nullable=False)
    mode = db.Column(db.String(16), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    amount = db.Column(MONEY, nullable=False)

    reference_type = db.Column(db.String(32), nullable=False, default=REF_MANUAL)
    invoice_id = db.Column(db.Integer, nullable=True)
    payment_id = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ledger_id": self.ledger_id,
            "ledger_date": to_iso_date(self.ledger_date),
            "entry_type": self.entry_type,
            "mode": self.mode,
            "description": self.description,
            "amount": self.amount,
            "reference_type": self.reference_type,
            "invoice_id": self.invoice_id,
            "payment_id": self.payment_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
