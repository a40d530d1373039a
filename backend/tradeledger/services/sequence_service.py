# Overview: Service-layer operations for named counters and invoice numbering.

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..invoice_rules import InvoiceVariant, format_invoice_number
from ..models import SequenceCounter


class SequenceError(Exception):
    """Raised when counter operations fail."""
    pass


def _bump(key: str) -> int | None:
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.key == key)
        .values(sequence=SequenceCounter.sequence + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    return db.session.execute(
        select(SequenceCounter.sequence).where(SequenceCounter.key == key)
    ).scalar_one()


def get_next_sequence(key: str) -> int:
    """
    Atomically allocate the next value of a named counter.

    The increment is a single UPDATE ... SET sequence = sequence + 1, so two
    callers never observe the same value. A missing counter is inserted at 1
    inside a savepoint; if a concurrent caller inserted it first, the unique
    constraint fires and we fall back to the increment.

    Runs inside the caller's transaction and does not commit.
    """
    if not key:
        raise SequenceError("counter key is required")

    value = _bump(key)
    if value is not None:
        return value

    try:
        with db.session.begin_nested():
            db.session.add(SequenceCounter(key=key, sequence=1))
        return 1
    except IntegrityError:
        value = _bump(key)
        if value is None:
            raise
        return value


def next_invoice_number(variant: InvoiceVariant, model=None) -> str:
    """
    Generate the next invoice number for a variant (INV-000123, FR-0042).

    When `model` is given, numbers already taken by manually entered
    invoice numbers are skipped.
    """
    while True:
        number = format_invoice_number(variant.prefix, get_next_sequence(variant.counter_key), variant.pad)
        if model is None:
            return number
        taken = db.session.query(model.id).filter(model.invoice_number == number).first()
        if not taken:
            return number


def peek_sequence(key: str) -> int:
    """Last value issued for a counter (0 if never used)."""
    current = db.session.query(SequenceCounter.sequence).filter_by(key=key).scalar()
    return current or 0
