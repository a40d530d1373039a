# Overview: Transaction helpers shared by the invoice, payment and sequence services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking to an invoice lookup.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the version_id column on
    invoice tables still turns a lost update into a StaleDataError there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Run one unit of work (which commits itself) with retry on conflicts.

    Retries on OperationalError (locks, deadlocks) and StaleDataError
    (version_id mismatch). Any other exception rolls the session back and
    propagates unchanged, so business-rule errors are never retried.

    func is re-run from scratch on retry; it must re-read whatever state it
    guards against.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
