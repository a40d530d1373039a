"""
Daily ledger tests: manual entries, totals, closing, and the receipts posted
by sales payments.
"""

from datetime import date
from decimal import Decimal

import pytest

from tradeledger.invoice_rules import FREIGHT, SALES
from tradeledger.models import LedgerEntry
from tradeledger.services import invoice_service, ledger_service, payment_service
from tradeledger.services.ledger_service import LedgerError

from conftest import flat_payload, sales_payload


DAY = date(2024, 3, 1)


class TestManualEntries:

    def test_opening_and_entries_drive_closing(self, db_session, admin_user):
        ledger_service.set_opening_balances(DAY, opening_cash=500, opening_bank=1000, notes="Monday")
        ledger_service.add_entry(DAY, entry_type="receipt", mode="cash", description="Counter sale", amount=200, user_id=admin_user.id)
        ledger_service.add_entry(DAY, entry_type="payment", mode="cash", description="Fuel", amount="75.50", user_id=admin_user.id)
        ledger_service.add_entry(DAY, entry_type="payment", mode="bank", description="Rent", amount=300, user_id=admin_user.id)

        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.cash_receipts == Decimal(200)
        assert ledger.cash_payments == Decimal("75.50")
        assert ledger.bank_payments == Decimal(300)
        assert ledger.closing_cash == Decimal("624.50")
        assert ledger.closing_bank == Decimal(700)
        assert ledger.notes == "Monday"

    def test_entry_creates_missing_ledger(self, db_session, admin_user):
        entry = ledger_service.add_entry(DAY, entry_type="receipt", mode="bank", description="Refund", amount=10)

        ledger = ledger_service.require_daily_ledger(DAY)
        assert entry.ledger_id == ledger.id
        assert ledger.closing_bank == Decimal(10)

    def test_changing_opening_balance_recomputes_closing(self, db_session):
        ledger_service.add_entry(DAY, entry_type="receipt", mode="cash", description="Sale", amount=100)
        ledger = ledger_service.set_opening_balances(DAY, opening_cash=50, opening_bank=0)
        assert ledger.closing_cash == Decimal(150)

    def test_delete_manual_entry(self, db_session):
        entry = ledger_service.add_entry(DAY, entry_type="receipt", mode="cash", description="Sale", amount=100)
        ledger_service.delete_entry(entry.id)

        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.cash_receipts == Decimal(0)
        assert ledger.closing_cash == Decimal(0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"entry_type": "transfer", "mode": "cash", "description": "x", "amount": 1},
            {"entry_type": "receipt", "mode": "card", "description": "x", "amount": 1},
            {"entry_type": "receipt", "mode": "cash", "description": "  ", "amount": 1},
            {"entry_type": "receipt", "mode": "cash", "description": "x", "amount": 0},
        ],
    )
    def test_invalid_entries(self, db_session, kwargs):
        with pytest.raises(LedgerError) as exc:
            ledger_service.add_entry(DAY, **kwargs)
        assert exc.value.kind == "invalid"

    def test_missing_ledger(self, db_session):
        with pytest.raises(LedgerError) as exc:
            ledger_service.require_daily_ledger(date(1999, 1, 1))
        assert exc.value.kind == "not_found"


class TestClosing:

    def test_closed_ledger_rejects_manual_changes(self, db_session, admin_user):
        entry = ledger_service.add_entry(DAY, entry_type="receipt", mode="cash", description="Sale", amount=100)
        ledger = ledger_service.close_daily_ledger(DAY, user_id=admin_user.id)
        assert ledger.is_closed
        assert ledger.closed_by_user_id == admin_user.id
        assert ledger.closed_at is not None

        with pytest.raises(LedgerError) as exc:
            ledger_service.add_entry(DAY, entry_type="receipt", mode="cash", description="Late", amount=5)
        assert exc.value.kind == "ledger_closed"

        with pytest.raises(LedgerError) as exc:
            ledger_service.delete_entry(entry.id)
        assert exc.value.kind == "ledger_closed"

        with pytest.raises(LedgerError) as exc:
            ledger_service.set_opening_balances(DAY, opening_cash=1, opening_bank=1)
        assert exc.value.kind == "ledger_closed"

    def test_close_twice(self, db_session):
        ledger_service.set_opening_balances(DAY, opening_cash=0, opening_bank=0)
        ledger_service.close_daily_ledger(DAY)
        with pytest.raises(LedgerError) as exc:
            ledger_service.close_daily_ledger(DAY)
        assert exc.value.kind == "ledger_closed"

    def test_close_missing_day(self, db_session):
        with pytest.raises(LedgerError) as exc:
            ledger_service.close_daily_ledger(DAY)
        assert exc.value.kind == "not_found"


# =============================================================================
# SALES PAYMENT POSTING
# =============================================================================


class TestSalesPaymentPosting:

    @pytest.fixture
    def sales_invoice(self, db_session, admin_user):
        return invoice_service.create_invoice(SALES, sales_payload(), user_id=admin_user.id)

    def _pay(self, invoice, user, **payload):
        payload.setdefault("payment_type", "partial")
        payload.setdefault("payment_date", DAY.isoformat())
        return payment_service.add_payment(SALES, invoice.id, payload, user_id=user.id)

    def test_cash_payment_posts_cash_receipt(self, db_session, sales_invoice, admin_user):
        payment, _ = self._pay(sales_invoice, admin_user, amount=400)

        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.cash_receipts == Decimal(400)
        assert ledger.closing_cash == Decimal(400)

        entry = db_session.query(LedgerEntry).filter_by(payment_id=payment.id).one()
        assert entry.reference_type == "sales_payment"
        assert entry.invoice_id == sales_invoice.id
        assert sales_invoice.invoice_number in entry.description

    def test_non_cash_payment_posts_bank_receipt(self, db_session, sales_invoice, admin_user):
        self._pay(sales_invoice, admin_user, amount=250, payment_method="check")

        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.bank_receipts == Decimal(250)
        assert ledger.cash_receipts == Decimal(0)

    def test_discount_is_not_posted(self, db_session, sales_invoice, admin_user):
        self._pay(sales_invoice, admin_user, amount=300, discount=100)
        self._pay(sales_invoice, admin_user, amount=0, discount=50)

        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.cash_receipts == Decimal(300)
        assert db_session.query(LedgerEntry).count() == 1

    def test_deleting_payment_removes_receipt(self, db_session, sales_invoice, admin_user):
        payment, _ = self._pay(sales_invoice, admin_user, amount=400)

        payment_service.delete_payment(SALES, sales_invoice.id, payment.id, user_id=admin_user.id)

        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.cash_receipts == Decimal(0)
        assert db_session.query(LedgerEntry).count() == 0

    def test_posted_entry_cannot_be_deleted_directly(self, db_session, sales_invoice, admin_user):
        payment, _ = self._pay(sales_invoice, admin_user, amount=400)
        entry = db_session.query(LedgerEntry).filter_by(payment_id=payment.id).one()

        with pytest.raises(LedgerError) as exc:
            ledger_service.delete_entry(entry.id)
        assert exc.value.details["payment_id"] == payment.id

    def test_closed_ledger_still_follows_payments(self, db_session, sales_invoice, admin_user):
        ledger_service.set_opening_balances(DAY, opening_cash=0, opening_bank=0)
        ledger_service.close_daily_ledger(DAY)

        payment, _ = self._pay(sales_invoice, admin_user, amount=400)
        assert ledger_service.require_daily_ledger(DAY).cash_receipts == Decimal(400)

        payment_service.delete_payment(SALES, sales_invoice.id, payment.id, user_id=admin_user.id)
        assert ledger_service.require_daily_ledger(DAY).cash_receipts == Decimal(0)

    def test_deleting_invoice_removes_receipts(self, db_session, sales_invoice, admin_user):
        self._pay(sales_invoice, admin_user, amount=100)
        self._pay(sales_invoice, admin_user, amount=200, payment_method="card")

        summary = invoice_service.delete_invoice(SALES, sales_invoice.id)

        assert summary["ledger_entries_deleted"] == 2
        ledger = ledger_service.require_daily_ledger(DAY)
        assert ledger.cash_receipts == Decimal(0)
        assert ledger.bank_receipts == Decimal(0)

    def test_other_types_do_not_post(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        payment_service.add_payment(
            FREIGHT, invoice.id,
            {"amount": 100, "payment_type": "partial", "payment_date": DAY.isoformat()},
            user_id=admin_user.id,
        )
        assert ledger_service.get_daily_ledger(DAY) is None


class TestSummary:

    def test_range_totals(self, db_session):
        ledger_service.set_opening_balances(date(2024, 3, 1), opening_cash=100, opening_bank=0)
        ledger_service.set_opening_balances(date(2024, 3, 2), opening_cash=50, opening_bank=10)
        ledger_service.add_entry(date(2024, 3, 2), entry_type="receipt", mode="cash", description="Sale", amount=25)
        ledger_service.set_opening_balances(date(2024, 3, 9), opening_cash=999, opening_bank=0)

        summary = ledger_service.ledger_summary(date(2024, 3, 1), date(2024, 3, 7))

        assert summary["total_days"] == 2
        assert summary["total_opening_cash"] == Decimal(150)
        assert summary["total_cash_receipts"] == Decimal(25)
        assert summary["total_closing_cash"] == Decimal(175)
        assert [l["ledger_date"] for l in summary["ledgers"]] == ["2024-03-01", "2024-03-02"]
