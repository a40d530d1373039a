"""
Payment tests.

Verifies:
- Guards: already_paid, invalid_amount, overpayment (with attempted/limit)
- Invoice re-derivation after insert and delete
- Sales settlement discounts
- Payment summary
"""

from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from tradeledger.invoice_rules import DUBAI_TRANSPORT, FREIGHT, SALES
from tradeledger.services import invoice_service, payment_service
from tradeledger.services.auth_service import create_user
from tradeledger.services.concurrency import run_with_retry
from tradeledger.services.invoice_service import InvoiceNotFoundError
from tradeledger.services.payment_service import PaymentError, PaymentNotFoundError
from tradeledger.validation import ValidationError

from conftest import ADMIN_PASSWORD, flat_payload, run_concurrently, sales_payload


@pytest.fixture
def sales_invoice(db_session, admin_user):
    """1000 AED sales invoice (10 x 100, no VAT)."""
    return invoice_service.create_invoice(SALES, sales_payload(), user_id=admin_user.id)


@pytest.fixture
def freight_invoice(db_session, admin_user):
    """8000 PKR freight invoice at 80 PKR/AED."""
    return invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)


def pay(variant, invoice, user, **payload):
    payload.setdefault("payment_type", "partial")
    return payment_service.add_payment(variant, invoice.id, payload, user_id=user.id)


# =============================================================================
# ADD PAYMENT
# =============================================================================


class TestAddPayment:

    def test_partial_payment(self, freight_invoice, admin_user):
        payment, invoice = pay(FREIGHT, freight_invoice, admin_user, amount=2000)

        assert payment.amount == Decimal(2000)
        assert payment.payment_method == "cash"
        assert payment.received_by_user_id == admin_user.id
        assert invoice.received_amount == Decimal(2000)
        assert invoice.outstanding_amount == Decimal(6000)
        assert invoice.converted_received_amount == Decimal(25)
        assert invoice.status == "partially_paid"
        assert invoice.last_payment_date == payment.payment_date

    def test_exact_settlement_is_paid(self, freight_invoice, admin_user):
        pay(FREIGHT, freight_invoice, admin_user, amount=3000)
        _, invoice = pay(FREIGHT, freight_invoice, admin_user, amount=5000, payment_type="full")

        assert invoice.outstanding_amount == Decimal(0)
        assert invoice.status == "paid"

    def test_already_paid(self, freight_invoice, admin_user):
        pay(FREIGHT, freight_invoice, admin_user, amount=8000, payment_type="full")

        with pytest.raises(PaymentError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount=1)
        assert exc.value.kind == "already_paid"

    def test_zero_amount(self, freight_invoice, admin_user):
        with pytest.raises(PaymentError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount=0)
        assert exc.value.kind == "invalid_amount"

    def test_overpayment_reports_limit(self, freight_invoice, admin_user):
        pay(FREIGHT, freight_invoice, admin_user, amount=3000)

        with pytest.raises(PaymentError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount="5000.01")

        assert exc.value.kind == "overpayment"
        assert exc.value.details["attempted"] == Decimal("5000.01")
        assert exc.value.details["limit"] == Decimal(5000)

    def test_amount_below_storage_scale_is_zero(self, db_session, freight_invoice, admin_user):
        with pytest.raises(PaymentError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount="0.00001")
        assert exc.value.kind == "invalid_amount"

        invoice = invoice_service.get_invoice(FREIGHT, freight_invoice.id)
        assert invoice.status == "unpaid"
        assert payment_service.get_payments_for_invoice(FREIGHT, invoice.id) == []

    def test_amount_rounded_to_storage_scale(self, db_session, freight_invoice, admin_user):
        payment, invoice = pay(FREIGHT, freight_invoice, admin_user, amount="0.00005")

        db_session.expire_all()
        stored = payment_service.get_payments_for_invoice(FREIGHT, invoice.id)[0]
        assert stored.amount == Decimal("0.0001")
        invoice = invoice_service.get_invoice(FREIGHT, invoice.id)
        assert invoice.received_amount == Decimal("0.0001")
        assert invoice.status == "partially_paid"

    def test_overpayment_message_uses_fixed_places(self, freight_invoice, admin_user):
        pay(FREIGHT, freight_invoice, admin_user, amount=3000)

        with pytest.raises(PaymentError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount="5000.01")

        assert str(exc.value) == "Payment of 5,000.01 exceeds outstanding amount of 5,000.00"

    def test_rejected_payment_leaves_invoice_untouched(self, db_session, freight_invoice, admin_user):
        with pytest.raises(PaymentError):
            pay(FREIGHT, freight_invoice, admin_user, amount=9000)

        invoice = invoice_service.get_invoice(FREIGHT, freight_invoice.id)
        assert invoice.received_amount == Decimal(0)
        assert payment_service.get_payments_for_invoice(FREIGHT, invoice.id) == []

    def test_negative_amount_is_validation_error(self, freight_invoice, admin_user):
        with pytest.raises(ValidationError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount=-10)
        assert exc.value.field == "amount"

    def test_discount_only_for_sales(self, freight_invoice, admin_user):
        with pytest.raises(ValidationError) as exc:
            pay(FREIGHT, freight_invoice, admin_user, amount=100, discount=10)
        assert exc.value.field == "discount"

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"amount": 10, "payment_type": "deposit"}, "payment_type"),
            ({"amount": 10, "payment_type": "partial", "payment_method": "crypto"}, "payment_method"),
            ({"payment_type": "partial"}, "amount"),
            ({"amount": 10, "payment_type": "partial", "payment_date": "tomorrow"}, "payment_date"),
        ],
    )
    def test_payload_rules(self, freight_invoice, admin_user, payload, field):
        with pytest.raises(ValidationError) as exc:
            payment_service.add_payment(FREIGHT, freight_invoice.id, payload, user_id=admin_user.id)
        assert exc.value.field == field

    def test_unknown_invoice(self, db_session, admin_user):
        with pytest.raises(InvoiceNotFoundError):
            payment_service.add_payment(
                FREIGHT, 12345, {"amount": 1, "payment_type": "partial"}, user_id=admin_user.id
            )

    def test_aed_invoice_payment_mirrors_into_pkr(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(
            DUBAI_TRANSPORT, flat_payload(amount=500, conversion_rate="79.5"), user_id=admin_user.id
        )
        _, invoice = pay(DUBAI_TRANSPORT, invoice, admin_user, amount="100.25")

        # 100.25 * 79.5 = 7969.875 ; 399.75 * 79.5 = 31780.125
        assert invoice.converted_received_amount == Decimal(7970)
        assert invoice.converted_outstanding_amount == Decimal(31780)


class TestSalesDiscounts:

    def test_discount_counts_toward_settlement(self, sales_invoice, admin_user):
        _, invoice = pay(SALES, sales_invoice, admin_user, amount=900, discount=100, payment_type="full")

        assert invoice.received_amount == Decimal(900)
        assert invoice.discount_allowed == Decimal(100)
        assert invoice.outstanding_amount == Decimal(0)
        assert invoice.status == "paid"

    def test_discount_only_payment(self, sales_invoice, admin_user):
        _, invoice = pay(SALES, sales_invoice, admin_user, amount=0, discount=50)

        assert invoice.received_amount == Decimal(0)
        assert invoice.status == "partially_paid"
        assert invoice.outstanding_amount == Decimal(950)

    def test_discount_included_in_overpayment_guard(self, sales_invoice, admin_user):
        with pytest.raises(PaymentError) as exc:
            pay(SALES, sales_invoice, admin_user, amount=950, discount=100)
        assert exc.value.details["attempted"] == Decimal(1050)
        assert exc.value.details["limit"] == Decimal(1000)


# =============================================================================
# DELETE PAYMENT
# =============================================================================


class TestDeletePayment:

    def test_delete_rederives_invoice(self, freight_invoice, admin_user):
        first, _ = pay(FREIGHT, freight_invoice, admin_user, amount=3000)
        second, invoice = pay(FREIGHT, freight_invoice, admin_user, amount=5000, payment_type="full")
        assert invoice.status == "paid"

        invoice = payment_service.delete_payment(FREIGHT, freight_invoice.id, second.id, user_id=admin_user.id)

        assert invoice.received_amount == Decimal(3000)
        assert invoice.outstanding_amount == Decimal(5000)
        assert invoice.status == "partially_paid"
        assert [p.id for p in payment_service.get_payments_for_invoice(FREIGHT, invoice.id)] == [first.id]

    def test_deleting_last_payment_returns_to_unpaid(self, freight_invoice, admin_user):
        payment, _ = pay(FREIGHT, freight_invoice, admin_user, amount=3000)

        invoice = payment_service.delete_payment(FREIGHT, freight_invoice.id, payment.id, user_id=admin_user.id)

        assert invoice.status == "unpaid"
        assert invoice.last_payment_date is None

    def test_payment_must_belong_to_invoice(self, db_session, freight_invoice, admin_user):
        other = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        payment, _ = pay(FREIGHT, other, admin_user, amount=100)

        with pytest.raises(PaymentNotFoundError):
            payment_service.delete_payment(FREIGHT, freight_invoice.id, payment.id, user_id=admin_user.id)


class TestPaymentSummary:

    def test_summary_counts(self, sales_invoice, admin_user):
        pay(SALES, sales_invoice, admin_user, amount=300, payment_date="2024-03-01")
        pay(SALES, sales_invoice, admin_user, amount=600, discount=100, payment_type="full",
            payment_method="bank_transfer", payment_date="2024-03-05T10:30:00Z")

        summary = payment_service.get_payment_summary(SALES, sales_invoice.id)

        assert summary["payment_count"] == 2
        assert summary["total_paid"] == Decimal(900)
        assert summary["total_discount"] == Decimal(100)
        assert summary["total_credited"] == Decimal(1000)
        assert summary["status"] == "paid"
        assert summary["by_type"] == {"partial": 1, "full": 1}
        assert summary["by_method"]["cash"] == 1
        assert summary["by_method"]["bank_transfer"] == 1
        assert summary["last_payment_date"] == "2024-03-05T10:30:00Z"


# =============================================================================
# END-TO-END SCENARIOS
# =============================================================================


class TestScenarios:

    def test_deleting_middle_payment_resums_remaining(self, freight_invoice, admin_user):
        first, _ = pay(FREIGHT, freight_invoice, admin_user, amount="1000.10", payment_date="2024-03-01")
        middle, _ = pay(FREIGHT, freight_invoice, admin_user, amount="2000.20", payment_date="2024-03-02")
        last, _ = pay(FREIGHT, freight_invoice, admin_user, amount="3000.30", payment_date="2024-03-03")

        invoice = payment_service.delete_payment(FREIGHT, freight_invoice.id, middle.id, user_id=admin_user.id)

        assert invoice.received_amount == Decimal("4000.40")
        assert invoice.outstanding_amount == Decimal("3999.60")
        assert invoice.last_payment_date == last.payment_date

        invoice = payment_service.delete_payment(FREIGHT, freight_invoice.id, last.id, user_id=admin_user.id)
        assert invoice.last_payment_date == first.payment_date

    def test_sales_vat_lifecycle(self, db_session, admin_user, trn_customer):
        invoice = invoice_service.create_invoice(
            SALES, sales_payload(quantity=10, rate=100, vat_percentage=5), user_id=admin_user.id
        )
        assert invoice.subtotal == Decimal(1000)
        assert invoice.vat_amount == Decimal(50)
        assert invoice.gross_amount == Decimal(1050)
        assert invoice.outstanding_amount == Decimal(1050)
        assert invoice.status == "unpaid"

        _, invoice = pay(SALES, invoice, admin_user, amount=500)
        assert invoice.received_amount == Decimal(500)
        assert invoice.outstanding_amount == Decimal(550)
        assert invoice.status == "partially_paid"

        _, invoice = pay(SALES, invoice, admin_user, amount=550, payment_type="full")
        assert invoice.outstanding_amount == Decimal(0)
        assert invoice.status == "paid"

        with pytest.raises(PaymentError) as exc:
            pay(SALES, invoice, admin_user, amount=1)
        assert exc.value.kind == "already_paid"

    def test_pkr_invoice_aed_mirror(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(
            FREIGHT, flat_payload(amount=10000, conversion_rate=80), user_id=admin_user.id
        )
        assert invoice.converted_amount == Decimal("125")

        _, invoice = pay(FREIGHT, invoice, admin_user, amount=4000)
        assert invoice.converted_received_amount == Decimal(50)
        assert invoice.converted_outstanding_amount == Decimal(75)


# =============================================================================
# CONCURRENCY
# =============================================================================


class TestConcurrentPayments:

    def test_only_one_of_competing_payments_lands(self, file_app):
        with file_app.app_context():
            user = create_user(username="admin", email="admin@example.com", password=ADMIN_PASSWORD, role="admin")
            invoice = invoice_service.create_invoice(FREIGHT, flat_payload(amount=1000), user_id=user.id)
            user_id, invoice_id = user.id, invoice.id

        def pay_600():
            payment, _ = payment_service.add_payment(
                FREIGHT, invoice_id, {"amount": 600, "payment_type": "partial"}, user_id=user_id
            )
            return payment.id

        landed, errors = run_concurrently(file_app, pay_600, 5)

        assert len(landed) == 1
        assert len(errors) == 4
        assert all(isinstance(e, PaymentError) and e.kind == "overpayment" for e in errors)

        with file_app.app_context():
            invoice = invoice_service.get_invoice(FREIGHT, invoice_id)
            assert invoice.received_amount == Decimal(600)
            assert invoice.outstanding_amount == Decimal(400)
            assert invoice.version_id >= 2
            assert len(payment_service.get_payments_for_invoice(FREIGHT, invoice_id)) == 1


class TestRunWithRetry:

    def test_stale_write_is_retried(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version_id mismatch")
            return "done"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_gives_up_after_last_attempt(self, db_session):
        def always_stale():
            raise StaleDataError("version_id mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(always_stale, attempts=2, backoff_base=0)

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def rejected():
            calls.append(1)
            raise PaymentError("over", kind="overpayment")

        with pytest.raises(PaymentError):
            run_with_retry(rejected, backoff_base=0)
        assert len(calls) == 1
