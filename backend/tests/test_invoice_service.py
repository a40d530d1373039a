"""
Invoice service tests: create, update, delete, status refresh and listing
across the five invoice types.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from tradeledger.invoice_rules import DUBAI_CLEARANCE, FREIGHT, SALES, TRANSPORT, VARIANTS
from tradeledger.services import invoice_service, payment_service
from tradeledger.services.invoice_service import InvoiceError, InvoiceFilters, InvoiceNotFoundError
from tradeledger.time_utils import utcnow
from tradeledger.validation import ValidationError

from conftest import flat_payload, past_date, sales_payload


# =============================================================================
# CREATE
# =============================================================================


class TestCreateInvoice:

    def test_sales_derived_fields(self, db_session, admin_user, trn_customer):
        invoice = invoice_service.create_invoice(
            SALES,
            sales_payload(vat_percentage=5, discount=50),
            user_id=admin_user.id,
        )

        assert invoice.invoice_number == "INV-000001"
        assert invoice.subtotal == Decimal(1000)
        assert invoice.vat_amount == Decimal(50)
        assert invoice.gross_amount == Decimal(1000)
        assert invoice.outstanding_amount == Decimal(1000)
        assert invoice.received_amount == Decimal(0)
        assert invoice.status == "unpaid"
        assert invoice.created_by_user_id == admin_user.id

    @pytest.mark.parametrize("key", sorted(VARIANTS))
    def test_every_type_can_be_created(self, db_session, admin_user, key):
        variant = VARIANTS[key]
        payload = sales_payload() if variant.has_line_items else flat_payload()

        invoice = invoice_service.create_invoice(variant, payload, user_id=admin_user.id)

        assert invoice.invoice_number.startswith(variant.prefix + "-")
        assert invoice.status == "unpaid"

    def test_flat_invoice_mirror_amounts(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(
            TRANSPORT, flat_payload(amount=1000, conversion_rate=3), user_id=admin_user.id
        )
        assert invoice.converted_amount == Decimal("333.3333")
        assert invoice.converted_outstanding_amount == Decimal("333.3333")

        clearance = invoice_service.create_invoice(
            DUBAI_CLEARANCE, flat_payload(amount="250.25", conversion_rate=80), user_id=admin_user.id
        )
        assert clearance.converted_amount == Decimal(20020)

    def test_past_due_invoice_is_created_overdue(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(
            FREIGHT,
            flat_payload(invoice_date=past_date(60), due_date=past_date(30)),
            user_id=admin_user.id,
        )
        assert invoice.status == "overdue"

    def test_client_supplied_derived_fields_are_rejected(self, db_session, admin_user):
        with pytest.raises(ValidationError) as exc:
            invoice_service.create_invoice(
                FREIGHT, flat_payload(status="paid"), user_id=admin_user.id
            )
        assert exc.value.field == "status"

    def test_vat_requires_customer_trn(self, db_session, admin_user):
        with pytest.raises(InvoiceError) as exc:
            invoice_service.create_invoice(
                SALES, sales_payload(customer="Walk-in Buyer", vat_percentage=5), user_id=admin_user.id
            )
        assert exc.value.kind == "trn_required"

    def test_trn_lookup_is_case_insensitive(self, db_session, admin_user, trn_customer):
        invoice = invoice_service.create_invoice(
            SALES, sales_payload(customer="ACME trading", vat_percentage=5), user_id=admin_user.id
        )
        assert invoice.vat_amount == Decimal(50)

    def test_zero_vat_needs_no_customer_record(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(
            SALES, sales_payload(customer="Walk-in Buyer"), user_id=admin_user.id
        )
        assert invoice.vat_amount == Decimal(0)

    def test_duplicate_number_rejected(self, db_session, admin_user):
        invoice_service.create_invoice(FREIGHT, flat_payload(invoice_number="FR-9000"), user_id=admin_user.id)
        with pytest.raises(InvoiceError) as exc:
            invoice_service.create_invoice(FREIGHT, flat_payload(invoice_number="FR-9000"), user_id=admin_user.id)
        assert exc.value.kind == "duplicate_invoice_number"

    def test_same_number_allowed_across_types(self, db_session, admin_user):
        invoice_service.create_invoice(FREIGHT, flat_payload(invoice_number="X-1"), user_id=admin_user.id)
        other = invoice_service.create_invoice(TRANSPORT, flat_payload(invoice_number="X-1"), user_id=admin_user.id)
        assert other.invoice_number == "X-1"

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"quantity": 0}, "quantity"),
            ({"quantity": 2.5}, "quantity"),
            ({"rate": -1}, "rate"),
            ({"vat_percentage": 101}, "vat_percentage"),
            ({"discount": -5}, "discount"),
            ({"customer": ""}, "customer"),
            ({"rate": "NaN"}, "rate"),
        ],
    )
    def test_sales_field_rules(self, db_session, admin_user, overrides, field):
        with pytest.raises(ValidationError) as exc:
            invoice_service.create_invoice(SALES, sales_payload(**overrides), user_id=admin_user.id)
        assert exc.value.field == field

    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"amount": 0}, "amount"),
            ({"conversion_rate": 0}, "conversion_rate"),
            ({"agent": None}, "agent"),
            ({"due_date": past_date(400)}, "due_date"),
        ],
    )
    def test_flat_field_rules(self, db_session, admin_user, overrides, field):
        with pytest.raises(ValidationError) as exc:
            invoice_service.create_invoice(FREIGHT, flat_payload(**overrides), user_id=admin_user.id)
        assert exc.value.field == field


# =============================================================================
# UPDATE / DELETE
# =============================================================================


class TestUpdateInvoice:

    def test_update_rederives_from_payments(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(amount=8000), user_id=admin_user.id)
        payment_service.add_payment(
            FREIGHT, invoice.id, {"amount": 3000, "payment_type": "partial"}, user_id=admin_user.id
        )

        updated = invoice_service.update_invoice(
            FREIGHT, invoice.id, flat_payload(amount=5000, conversion_rate=50), user_id=admin_user.id
        )

        assert updated.gross_amount == Decimal(5000)
        assert updated.received_amount == Decimal(3000)
        assert updated.outstanding_amount == Decimal(2000)
        assert updated.converted_outstanding_amount == Decimal(40)
        assert updated.status == "partially_paid"
        assert updated.updated_by_user_id == admin_user.id

    def test_lowering_amount_below_received_marks_paid(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(amount=8000), user_id=admin_user.id)
        payment_service.add_payment(
            FREIGHT, invoice.id, {"amount": 6000, "payment_type": "partial"}, user_id=admin_user.id
        )

        updated = invoice_service.update_invoice(
            FREIGHT, invoice.id, flat_payload(amount=5000), user_id=admin_user.id
        )
        assert updated.outstanding_amount == Decimal(-1000)
        assert updated.status == "paid"

    def test_renumber_collision_rejected(self, db_session, admin_user):
        first = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        second = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)

        with pytest.raises(InvoiceError) as exc:
            invoice_service.update_invoice(
                FREIGHT, second.id, flat_payload(invoice_number=first.invoice_number), user_id=admin_user.id
            )
        assert exc.value.kind == "duplicate_invoice_number"

    def test_keeping_own_number_is_allowed(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        updated = invoice_service.update_invoice(
            FREIGHT, invoice.id, flat_payload(invoice_number=invoice.invoice_number, agent="New Agent"),
            user_id=admin_user.id,
        )
        assert updated.agent == "New Agent"

    def test_unknown_invoice(self, db_session, admin_user):
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.update_invoice(FREIGHT, 999, flat_payload(), user_id=admin_user.id)


class TestDeleteInvoice:

    def test_delete_removes_payments(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        payment_service.add_payment(
            FREIGHT, invoice.id, {"amount": 100, "payment_type": "partial"}, user_id=admin_user.id
        )

        summary = invoice_service.delete_invoice(FREIGHT, invoice.id)

        assert summary["payments_deleted"] == 1
        assert summary["invoice_number"] == invoice.invoice_number
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.get_invoice(FREIGHT, summary["invoice_id"])
        assert db_session.query(invoice_service.payment_model(FREIGHT)).count() == 0


# =============================================================================
# STATUS REFRESH
# =============================================================================


class TestRefreshStatuses:

    def test_unpaid_becomes_overdue_after_due_date(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        assert invoice.status == "unpaid"

        changed = invoice_service.refresh_statuses(FREIGHT, now=utcnow() + timedelta(days=45))

        assert changed == 1
        assert invoice_service.get_invoice(FREIGHT, invoice.id).status == "overdue"

    def test_partially_paid_stays_partially_paid(self, db_session, admin_user):
        invoice = invoice_service.create_invoice(FREIGHT, flat_payload(), user_id=admin_user.id)
        payment_service.add_payment(
            FREIGHT, invoice.id, {"amount": 100, "payment_type": "partial"}, user_id=admin_user.id
        )

        assert invoice_service.refresh_statuses(FREIGHT, now=utcnow() + timedelta(days=45)) == 0


# =============================================================================
# LISTING
# =============================================================================


class TestListInvoices:

    @pytest.fixture
    def three_invoices(self, db_session, admin_user):
        a = invoice_service.create_invoice(FREIGHT, flat_payload(agent="Gulf Line", amount=1000), user_id=admin_user.id)
        b = invoice_service.create_invoice(FREIGHT, flat_payload(agent="Ocean Star", amount=5000), user_id=admin_user.id)
        c = invoice_service.create_invoice(
            FREIGHT,
            flat_payload(agent="Gulf Express", amount=3000, invoice_date=past_date(60), due_date=past_date(30)),
            user_id=admin_user.id,
        )
        return a, b, c

    def test_pagination_and_total(self, three_invoices):
        items, total = invoice_service.list_invoices(FREIGHT, InvoiceFilters(), page=1, limit=2)
        assert total == 3
        assert len(items) == 2

    def test_search_matches_agent(self, three_invoices):
        items, total = invoice_service.list_invoices(FREIGHT, InvoiceFilters(search="gulf"))
        assert total == 2
        assert {i.agent for i in items} == {"Gulf Line", "Gulf Express"}

    def test_status_filter(self, three_invoices):
        items, _ = invoice_service.list_invoices(FREIGHT, InvoiceFilters(statuses=["overdue"]))
        assert [i.agent for i in items] == ["Gulf Express"]

    def test_amount_range_and_sort(self, three_invoices):
        filters = InvoiceFilters(min_amount=Decimal(2000), sort_by="gross_amount", sort_order="asc")
        items, _ = invoice_service.list_invoices(FREIGHT, filters)
        assert [i.gross_amount for i in items] == [Decimal(3000), Decimal(5000)]

    def test_filters_from_query_args(self):
        filters = InvoiceFilters.from_args({
            "statuses": "unpaid,overdue",
            "agent": " Gulf ",
            "start_date": "2024-01-01",
            "min_outstanding": "10.5",
            "sort_by": "due_date",
            "sort_order": "ASC",
        })
        assert filters.statuses == ["unpaid", "overdue"]
        assert filters.party == "Gulf"
        assert filters.start_date.isoformat() == "2024-01-01"
        assert filters.min_outstanding == Decimal("10.5")
        assert filters.sort_order == "asc"

    @pytest.mark.parametrize(
        "args",
        [
            {"status": "cancelled"},
            {"sort_by": "password_hash"},
            {"start_date": "yesterday"},
            {"min_amount": "lots"},
        ],
    )
    def test_invalid_query_args(self, args):
        with pytest.raises(ValidationError):
            InvoiceFilters.from_args(args)
