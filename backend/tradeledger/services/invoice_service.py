# Overview: Service-layer operations for invoices of every type; persistence around invoice_rules.

"""
Invoice Service

One set of operations serves all five invoice types. The InvoiceVariant
descriptor (see invoice_rules) picks the table pair and the rule switches;
nothing here branches on a type name.

LIFECYCLE:
- create: validate, TRN precondition (VAT sales), number (explicit or
  generated), derive, commit
- update: full replacement of the writable fields, re-derive from the
  current payment set
- delete: removes the invoice, its payments and any daily ledger receipts
- refresh_statuses: re-derive every invoice so unpaid invoices past their
  due date become overdue

Derived fields are always recomputed from scratch by recompute_invoice().
Each public mutation commits once; any error rolls the whole unit back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from ..currency import ZERO, to_decimal
from ..extensions import db
from ..invoice_rules import (
    VALID_STATUSES,
    DerivedFields,
    InvoiceInputs,
    InvoiceVariant,
    compute_invoice_aggregates,
)
from ..models import (
    DubaiClearanceInvoice,
    DubaiClearancePayment,
    DubaiTransportInvoice,
    DubaiTransportPayment,
    FreightInvoice,
    FreightPayment,
    SalesInvoice,
    SalesPayment,
    TransportInvoice,
    TransportPayment,
)
from ..time_utils import day_bounds, parse_iso_date, utcnow
from ..validation import (
    ValidationError,
    coerce_decimal,
    enforce_rules_invoice,
    invoice_policy,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .customer_service import find_customer_by_name
from .ledger_service import remove_invoice_entries
from .sequence_service import next_invoice_number


class InvoiceError(Exception):
    """
    Business-rule rejection.

    kind: duplicate_invoice_number | trn_required
    """

    def __init__(self, message: str, kind: str, details: dict | None = None):
        super().__init__(message)
        self.kind = kind
        self.details = details or {}


class InvoiceNotFoundError(Exception):
    """Raised when an invoice is not found."""
    pass


_MODELS = {
    "sales": (SalesInvoice, SalesPayment),
    "freight": (FreightInvoice, FreightPayment),
    "transport": (TransportInvoice, TransportPayment),
    "dubai_transport": (DubaiTransportInvoice, DubaiTransportPayment),
    "dubai_clearance": (DubaiClearanceInvoice, DubaiClearancePayment),
}

# Optional writable fields reset to these values on full replacement
_SALES_DEFAULTS = {"vat_percentage": ZERO, "discount": ZERO, "return_quantity": 0}


def invoice_model(variant: InvoiceVariant):
    return _MODELS[variant.key][0]


def payment_model(variant: InvoiceVariant):
    return _MODELS[variant.key][1]


# =============================================================================
# DERIVATION
# =============================================================================

def load_payments(variant: InvoiceVariant, invoice_id: int) -> list:
    """Authoritative payment set for an invoice, oldest first."""
    model = payment_model(variant)
    return (
        db.session.query(model)
        .filter(model.invoice_id == invoice_id)
        .order_by(model.payment_date.asc(), model.id.asc())
        .all()
    )


def _inputs_for(invoice, received: Decimal, discount_allowed: Decimal) -> InvoiceInputs:
    variant = invoice.variant
    if variant.has_line_items:
        return InvoiceInputs(
            due_date=invoice.due_date,
            quantity=to_decimal(invoice.quantity),
            rate=to_decimal(invoice.rate),
            vat_percentage=to_decimal(invoice.vat_percentage),
            discount=to_decimal(invoice.discount),
            received_amount=received,
            discount_allowed=discount_allowed,
        )
    return InvoiceInputs(
        due_date=invoice.due_date,
        amount=to_decimal(invoice.amount),
        conversion_rate=to_decimal(invoice.conversion_rate),
        received_amount=received,
    )


def _apply_derived(invoice, derived: DerivedFields) -> None:
    invoice.gross_amount = derived.gross_amount
    invoice.received_amount = derived.received_amount
    invoice.outstanding_amount = derived.outstanding_amount
    invoice.status = derived.status

    variant = invoice.variant
    if variant.has_line_items:
        invoice.subtotal = derived.subtotal
        invoice.vat_amount = derived.vat_amount
        invoice.discount_allowed = derived.discount_allowed
    if variant.is_dual_currency:
        invoice.converted_amount = derived.converted_amount
        invoice.converted_received_amount = derived.converted_received_amount
        invoice.converted_outstanding_amount = derived.converted_outstanding_amount


def recompute_invoice(invoice, *, now=None) -> DerivedFields:
    """
    Re-derive every cached field of an invoice from its inputs and its
    current payment set. Does not commit.
    """
    payments = load_payments(invoice.variant, invoice.id) if invoice.id is not None else []

    received = sum((to_decimal(p.amount) for p in payments), ZERO)
    discount_allowed = sum((to_decimal(p.discount) for p in payments), ZERO)

    derived = compute_invoice_aggregates(
        invoice.variant,
        _inputs_for(invoice, received, discount_allowed),
        now or utcnow(),
    )
    _apply_derived(invoice, derived)
    invoice.last_payment_date = max((p.payment_date for p in payments), default=None)
    return derived


# =============================================================================
# PRECONDITIONS
# =============================================================================

def _check_trn(variant: InvoiceVariant, data: dict) -> None:
    if not variant.has_vat:
        return
    if to_decimal(data.get("vat_percentage")) <= 0:
        return

    customer_name = data.get("customer")
    customer = find_customer_by_name(customer_name)
    if not customer or not customer.has_trn:
        raise InvoiceError(
            "This sale includes VAT. Add a TRN to the customer before creating the invoice.",
            kind="trn_required",
            details={"customer": customer_name},
        )


def _check_number_available(model, number: str, exclude_id: int | None = None) -> None:
    query = db.session.query(model.id).filter(model.invoice_number == number)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise InvoiceError(
            f"Invoice number {number} already exists",
            kind="duplicate_invoice_number",
            details={"invoice_number": number},
        )


def _validate(variant: InvoiceVariant, payload: dict) -> dict:
    patch = validate_payload(
        model=invoice_model(variant),
        payload=payload,
        policy=invoice_policy(variant),
        partial=False,
    )
    enforce_rules_invoice(variant, patch)
    if variant.has_line_items:
        for key, default in _SALES_DEFAULTS.items():
            if patch.get(key) is None:
                patch[key] = default
    return patch


# =============================================================================
# OPERATIONS
# =============================================================================

def create_invoice(variant: InvoiceVariant, payload: dict, *, user_id: int):
    """
    Create an invoice.

    invoice_number may be supplied; it must be unique within the type.
    Otherwise the next number is generated from the type's counter. Status
    is always derived (a new invoice is unpaid, or overdue when its due date
    is already in the past).

    Raises:
        ValidationError: payload shape / field rules
        InvoiceError: trn_required, duplicate_invoice_number
    """
    patch = _validate(variant, payload)
    model = invoice_model(variant)

    def _op():
        data = dict(patch)
        _check_trn(variant, data)

        number = data.pop("invoice_number", None)
        if number:
            _check_number_available(model, number)
        else:
            number = next_invoice_number(variant, model)

        invoice = model(**data)
        invoice.invoice_number = number
        invoice.created_by_user_id = user_id
        recompute_invoice(invoice)

        db.session.add(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_invoice(variant: InvoiceVariant, invoice_id: int):
    invoice = db.session.get(invoice_model(variant), invoice_id)
    if not invoice:
        raise InvoiceNotFoundError(f"{variant.label} invoice {invoice_id} not found")
    return invoice


def lock_invoice(variant: InvoiceVariant, invoice_id: int):
    model = invoice_model(variant)
    invoice = lock_for_update(db.session.query(model).filter(model.id == invoice_id)).first()
    if not invoice:
        raise InvoiceNotFoundError(f"{variant.label} invoice {invoice_id} not found")
    return invoice


def update_invoice(variant: InvoiceVariant, invoice_id: int, payload: dict, *, user_id: int):
    """
    Full replacement of an invoice's writable fields.

    The invoice number may change but must not collide with another invoice
    of the same type; omitting it keeps the current number. Received
    amounts always come from the payment set, never from the payload.
    """
    patch = _validate(variant, payload)
    model = invoice_model(variant)

    def _op():
        invoice = lock_invoice(variant, invoice_id)
        data = dict(patch)
        _check_trn(variant, data)

        number = data.pop("invoice_number", None)
        if number and number != invoice.invoice_number:
            _check_number_available(model, number, exclude_id=invoice.id)
            invoice.invoice_number = number

        for key, value in data.items():
            setattr(invoice, key, value)
        invoice.updated_by_user_id = user_id

        recompute_invoice(invoice)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def delete_invoice(variant: InvoiceVariant, invoice_id: int) -> dict:
    """
    Delete an invoice together with its payments (and, for types that post
    to the daily ledger, the receipts those payments created).

    Returns a small summary for audit logging.
    """
    pay_model = payment_model(variant)

    def _op() -> dict:
        invoice = lock_invoice(variant, invoice_id)
        summary = {
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "payments_deleted": 0,
            "ledger_entries_deleted": 0,
        }

        if variant.posts_to_daily_ledger:
            summary["ledger_entries_deleted"] = remove_invoice_entries(invoice.id)

        summary["payments_deleted"] = (
            db.session.query(pay_model)
            .filter(pay_model.invoice_id == invoice.id)
            .delete(synchronize_session=False)
        )

        db.session.delete(invoice)
        db.session.commit()
        return summary

    return run_with_retry(_op)


def refresh_statuses(variant: InvoiceVariant, *, now=None) -> int:
    """
    Re-derive every invoice of a type. Returns how many changed status.

    Status depends on the clock (overdue), so invoices drift until they are
    written again; `flask invoices refresh-status` runs this periodically.
    """
    now = now or utcnow()
    model = invoice_model(variant)

    def _op() -> int:
        changed = 0
        for invoice in db.session.query(model).order_by(model.id.asc()).all():
            before = invoice.status
            recompute_invoice(invoice, now=now)
            if invoice.status != before:
                changed += 1
        db.session.commit()
        return changed

    return run_with_retry(_op)


# =============================================================================
# LISTING
# =============================================================================

SORTABLE_FIELDS = {
    "invoice_date", "due_date", "gross_amount", "outstanding_amount",
    "invoice_number", "created_at", "status",
}


@dataclass
class InvoiceFilters:
    """Typed listing filters, shared by the list, CSV and PDF endpoints."""
    statuses: list[str] = field(default_factory=list)
    search: str | None = None
    party: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    due_start_date: date | None = None
    due_end_date: date | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    min_outstanding: Decimal | None = None
    max_outstanding: Decimal | None = None
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @classmethod
    def from_args(cls, args) -> "InvoiceFilters":
        def _date(name: str) -> date | None:
            try:
                return parse_iso_date(args.get(name))
            except ValueError:
                raise ValidationError(f"{name} must be an ISO-8601 date", name)

        def _number(name: str) -> Decimal | None:
            raw = args.get(name)
            if raw in (None, ""):
                return None
            return coerce_decimal(raw, name)

        raw_statuses = args.get("statuses") or args.get("status") or ""
        statuses = [s.strip() for s in raw_statuses.split(",") if s.strip()]
        for status in statuses:
            if status not in VALID_STATUSES:
                raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_STATUSES}", "status")

        sort_by = args.get("sort_by") or "created_at"
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"Cannot sort by {sort_by}", "sort_by")
        sort_order = (args.get("sort_order") or "desc").lower()
        if sort_order not in ("asc", "desc"):
            raise ValidationError("sort_order must be asc or desc", "sort_order")

        return cls(
            statuses=statuses,
            search=(args.get("search") or "").strip() or None,
            party=(args.get("customer") or args.get("agent") or "").strip() or None,
            start_date=_date("start_date"),
            end_date=_date("end_date"),
            due_start_date=_date("due_start_date"),
            due_end_date=_date("due_end_date"),
            min_amount=_number("min_amount"),
            max_amount=_number("max_amount"),
            min_outstanding=_number("min_outstanding"),
            max_outstanding=_number("max_outstanding"),
            sort_by=sort_by,
            sort_order=sort_order,
        )


def _search_columns(variant: InvoiceVariant, model) -> list:
    if variant.has_line_items:
        return [model.customer, model.supplier, model.product, model.invoice_number, model.container_no, model.marka]
    return [model.agent, model.invoice_number]


def build_invoice_query(variant: InvoiceVariant, filters: InvoiceFilters | None = None):
    model = invoice_model(variant)
    filters = filters or InvoiceFilters()
    query = db.session.query(model)

    if filters.statuses:
        query = query.filter(model.status.in_(filters.statuses))

    if filters.search:
        pattern = f"%{filters.search}%"
        query = query.filter(db.or_(*[col.ilike(pattern) for col in _search_columns(variant, model)]))

    if filters.party:
        party_col = model.customer if variant.has_line_items else model.agent
        query = query.filter(party_col.ilike(f"%{filters.party}%"))

    if filters.start_date:
        query = query.filter(model.invoice_date >= day_bounds(filters.start_date)[0])
    if filters.end_date:
        query = query.filter(model.invoice_date <= day_bounds(filters.end_date)[1])
    if filters.due_start_date:
        query = query.filter(model.due_date >= day_bounds(filters.due_start_date)[0])
    if filters.due_end_date:
        query = query.filter(model.due_date <= day_bounds(filters.due_end_date)[1])

    if filters.min_amount is not None:
        query = query.filter(model.gross_amount >= filters.min_amount)
    if filters.max_amount is not None:
        query = query.filter(model.gross_amount <= filters.max_amount)
    if filters.min_outstanding is not None:
        query = query.filter(model.outstanding_amount >= filters.min_outstanding)
    if filters.max_outstanding is not None:
        query = query.filter(model.outstanding_amount <= filters.max_outstanding)

    column = getattr(model, filters.sort_by)
    if filters.sort_order == "asc":
        query = query.order_by(column.asc(), model.id.asc())
    else:
        query = query.order_by(column.desc(), model.id.desc())
    return query


def list_invoices(
    variant: InvoiceVariant,
    filters: InvoiceFilters | None = None,
    *,
    page: int = 1,
    limit: int = 10,
) -> tuple[list, int]:
    query = build_invoice_query(variant, filters)
    total = query.count()
    invoices = query.offset((page - 1) * limit).limit(limit).all()
    return invoices, total
