from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .invoice_rules import PAYMENT_METHODS, PAYMENT_TYPES, InvoiceVariant
from .time_utils import parse_iso_datetime


# Upper bound for any money input (keeps Numeric(18, 4) from overflowing)
MAX_MONEY = Decimal("99999999999999")

# Scale of the money columns; see models.invoices.MONEY
MONEY_SCALE = 4


class ValidationError(ValueError):
    """400-level input problem, optionally naming the offending field."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which JSON keys a client may send for a model, and which must be present
    on POST and PUT (PUT replaces the whole invoice)."""
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


INVOICE_COMMON_FIELDS = {"invoice_number", "invoice_date", "due_date"}

SALES_POLICY = ModelValidationPolicy(
    writable_fields=INVOICE_COMMON_FIELDS | {
        "customer", "container_no", "supplier", "product", "marka", "description",
        "return_quantity", "quantity", "rate", "vat_percentage", "discount",
    },
    required_on_create={
        "invoice_date", "due_date", "customer", "container_no", "supplier",
        "product", "marka", "description", "quantity", "rate",
    },
)

FLAT_INVOICE_POLICY = ModelValidationPolicy(
    writable_fields=INVOICE_COMMON_FIELDS | {"agent", "amount", "conversion_rate"},
    required_on_create={"invoice_date", "due_date", "agent", "amount", "conversion_rate"},
)

PAYMENT_POLICY = ModelValidationPolicy(
    writable_fields={"amount", "discount", "payment_type", "payment_method", "reference", "notes", "payment_date"},
    required_on_create={"amount", "payment_type"},
)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "trn", "email", "phone", "address", "is_active"},
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"ename", "uname", "email", "phone", "marka", "is_active"},
    required_on_create={"ename"},
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "sku", "unit", "is_active"},
    required_on_create={"name", "category"},
)

PURCHASE_POLICY = ModelValidationPolicy(
    writable_fields={
        "container_no", "product", "quantity", "rate", "transport", "freight",
        "e_form", "miscellaneous", "transfer_rate", "notes",
    },
    required_on_create={"container_no", "product", "quantity", "rate", "transfer_rate"},
)


def invoice_policy(variant: InvoiceVariant) -> ModelValidationPolicy:
    return SALES_POLICY if variant.has_line_items else FLAT_INVOICE_POLICY


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_decimal(value: Any, field: str, scale: int | None = MONEY_SCALE) -> Decimal:
    """
    Accept int / float / numeric string / Decimal; reject bool, NaN and inf.
    Floats go through repr so 0.1 stays 0.1.

    The result is rounded half-up to `scale` places (the column scale), so
    business checks run on the value that will be stored. scale=None keeps
    every digit.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(repr(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number", field)
        try:
            number = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", field)
    else:
        raise ValidationError(f"{field} must be a number", field)

    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number", field)
    if abs(number) > MAX_MONEY:
        raise ValidationError(f"{field} is too large", field)
    if scale is not None:
        number = number.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", col.key)
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)", col.key)
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", col.key)
        if isinstance(value, float):
            # 3.0 from a JS client is still an integer
            if value.is_integer():
                return int(value)
            raise ValidationError(f"{col.key} must be an integer, not a decimal", col.key)
        raise ValidationError(f"{col.key} must be an integer", col.key)

    if isinstance(coltype, Numeric):
        return coerce_decimal(value, col.key, coltype.scale)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean", col.key)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a request body into typed column values.

    Keys outside the policy are rejected rather than dropped. Each value is
    coerced by its column type (Numeric to Decimal, DateTime via ISO-8601,
    strings trimmed and length-checked). With partial=False the policy's
    required fields must all be non-empty.

    Raises ValidationError naming the first offending field.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable and k not in required:
                # omitted optional field; column default applies
                continue
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", k)

        patch[k] = val

    return patch


def enforce_rules_sales_invoice(patch: dict) -> None:
    quantity = patch.get("quantity")
    if quantity is not None and quantity < 1:
        raise ValidationError("quantity must be at least 1", "quantity")

    rate = patch.get("rate")
    if rate is not None and rate < 0:
        raise ValidationError("rate cannot be negative", "rate")

    vat = patch.get("vat_percentage")
    if vat is not None and not (0 <= vat <= 100):
        raise ValidationError("vat_percentage must be between 0 and 100", "vat_percentage")

    discount = patch.get("discount")
    if discount is not None and discount < 0:
        raise ValidationError("discount cannot be negative", "discount")

    return_quantity = patch.get("return_quantity")
    if return_quantity is not None and return_quantity < 0:
        raise ValidationError("return_quantity cannot be negative", "return_quantity")


def enforce_rules_flat_invoice(patch: dict) -> None:
    amount = patch.get("amount")
    if amount is not None and amount <= 0:
        raise ValidationError("amount must be greater than 0", "amount")

    rate = patch.get("conversion_rate")
    if rate is not None and rate <= 0:
        raise ValidationError("conversion_rate must be greater than 0", "conversion_rate")


PURCHASE_CHARGES = ("transport", "freight", "e_form", "miscellaneous")


def enforce_rules_purchase(patch: dict) -> None:
    quantity = patch.get("quantity")
    if quantity is not None and quantity < 1:
        raise ValidationError("quantity must be at least 1", "quantity")

    for key in ("rate",) + PURCHASE_CHARGES:
        value = patch.get(key)
        if value is not None and value < 0:
            raise ValidationError(f"{key} cannot be negative", key)

    rate = patch.get("transfer_rate")
    if rate is not None and rate <= 0:
        raise ValidationError("transfer_rate must be greater than 0", "transfer_rate")


def enforce_rules_invoice(variant: InvoiceVariant, patch: dict) -> None:
    if variant.has_line_items:
        enforce_rules_sales_invoice(patch)
    else:
        enforce_rules_flat_invoice(patch)

    invoice_date = patch.get("invoice_date")
    due_date = patch.get("due_date")
    if invoice_date and due_date and due_date < invoice_date:
        raise ValidationError("due_date cannot be before invoice_date", "due_date")


def enforce_rules_payment(variant: InvoiceVariant, patch: dict) -> None:
    """
    Shape checks only. Amount-versus-outstanding checks belong to the
    payment service, which evaluates them against the re-derived invoice.
    """
    amount = patch.get("amount")
    if amount is not None and amount < 0:
        raise ValidationError("amount cannot be negative", "amount")

    discount = patch.get("discount")
    if discount is not None:
        if discount < 0:
            raise ValidationError("discount cannot be negative", "discount")
        if discount != 0 and not variant.has_payment_discount:
            raise ValidationError(f"{variant.label} payments do not accept a discount", "discount")

    payment_type = patch.get("payment_type")
    if payment_type is not None and payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of {PAYMENT_TYPES}", "payment_type")

    payment_method = patch.get("payment_method")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {PAYMENT_METHODS}", "payment_method")


def parse_bool_arg(value: str | None) -> bool | None:
    """Query-string booleans: "true"/"1"/"yes" and "false"/"0"/"no"."""
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"Invalid boolean: {value}")
