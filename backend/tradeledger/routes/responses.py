# Overview: Shared JSON response helpers for API routes (money formatting, error bodies, paging args).

from flask import current_app, jsonify, request

from ..money_format import format_money
from ..services.customer_service import CustomerNotFoundError
from ..services.invoice_service import InvoiceError, InvoiceNotFoundError
from ..services.ledger_service import LedgerError
from ..services.payment_service import PaymentError, PaymentNotFoundError
from ..services.product_service import ProductNotFoundError
from ..services.purchase_service import PurchaseNotFoundError
from ..services.supplier_service import SupplierNotFoundError
from ..validation import ValidationError


NOT_FOUND_ERRORS = (
    InvoiceNotFoundError,
    PaymentNotFoundError,
    CustomerNotFoundError,
    SupplierNotFoundError,
    ProductNotFoundError,
    PurchaseNotFoundError,
)
RULE_ERRORS = (InvoiceError, PaymentError, LedgerError)
KNOWN_ERRORS = (ValidationError,) + NOT_FOUND_ERRORS + RULE_ERRORS


def money_json(payload, status: int = 200):
    """jsonify with the ceiling-to-cents money policy applied first."""
    return jsonify(format_money(payload)), status


def error_response(exc: Exception):
    """Map a known service exception to its JSON error body and status."""
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "field": exc.field}), 400
    if isinstance(exc, NOT_FOUND_ERRORS):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, LedgerError) and exc.kind == "not_found":
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, RULE_ERRORS):
        return jsonify(format_money({
            "error": str(exc),
            "kind": exc.kind,
            "details": exc.details,
        })), 400
    raise exc


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def paging_args(default_limit: int = 10) -> tuple[int, int]:
    """page / limit query args, with limit capped at MAX_PAGE_SIZE."""
    try:
        page = int(request.args.get("page", 1))
        limit = int(request.args.get("limit", default_limit))
    except ValueError:
        raise ValidationError("page and limit must be integers")
    if page < 1:
        raise ValidationError("page must be >= 1", "page")
    if limit < 1:
        raise ValidationError("limit must be >= 1", "limit")
    return page, min(limit, current_app.config.get("MAX_PAGE_SIZE", 200))


def paged(items: list, total: int, page: int, limit: int) -> dict:
    return {
        "items": items,
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit if limit else 0,
    }
