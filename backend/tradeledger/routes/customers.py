# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_staff
from ..services import customer_service
from ..validation import parse_bool_arg
from .responses import KNOWN_ERRORS, error_response, internal_error, json_body, money_json, paged, paging_args


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("/")
@require_auth
@require_staff
def create_customer_route():
    """
    Create a customer.

    Request body: {"name" (required), "trn", "email", "phone", "address"}
    A TRN is required before VAT sales can be invoiced to the customer.
    """
    try:
        customer = customer_service.create_customer(json_body(), created_by_user_id=g.current_user.id)
        return money_json({"customer": customer.to_dict()}, 201)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create customer")


@customers_bp.get("/")
@require_auth
@require_staff
def list_customers_route():
    try:
        page, limit = paging_args(default_limit=50)
        customers, total = customer_service.list_customers(
            search=request.args.get("search"),
            is_active=parse_bool_arg(request.args.get("is_active")),
            page=page,
            limit=limit,
        )
        return money_json(paged([c.to_dict() for c in customers], total, page, limit))
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list customers")


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_staff
def get_customer_route(customer_id: int):
    try:
        return money_json({"customer": customer_service.get_customer(customer_id).to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get customer")


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_staff
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(customer_id, json_body())
        return money_json({"customer": customer.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update customer")
