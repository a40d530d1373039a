# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_staff
from ..services import supplier_service
from ..validation import parse_bool_arg
from .responses import KNOWN_ERRORS, error_response, internal_error, json_body, money_json, paged, paging_args


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.post("/")
@require_auth
@require_staff
def create_supplier_route():
    """
    Create a supplier.

    Request body: {"ename" (required), "uname", "email", "phone", "marka"}
    """
    try:
        supplier = supplier_service.create_supplier(json_body(), created_by_user_id=g.current_user.id)
        return money_json({"supplier": supplier.to_dict()}, 201)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create supplier")


@suppliers_bp.get("/")
@require_auth
@require_staff
def list_suppliers_route():
    try:
        page, limit = paging_args(default_limit=50)
        suppliers, total = supplier_service.list_suppliers(
            search=request.args.get("search"),
            is_active=parse_bool_arg(request.args.get("is_active")),
            page=page,
            limit=limit,
        )
        return money_json(paged([s.to_dict() for s in suppliers], total, page, limit))
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list suppliers")


@suppliers_bp.get("/statistics")
@require_auth
@require_staff
def supplier_statistics_route():
    try:
        return money_json({"statistics": supplier_service.supplier_statistics()})
    except Exception:
        return internal_error("Failed to get supplier statistics")


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_staff
def get_supplier_route(supplier_id: int):
    try:
        return money_json({"supplier": supplier_service.get_supplier(supplier_id).to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get supplier")


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_staff
def update_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.update_supplier(supplier_id, json_body(), updated_by_user_id=g.current_user.id)
        return money_json({"supplier": supplier.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update supplier")


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_staff
def deactivate_supplier_route(supplier_id: int):
    """Suppliers are deactivated, never removed."""
    try:
        supplier = supplier_service.set_supplier_active(supplier_id, False, updated_by_user_id=g.current_user.id)
        current_app.logger.info("Supplier deactivated: id=%s by user_id=%s", supplier.id, g.current_user.id)
        return money_json({"supplier": supplier.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to deactivate supplier")


@suppliers_bp.post("/<int:supplier_id>/activate")
@require_auth
@require_staff
def activate_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.set_supplier_active(supplier_id, True, updated_by_user_id=g.current_user.id)
        return money_json({"supplier": supplier.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to activate supplier")
