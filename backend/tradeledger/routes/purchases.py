# Overview: Flask API routes for container purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_admin, require_auth, require_password_confirmation, require_staff
from ..services import purchase_service
from ..services.purchase_service import PurchaseFilters
from .responses import KNOWN_ERRORS, error_response, internal_error, json_body, money_json, paged, paging_args


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("/")
@require_auth
@require_staff
def create_purchase_route():
    """
    Record a container purchase.

    Request body: {"container_no", "product", "quantity", "rate", "transfer_rate"
    (all required), "transport", "freight", "e_form", "miscellaneous", "notes"}
    Costs are PKR; transfer_rate is PKR per 1 AED.
    """
    try:
        purchase = purchase_service.create_purchase(json_body(), user_id=g.current_user.id)
        return money_json({"purchase": purchase.to_dict()}, 201)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create purchase")


@purchases_bp.get("/")
@require_auth
@require_staff
def list_purchases_route():
    try:
        page, limit = paging_args(default_limit=10)
        purchases, total = purchase_service.list_purchases(
            PurchaseFilters.from_args(request.args), page=page, limit=limit
        )
        return money_json(paged([p.to_dict() for p in purchases], total, page, limit))
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list purchases")


@purchases_bp.get("/report")
@require_auth
@require_staff
def purchase_report_route():
    """Totals (PKR and AED) for the filtered purchases, by product and by month."""
    try:
        report = purchase_service.purchase_report(PurchaseFilters.from_args(request.args))
        return money_json({"report": report})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to generate purchase report")


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_staff
def get_purchase_route(purchase_id: int):
    try:
        return money_json({"purchase": purchase_service.get_purchase(purchase_id).to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get purchase")


@purchases_bp.put("/<int:purchase_id>")
@require_auth
@require_staff
def update_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.update_purchase(purchase_id, json_body(), user_id=g.current_user.id)
        return money_json({"purchase": purchase.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update purchase")


@purchases_bp.delete("/<int:purchase_id>")
@require_auth
@require_admin
@require_password_confirmation
def delete_purchase_route(purchase_id: int):
    """
    Delete a purchase.

    Requires: admin role, and {"password": "..."} in the body.
    """
    try:
        summary = purchase_service.delete_purchase(purchase_id)
        current_app.logger.info(
            "Purchase deleted: container=%s by user_id=%s", summary["container_no"], g.current_user.id
        )
        return money_json({"deleted": summary})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete purchase")
