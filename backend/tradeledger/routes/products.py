# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_staff
from ..services import product_service
from ..validation import parse_bool_arg
from .responses import KNOWN_ERRORS, error_response, internal_error, json_body, money_json, paged, paging_args


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("/")
@require_auth
@require_staff
def create_product_route():
    """
    Create a product.

    Request body: {"name" (required), "category" (required), "description", "sku", "unit"}
    unit defaults to "piece".
    """
    try:
        product = product_service.create_product(json_body(), created_by_user_id=g.current_user.id)
        return money_json({"product": product.to_dict()}, 201)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.get("/")
@require_auth
@require_staff
def list_products_route():
    try:
        page, limit = paging_args(default_limit=50)
        products, total = product_service.list_products(
            search=request.args.get("search"),
            category=request.args.get("category"),
            is_active=parse_bool_arg(request.args.get("is_active")),
            page=page,
            limit=limit,
        )
        return money_json(paged([p.to_dict() for p in products], total, page, limit))
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list products")


@products_bp.get("/categories")
@require_auth
@require_staff
def list_categories_route():
    try:
        return money_json({"categories": product_service.list_categories()})
    except Exception:
        return internal_error("Failed to list product categories")


@products_bp.get("/statistics")
@require_auth
@require_staff
def product_statistics_route():
    try:
        return money_json({"statistics": product_service.product_statistics()})
    except Exception:
        return internal_error("Failed to get product statistics")


@products_bp.get("/<int:product_id>")
@require_auth
@require_staff
def get_product_route(product_id: int):
    try:
        return money_json({"product": product_service.get_product(product_id).to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_staff
def update_product_route(product_id: int):
    try:
        product = product_service.update_product(product_id, json_body(), updated_by_user_id=g.current_user.id)
        return money_json({"product": product.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_staff
def deactivate_product_route(product_id: int):
    """Products are deactivated, never removed."""
    try:
        product = product_service.set_product_active(product_id, False, updated_by_user_id=g.current_user.id)
        current_app.logger.info("Product deactivated: id=%s by user_id=%s", product.id, g.current_user.id)
        return money_json({"product": product.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to deactivate product")


@products_bp.post("/<int:product_id>/activate")
@require_auth
@require_staff
def activate_product_route(product_id: int):
    try:
        product = product_service.set_product_active(product_id, True, updated_by_user_id=g.current_user.id)
        return money_json({"product": product.to_dict()})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to activate product")
