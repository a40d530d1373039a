# Overview: Service-layer operations for products; encapsulates business logic and database work.

"""
Product Service

Product names are unique, compared case-insensitively. Like suppliers,
products are deactivated rather than deleted so purchases and invoices that
name them keep reading sensibly.
"""

from sqlalchemy import func

from ..extensions import db
from ..models import Product
from ..validation import PRODUCT_POLICY, ValidationError, validate_payload


class ProductNotFoundError(Exception):
    """Raised when a product is not found."""
    pass


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ValidationError(f"Product '{name}' already exists", "name")


def create_product(payload: dict, *, created_by_user_id: int | None = None) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    _ensure_unique_name(patch["name"])

    product = Product(**patch)
    product.created_by_user_id = created_by_user_id
    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, payload: dict, *, updated_by_user_id: int | None = None) -> Product:
    product = get_product(product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)

    if "name" in patch:
        _ensure_unique_name(patch["name"], exclude_id=product.id)

    for key, value in patch.items():
        setattr(product, key, value)
    product.updated_by_user_id = updated_by_user_id

    db.session.commit()
    return product


def set_product_active(product_id: int, active: bool, *, updated_by_user_id: int | None = None) -> Product:
    product = get_product(product_id)
    product.is_active = active
    product.updated_by_user_id = updated_by_user_id
    db.session.commit()
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Product], int]:
    query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.sku.ilike(pattern),
        ))

    if category:
        query = query.filter(func.lower(Product.category) == category.strip().lower())

    if is_active is not None:
        query = query.filter(Product.is_active.is_(is_active))

    total = query.count()
    products = (
        query.order_by(Product.name.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return products, total


def list_categories() -> list[dict]:
    """Distinct categories with their product counts, by name."""
    rows = (
        db.session.query(Product.category, func.count(Product.id))
        .group_by(Product.category)
        .order_by(Product.category.asc())
        .all()
    )
    return [{"category": category, "products": count} for category, count in rows]


def product_statistics() -> dict:
    total = db.session.query(func.count(Product.id)).scalar()
    active = db.session.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar()
    return {"total": total, "active": active, "inactive": total - active}
