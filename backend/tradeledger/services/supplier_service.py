# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

Suppliers are never hard-deleted: DELETE deactivates, and activate brings a
supplier back. English names are unique, compared case-insensitively.
"""

from sqlalchemy import func

from ..extensions import db
from ..models import Supplier
from ..validation import SUPPLIER_POLICY, ValidationError, validate_payload


class SupplierNotFoundError(Exception):
    """Raised when a supplier is not found."""
    pass


def _ensure_unique_name(ename: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Supplier.id).filter(func.lower(Supplier.ename) == ename.lower())
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise ValidationError(f"Supplier '{ename}' already exists", "ename")


def _normalize(patch: dict) -> dict:
    if "email" in patch and patch["email"] is not None:
        patch["email"] = patch["email"].lower() or None
    for key in ("uname", "phone", "marka"):
        if patch.get(key) == "":
            patch[key] = None
    return patch


def create_supplier(payload: dict, *, created_by_user_id: int | None = None) -> Supplier:
    patch = _normalize(validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False))
    _ensure_unique_name(patch["ename"])

    supplier = Supplier(**patch)
    supplier.created_by_user_id = created_by_user_id
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, payload: dict, *, updated_by_user_id: int | None = None) -> Supplier:
    supplier = get_supplier(supplier_id)
    patch = _normalize(validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True))

    if "ename" in patch:
        _ensure_unique_name(patch["ename"], exclude_id=supplier.id)

    for key, value in patch.items():
        setattr(supplier, key, value)
    supplier.updated_by_user_id = updated_by_user_id

    db.session.commit()
    return supplier


def set_supplier_active(supplier_id: int, active: bool, *, updated_by_user_id: int | None = None) -> Supplier:
    supplier = get_supplier(supplier_id)
    supplier.is_active = active
    supplier.updated_by_user_id = updated_by_user_id
    db.session.commit()
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise SupplierNotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def list_suppliers(
    *,
    search: str | None = None,
    is_active: bool | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Supplier], int]:
    query = db.session.query(Supplier)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Supplier.ename.ilike(pattern),
            Supplier.uname.ilike(pattern),
            Supplier.email.ilike(pattern),
            Supplier.phone.ilike(pattern),
            Supplier.marka.ilike(pattern),
        ))

    if is_active is not None:
        query = query.filter(Supplier.is_active.is_(is_active))

    total = query.count()
    suppliers = (
        query.order_by(Supplier.ename.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return suppliers, total


def supplier_statistics() -> dict:
    total = db.session.query(func.count(Supplier.id)).scalar()
    active = db.session.query(func.count(Supplier.id)).filter(Supplier.is_active.is_(True)).scalar()
    return {"total": total, "active": active, "inactive": total - active}
