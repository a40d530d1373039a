# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Service

Customers are referenced by name on sales invoices. The registry matters to
invoicing in one place: a sales invoice that charges VAT must name a customer
whose TRN is on file (see invoice_service.create_invoice).
"""

from sqlalchemy import func

from ..extensions import db
from ..models import Customer
from ..validation import CUSTOMER_POLICY, ValidationError, validate_payload


class CustomerNotFoundError(Exception):
    """Raised when a customer is not found."""
    pass


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Customer.id).filter(func.lower(Customer.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ValidationError(f"Customer '{name}' already exists", "name")


def create_customer(payload: dict, *, created_by_user_id: int | None = None) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    _ensure_unique_name(patch["name"])

    if patch.get("trn") == "":
        patch["trn"] = None

    customer = Customer(**patch)
    customer.created_by_user_id = created_by_user_id
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)

    if "name" in patch:
        _ensure_unique_name(patch["name"], exclude_id=customer.id)
    if patch.get("trn") == "":
        patch["trn"] = None

    for key, value in patch.items():
        setattr(customer, key, value)

    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise CustomerNotFoundError(f"Customer {customer_id} not found")
    return customer


def find_customer_by_name(name: str | None) -> Customer | None:
    """Case-insensitive exact match on the customer name."""
    if not name or not name.strip():
        return None
    return (
        db.session.query(Customer)
        .filter(func.lower(Customer.name) == name.strip().lower())
        .first()
    )


def list_customers(
    *,
    search: str | None = None,
    is_active: bool | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[Customer], int]:
    query = db.session.query(Customer)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.name.ilike(pattern),
            Customer.trn.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))

    if is_active is not None:
        query = query.filter(Customer.is_active.is_(is_active))

    total = query.count()
    customers = (
        query.order_by(Customer.name.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return customers, total
