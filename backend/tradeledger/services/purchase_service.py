# Overview: Service-layer operations for container purchases; PKR landed cost and its AED equivalent.

"""
Purchase Service

A purchase is the landed cost of one container, entered in PKR:

    subtotal_pkr = quantity x rate
    total_pkr    = subtotal_pkr + transport + freight + e_form + miscellaneous
    total_aed    = total_pkr / transfer_rate      (4 places, see currency)

The three totals are recomputed from the stored inputs on every create and
update. Container numbers are unique across purchases.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import func

from ..currency import ZERO, pkr_to_aed, quantize_money, to_decimal
from ..extensions import db
from ..models import Purchase
from ..time_utils import day_bounds, parse_iso_date
from ..validation import (
    PURCHASE_CHARGES,
    PURCHASE_POLICY,
    ValidationError,
    enforce_rules_purchase,
    validate_payload,
)


class PurchaseNotFoundError(Exception):
    """Raised when a purchase is not found."""
    pass


@dataclass(frozen=True)
class PurchaseTotals:
    subtotal_pkr: Decimal
    total_pkr: Decimal
    total_aed: Decimal


def compute_purchase_totals(quantity, rate, charges, transfer_rate) -> PurchaseTotals:
    """Pure: PKR subtotal and landed total, and the AED equivalent at transfer_rate."""
    subtotal = quantize_money(to_decimal(quantity) * to_decimal(rate))
    total_pkr = subtotal + sum((quantize_money(c) for c in charges), ZERO)
    return PurchaseTotals(
        subtotal_pkr=subtotal,
        total_pkr=total_pkr,
        total_aed=pkr_to_aed(total_pkr, transfer_rate),
    )


def _apply_totals(purchase: Purchase) -> PurchaseTotals:
    totals = compute_purchase_totals(
        purchase.quantity,
        purchase.rate,
        [getattr(purchase, key) for key in PURCHASE_CHARGES],
        purchase.transfer_rate,
    )
    purchase.subtotal_pkr = totals.subtotal_pkr
    purchase.total_pkr = totals.total_pkr
    purchase.total_aed = totals.total_aed
    return totals


def _ensure_unique_container(container_no: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Purchase.id).filter(func.lower(Purchase.container_no) == container_no.lower())
    if exclude_id is not None:
        query = query.filter(Purchase.id != exclude_id)
    if query.first():
        raise ValidationError(f"Container number {container_no} already exists", "container_no")


def create_purchase(payload: dict, *, user_id: int) -> Purchase:
    patch = validate_payload(model=Purchase, payload=payload, policy=PURCHASE_POLICY, partial=False)
    enforce_rules_purchase(patch)
    _ensure_unique_container(patch["container_no"])

    purchase = Purchase(**patch)
    for key in PURCHASE_CHARGES:
        if getattr(purchase, key) is None:
            setattr(purchase, key, ZERO)
    purchase.created_by_user_id = user_id
    _apply_totals(purchase)

    db.session.add(purchase)
    db.session.commit()
    return purchase


def update_purchase(purchase_id: int, payload: dict, *, user_id: int) -> Purchase:
    """Change any writable fields; the totals are re-derived from the result."""
    purchase = get_purchase(purchase_id)
    patch = validate_payload(model=Purchase, payload=payload, policy=PURCHASE_POLICY, partial=True)
    enforce_rules_purchase(patch)

    if "container_no" in patch:
        _ensure_unique_container(patch["container_no"], exclude_id=purchase.id)

    for key, value in patch.items():
        setattr(purchase, key, value)
    purchase.updated_by_user_id = user_id
    _apply_totals(purchase)

    db.session.commit()
    return purchase


def delete_purchase(purchase_id: int) -> dict:
    purchase = get_purchase(purchase_id)
    summary = {"id": purchase.id, "container_no": purchase.container_no}
    db.session.delete(purchase)
    db.session.commit()
    return summary


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if not purchase:
        raise PurchaseNotFoundError(f"Purchase {purchase_id} not found")
    return purchase


@dataclass
class PurchaseFilters:
    search: str | None = None
    product: str | None = None
    start_date: date | None = None
    end_date: date | None = None

    @classmethod
    def from_args(cls, args) -> "PurchaseFilters":
        def _date(name: str) -> date | None:
            try:
                return parse_iso_date(args.get(name))
            except ValueError:
                raise ValidationError(f"{name} must be an ISO-8601 date", name)

        return cls(
            search=(args.get("search") or args.get("container_no") or "").strip() or None,
            product=(args.get("product") or "").strip() or None,
            start_date=_date("start_date"),
            end_date=_date("end_date"),
        )


def build_purchase_query(filters: PurchaseFilters | None = None):
    filters = filters or PurchaseFilters()
    query = db.session.query(Purchase)

    if filters.search:
        query = query.filter(Purchase.container_no.ilike(f"%{filters.search}%"))
    if filters.product:
        query = query.filter(Purchase.product.ilike(f"%{filters.product}%"))
    if filters.start_date:
        query = query.filter(Purchase.created_at >= day_bounds(filters.start_date)[0])
    if filters.end_date:
        query = query.filter(Purchase.created_at <= day_bounds(filters.end_date)[1])

    return query.order_by(Purchase.created_at.desc(), Purchase.id.desc())


def list_purchases(
    filters: PurchaseFilters | None = None,
    *,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Purchase], int]:
    query = build_purchase_query(filters)
    total = query.count()
    purchases = query.offset((page - 1) * limit).limit(limit).all()
    return purchases, total


def purchase_report(filters: PurchaseFilters | None = None) -> dict:
    """Totals over a filtered purchase set, with per-product counts and a monthly breakdown."""
    purchases = build_purchase_query(filters).all()

    report = {
        "total_purchases": len(purchases),
        "total_pkr": ZERO,
        "total_aed": ZERO,
        "average_aed": ZERO,
        "total_transport": ZERO,
        "total_freight": ZERO,
        "total_e_form": ZERO,
        "total_miscellaneous": ZERO,
        "by_product": {},
        "by_month": {},
    }

    for purchase in purchases:
        total_pkr = to_decimal(purchase.total_pkr)
        total_aed = to_decimal(purchase.total_aed)
        report["total_pkr"] += total_pkr
        report["total_aed"] += total_aed
        for key in PURCHASE_CHARGES:
            report[f"total_{key}"] += to_decimal(getattr(purchase, key))

        report["by_product"][purchase.product] = report["by_product"].get(purchase.product, 0) + 1

        month = purchase.created_at.strftime("%Y-%m") if purchase.created_at else "unknown"
        bucket = report["by_month"].setdefault(month, {"count": 0, "total_pkr": ZERO, "total_aed": ZERO})
        bucket["count"] += 1
        bucket["total_pkr"] += total_pkr
        bucket["total_aed"] += total_aed

    if purchases:
        report["average_aed"] = quantize_money(report["total_aed"] / len(purchases))
    report["by_month"] = dict(sorted(report["by_month"].items()))
    return report
