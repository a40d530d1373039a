from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Supplier(db.Model):
    """
    Supplier master data. A supplier is known by an English name and,
    optionally, an Urdu one; marka is the consignment mark printed on bags.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    ename = db.Column(db.String(100), nullable=False, index=True)
    uname = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    marka = db.Column(db.String(100), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def full_name(self) -> str:
        if self.uname:
            return f"{self.ename} ({self.uname})"
        return self.ename

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ename": self.ename,
            "uname": self.uname,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "marka": self.marka,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """Goods traded by container. category is a free-text grouping (e.g. "Rice")."""
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active", "is_active"),
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(100), nullable=False)
    sku = db.Column(db.String(50), nullable=True, index=True)
    unit = db.Column(db.String(20), nullable=False, default="piece")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "sku": self.sku,
            "unit": self.unit,
            "is_active": self.is_active,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
