from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .invoices import MONEY, RATE


class Purchase(db.Model):
    """
    Cost of one imported container.

    Costs are entered in PKR. transfer_rate is PKR per 1 AED, the rate the
    money was sent at. subtotal_pkr, total_pkr and total_aed are derived by
    purchase_service and never written by clients.
    """
    __tablename__ = "purchases"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    container_no = db.Column(db.String(50), nullable=False, unique=True, index=True)
    product = db.Column(db.String(100), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    rate = db.Column(MONEY, nullable=False)

    # Landed-cost charges, PKR
    transport = db.Column(MONEY, nullable=False, default=0)
    freight = db.Column(MONEY, nullable=False, default=0)
    e_form = db.Column(MONEY, nullable=False, default=0)
    miscellaneous = db.Column(MONEY, nullable=False, default=0)

    transfer_rate = db.Column(RATE, nullable=False)

    # Derived
    subtotal_pkr = db.Column(MONEY, nullable=False, default=0)
    total_pkr = db.Column(MONEY, nullable=False, default=0)
    total_aed = db.Column(MONEY, nullable=False, default=0)

    notes = db.Column(db.String(500), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    updated_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "container_no": self.container_no,
            "product": self.product,
            "quantity": self.quantity,
            "rate": self.rate,
            "transport": self.transport,
            "freight": self.freight,
            "e_form": self.e_form,
            "miscellaneous": self.miscellaneous,
            "transfer_rate": self.transfer_rate,
            "subtotal_pkr": self.subtotal_pkr,
            "total_pkr": self.total_pkr,
            "total_aed": self.total_aed,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
