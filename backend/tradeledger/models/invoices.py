from __future__ import annotations

from ..extensions import db
from ..invoice_rules import VARIANTS
from ..time_utils import to_utc_z


MONEY = db.Numeric(18, 4)
RATE = db.Numeric(18, 6)


class InvoiceMixin:
    """
    Columns shared by every invoice table.

    Derived columns (gross, received, outstanding, status, mirror amounts) are
    written only by invoice_service via invoice_rules.compute_invoice_aggregates.
    """
    variant_key = ""

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "INV-000123", "FR-0042")
    invoice_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    invoice_date = db.Column(db.DateTime, nullable=False, index=True)
    due_date = db.Column(db.DateTime, nullable=False, index=True)

    # Derived
    gross_amount = db.Column(MONEY, nullable=False, default=0)
    received_amount = db.Column(MONEY, nullable=False, default=0)
    outstanding_amount = db.Column(MONEY, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)
    last_payment_date = db.Column(db.DateTime, nullable=True, index=True)

    # User attribution
    created_by_user_id = db.Column(db.Integer, nullable=False)
    updated_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    @property
    def variant(self):
        return VARIANTS[self.variant_key]

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_type": self.variant_key,
            "invoice_number": self.invoice_number,
            "currency": self.variant.currency,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "gross_amount": self.gross_amount,
            "received_amount": self.received_amount,
            "outstanding_amount": self.outstanding_amount,
            "status": self.status,
            "last_payment_date": to_utc_z(self.last_payment_date),
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class SalesInvoice(InvoiceMixin, db.Model):
    """
    Sales invoice: quantity x rate, VAT percentage, flat discount (AED).

    Per-payment discounts are tracked separately in discount_allowed and
    count toward settlement alongside received_amount.
    """
    __tablename__ = "sales_invoices"
    __table_args__ = (
        db.Index("ix_sales_invoices_customer", "customer"),
        {"sqlite_autoincrement": True},
    )
    variant_key = "sales"

    customer = db.Column(db.String(100), nullable=False)
    container_no = db.Column(db.String(50), nullable=False)
    supplier = db.Column(db.String(100), nullable=False)
    product = db.Column(db.String(100), nullable=False)
    marka = db.Column(db.String(50), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    return_quantity = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    rate = db.Column(MONEY, nullable=False)
    vat_percentage = db.Column(MONEY, nullable=False, default=0)
    discount = db.Column(MONEY, nullable=False, default=0)

    # Derived
    subtotal = db.Column(MONEY, nullable=False, default=0)
    vat_amount = db.Column(MONEY, nullable=False, default=0)
    discount_allowed = db.Column(MONEY, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        data = self._base_dict()
        data.update({
            "customer": self.customer,
            "container_no": self.container_no,
            "supplier": self.supplier,
            "product": self.product,
            "marka": self.marka,
            "description": self.description,
            "return_quantity": self.return_quantity,
            "quantity": self.quantity,
            "rate": self.rate,
            "vat_percentage": self.vat_percentage,
            "vat_amount": self.vat_amount,
            "discount": self.discount,
            "subtotal": self.subtotal,
            "discount_allowed": self.discount_allowed,
        })
        return data


class FlatInvoiceMixin(InvoiceMixin):
    """
    Flat-amount invoice billed by an agent in one currency and mirrored
    into the other through conversion_rate (PKR per 1 AED).
    """
    agent = db.Column(db.String(100), nullable=False, index=True)
    amount = db.Column(MONEY, nullable=False)
    conversion_rate = db.Column(RATE, nullable=False)

    # Derived, in the mirror currency
    converted_amount = db.Column(MONEY, nullable=False, default=0)
    converted_received_amount = db.Column(MONEY, nullable=False, default=0)
    converted_outstanding_amount = db.Column(MONEY, nullable=False, default=0)

    def to_dict(self) -> dict:
        variant = self.variant
        base = variant.currency.lower()
        mirror = variant.mirror_currency.lower()

        data = self._base_dict()
        data.update({
            "agent": self.agent,
            "amount": self.amount,
            "conversion_rate": self.conversion_rate,
            "mirror_currency": variant.mirror_currency,
            f"amount_{base}": self.gross_amount,
            f"paid_amount_{base}": self.received_amount,
            f"outstanding_amount_{base}": self.outstanding_amount,
            f"amount_{mirror}": self.converted_amount,
            f"paid_amount_{mirror}": self.converted_received_amount,
            f"outstanding_amount_{mirror}": self.converted_outstanding_amount,
        })
        return data


class FreightInvoice(FlatInvoiceMixin, db.Model):
    __tablename__ = "freight_invoices"
    __table_args__ = {"sqlite_autoincrement": True}
    variant_key = "freight"

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}


class TransportInvoice(FlatInvoiceMixin, db.Model):
    __tablename__ = "transport_invoices"
    __table_args__ = {"sqlite_autoincrement": True}
    variant_key = "transport"

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}


class DubaiTransportInvoice(FlatInvoiceMixin, db.Model):
    __tablename__ = "dubai_transport_invoices"
    __table_args__ = {"sqlite_autoincrement": True}
    variant_key = "dubai_transport"

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}


class DubaiClearanceInvoice(FlatInvoiceMixin, db.Model):
    __tablename__ = "dubai_clearance_invoices"
    __table_args__ = {"sqlite_autoincrement": True}
    variant_key = "dubai_clearance"

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}
