from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .invoices import MONEY


class PaymentMixin:
    """
    Payment record against one invoice.

    IMMUTABLE: Payments are never edited. A mistaken payment is deleted by an
    admin and the owning invoice is re-derived from the remaining payments.

    PAYMENT TYPES (caller-asserted label, does not drive invoice status):
    - partial
    - full

    PAYMENT METHODS: cash, bank_transfer, check, card, other
    """
    id = db.Column(db.Integer, primary_key=True)

    # Amount in the invoice currency
    amount = db.Column(MONEY, nullable=False)

    # Settlement discount granted with this payment (sales only, else 0)
    discount = db.Column(MONEY, nullable=False, default=0)

    payment_type = db.Column(db.String(16), nullable=False, index=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    reference = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.String(500), nullable=True)

    # Business date of the payment (defaults to submission time)
    payment_date = db.Column(db.DateTime, nullable=False, index=True)

    received_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount": self.amount,
            "discount": self.discount,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "received_by_user_id": self.received_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SalesPayment(PaymentMixin, db.Model):
    __tablename__ = "sales_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=False, index=True)


class FreightPayment(PaymentMixin, db.Model):
    __tablename__ = "freight_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    invoice_id = db.Column(db.Integer, db.ForeignKey("freight_invoices.id"), nullable=False, index=True)


class TransportPayment(PaymentMixin, db.Model):
    __tablename__ = "transport_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    invoice_id = db.Column(db.Integer, db.ForeignKey("transport_invoices.id"), nullable=False, index=True)


class DubaiTransportPayment(PaymentMixin, db.Model):
    __tablename__ = "dubai_transport_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    invoice_id = db.Column(db.Integer, db.ForeignKey("dubai_transport_invoices.id"), nullable=False, index=True)


class DubaiClearancePayment(PaymentMixin, db.Model):
    __tablename__ = "dubai_clearance_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    invoice_id = db.Column(db.Integer, db.ForeignKey("dubai_clearance_invoices.id"), nullable=False, index=True)
