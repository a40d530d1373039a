# Overview: Flask API routes for invoices and their payments; one blueprint per invoice type.

"""
Invoice API Routes

One blueprint is built per InvoiceVariant by make_invoice_blueprint(), so
/api/sales, /api/freight, /api/transport, /api/dubai-transport and
/api/dubai-clearance share the same handlers and the same contract.

ACCESS:
- admin, employee: create, read, update, record payments, reports
- admin only, with password re-entry: delete invoice, delete payment

Every JSON response body passes through format_money() (money values
ceiled to two decimals); the services return exact Decimals.
"""

from flask import Blueprint, Response, current_app, g, request

from ..decorators import require_admin, require_auth, require_password_confirmation, require_staff
from ..invoice_rules import InvoiceVariant
from ..services import invoice_service, payment_service, reporting_service
from ..services.invoice_service import InvoiceFilters
from ..time_utils import utcnow
from ..validation import parse_bool_arg
from .responses import KNOWN_ERRORS, error_response, internal_error, json_body, money_json, paged, paging_args


def _invoice_with_payments(variant: InvoiceVariant, invoice) -> dict:
    payments = payment_service.get_payments_for_invoice(variant, invoice.id)
    data = invoice.to_dict()
    data["payments"] = [p.to_dict() for p in payments]
    return data


def make_invoice_blueprint(variant: InvoiceVariant) -> Blueprint:
    bp = Blueprint(f"{variant.key}_invoices", __name__, url_prefix=f"/api/{variant.url_slug}")

    # =========================================================================
    # INVOICES
    # =========================================================================

    @bp.post("/")
    @require_auth
    @require_staff
    def create_invoice_route():
        """
        Create an invoice.

        invoice_number is optional; when omitted the next number for the
        type is generated. Derived fields (amounts, status) are ignored if
        sent and computed server-side.

        Returns:
            201: Created invoice
            400: Validation error or business rule (trn_required, duplicate_invoice_number)
        """
        try:
            invoice = invoice_service.create_invoice(variant, json_body(), user_id=g.current_user.id)
            return money_json({"invoice": invoice.to_dict()}, 201)
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to create {variant.key} invoice")

    @bp.get("/")
    @require_auth
    @require_staff
    def list_invoices_route():
        """
        List invoices.

        Query params: page, limit, status|statuses (comma list), search,
        customer|agent, start_date, end_date, due_start_date, due_end_date,
        min_amount, max_amount, min_outstanding, max_outstanding, sort_by,
        sort_order.
        """
        try:
            page, limit = paging_args()
            filters = InvoiceFilters.from_args(request.args)
            invoices, total = invoice_service.list_invoices(variant, filters, page=page, limit=limit)
            return money_json(paged([i.to_dict() for i in invoices], total, page, limit))
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to list {variant.key} invoices")

    @bp.get("/statistics")
    @require_auth
    @require_staff
    def statistics_route():
        try:
            filters = InvoiceFilters.from_args(request.args)
            return money_json({"statistics": reporting_service.invoice_statistics(variant, filters)})
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to compute {variant.key} statistics")

    @bp.get("/report/csv")
    @require_auth
    @require_staff
    def csv_report_route():
        """CSV export of the filtered list. ?include_payments=true adds payment rows."""
        try:
            filters = InvoiceFilters.from_args(request.args)
            include_payments = bool(parse_bool_arg(request.args.get("include_payments")))
            body = reporting_service.export_invoices_csv(variant, filters, include_payments=include_payments)
            filename = f"{variant.key}_invoices_{utcnow():%Y%m%d}.csv"
            return Response(
                body,
                mimetype="text/csv",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to export {variant.key} CSV report")

    @bp.get("/report/pdf")
    @require_auth
    @require_staff
    def pdf_report_route():
        try:
            filters = InvoiceFilters.from_args(request.args)
            body = reporting_service.export_invoices_pdf(
                variant,
                filters,
                company_name=current_app.config.get("COMPANY_NAME", ""),
                company_trn=current_app.config.get("COMPANY_TRN", ""),
            )
            filename = f"{variant.key}_invoices_{utcnow():%Y%m%d}.pdf"
            return Response(
                body,
                mimetype="application/pdf",
                headers={"Content-Disposition": f'attachment; filename="{filename}"'},
            )
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to export {variant.key} PDF report")

    @bp.get("/<int:invoice_id>")
    @require_auth
    @require_staff
    def get_invoice_route(invoice_id: int):
        try:
            invoice = invoice_service.get_invoice(variant, invoice_id)
            return money_json({"invoice": _invoice_with_payments(variant, invoice)})
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to get {variant.key} invoice")

    @bp.put("/<int:invoice_id>")
    @require_auth
    @require_staff
    def update_invoice_route(invoice_id: int):
        """Full replacement of the writable fields; re-derives from the payment set."""
        try:
            invoice = invoice_service.update_invoice(variant, invoice_id, json_body(), user_id=g.current_user.id)
            return money_json({"invoice": _invoice_with_payments(variant, invoice)})
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to update {variant.key} invoice")

    @bp.delete("/<int:invoice_id>")
    @require_auth
    @require_admin
    @require_password_confirmation
    def delete_invoice_route(invoice_id: int):
        """
        Delete an invoice and all of its payments.

        Requires: admin role, and {"password": "..."} in the body.
        """
        try:
            summary = invoice_service.delete_invoice(variant, invoice_id)
            current_app.logger.info(
                "Invoice deleted: type=%s invoice=%s payments=%s ledger_entries=%s by user_id=%s",
                variant.key,
                summary["invoice_number"],
                summary["payments_deleted"],
                summary["ledger_entries_deleted"],
                g.current_user.id,
            )
            return money_json({"deleted": summary})
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to delete {variant.key} invoice")

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    @bp.post("/<int:invoice_id>/payments")
    @require_auth
    @require_staff
    def add_payment_route(invoice_id: int):
        """
        Record a payment.

        Request body:
        {
            "amount": 250.00,
            "payment_type": "partial",         (partial | full)
            "payment_method": "cash",          (optional, default cash)
            "discount": 0,                     (sales only)
            "reference": "CHQ-1182",           (optional)
            "notes": "...",                    (optional)
            "payment_date": "2024-03-01"       (optional, default now)
        }

        Returns:
            201: payment, updated invoice and payment summary
            400: already_paid | invalid_amount | overpayment | validation
            404: invoice not found
        """
        try:
            payment, invoice = payment_service.add_payment(
                variant,
                invoice_id,
                json_body(),
                user_id=g.current_user.id,
            )
            return money_json({
                "payment": payment.to_dict(),
                "invoice": invoice.to_dict(),
                "summary": payment_service.get_payment_summary(variant, invoice.id),
            }, 201)
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to add {variant.key} payment")

    @bp.get("/<int:invoice_id>/payments")
    @require_auth
    @require_staff
    def list_payments_route(invoice_id: int):
        try:
            payments = payment_service.get_payments_for_invoice(variant, invoice_id)
            return money_json({
                "payments": [p.to_dict() for p in payments],
                "summary": payment_service.get_payment_summary(variant, invoice_id),
            })
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to list {variant.key} payments")

    @bp.delete("/<int:invoice_id>/payments/<int:payment_id>")
    @require_auth
    @require_admin
    @require_password_confirmation
    def delete_payment_route(invoice_id: int, payment_id: int):
        """
        Delete a payment and re-derive the invoice.

        Requires: admin role, and {"password": "..."} in the body.
        """
        try:
            invoice = payment_service.delete_payment(variant, invoice_id, payment_id, user_id=g.current_user.id)
            current_app.logger.info(
                "Payment deleted: type=%s invoice=%s payment_id=%s by user_id=%s",
                variant.key,
                invoice.invoice_number,
                payment_id,
                g.current_user.id,
            )
            return money_json({"invoice": _invoice_with_payments(variant, invoice)})
        except KNOWN_ERRORS as e:
            return error_response(e)
        except Exception:
            return internal_error(f"Failed to delete {variant.key} payment")

    # =========================================================================
    # SALES ONLY
    # =========================================================================

    if variant.has_line_items:
        @bp.get("/customer-outstanding")
        @require_auth
        @require_staff
        def customer_outstanding_route():
            """
            Outstanding balances grouped by customer.

            Query params: search, min_outstanding, max_outstanding,
            status|statuses (comma list, default all but paid).
            """
            try:
                filters = InvoiceFilters.from_args(request.args)
                rows = reporting_service.customer_outstanding(
                    search=filters.search,
                    min_outstanding=filters.min_outstanding,
                    max_outstanding=filters.max_outstanding,
                    statuses=filters.statuses or None,
                )
                return money_json({"customers": rows, "total": len(rows)})
            except KNOWN_ERRORS as e:
                return error_response(e)
            except Exception:
                return internal_error("Failed to compute customer outstanding")

    return bp
