# Overview: Service-layer operations for reporting; statistics, customer outstanding, CSV and PDF exports.

from __future__ import annotations

import csv
import io
from collections import OrderedDict

from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from ..currency import ZERO, to_decimal
from ..extensions import db
from ..invoice_rules import VALID_STATUSES, InvoiceVariant
from ..models import SalesInvoice
from ..money_format import ceil_to_two_decimals
from ..time_utils import to_iso_date, to_utc_z, utcnow
from .invoice_service import InvoiceFilters, build_invoice_query, load_payments


def _money(value) -> str:
    """Display form of a money value (ceiling to 2 decimals, always 2 places)."""
    rounded = ceil_to_two_decimals(to_decimal(value))
    return f"{rounded:,.2f}"


def _rate(value) -> str:
    return format(to_decimal(value).normalize(), "f")


# =============================================================================
# STATISTICS
# =============================================================================

def invoice_statistics(variant: InvoiceVariant, filters: InvoiceFilters | None = None) -> dict:
    """Totals over a filtered invoice set, with counts and outstanding per status."""
    invoices = build_invoice_query(variant, filters).all()

    by_status = OrderedDict((s, {"count": 0, "outstanding_amount": ZERO}) for s in VALID_STATUSES)
    stats = {
        "invoice_type": variant.key,
        "currency": variant.currency,
        "total_invoices": len(invoices),
        "total_amount": ZERO,
        "total_received": ZERO,
        "total_outstanding": ZERO,
        "by_status": by_status,
    }
    if variant.has_payment_discount:
        stats["total_discount_allowed"] = ZERO
    if variant.is_dual_currency:
        stats["mirror_currency"] = variant.mirror_currency
        stats["converted_total_amount"] = ZERO
        stats["converted_total_received"] = ZERO
        stats["converted_total_outstanding"] = ZERO

    for invoice in invoices:
        outstanding = to_decimal(invoice.outstanding_amount)
        stats["total_amount"] += to_decimal(invoice.gross_amount)
        stats["total_received"] += to_decimal(invoice.received_amount)
        stats["total_outstanding"] += outstanding

        bucket = by_status.setdefault(invoice.status, {"count": 0, "outstanding_amount": ZERO})
        bucket["count"] += 1
        bucket["outstanding_amount"] += outstanding

        if variant.has_payment_discount:
            stats["total_discount_allowed"] += to_decimal(invoice.discount_allowed)
        if variant.is_dual_currency:
            stats["converted_total_amount"] += to_decimal(invoice.converted_amount)
            stats["converted_total_received"] += to_decimal(invoice.converted_received_amount)
            stats["converted_total_outstanding"] += to_decimal(invoice.converted_outstanding_amount)

    stats["by_status"] = dict(by_status)
    return stats


def customer_outstanding(
    *,
    search: str | None = None,
    min_outstanding=None,
    max_outstanding=None,
    statuses: list[str] | None = None,
) -> list[dict]:
    """
    Sales outstanding grouped by customer, largest balance first.

    statuses restricts which invoices are counted (default: everything
    not fully paid). min/max apply to each customer's total outstanding.
    """
    statuses = statuses or [s for s in VALID_STATUSES if s != "paid"]

    query = db.session.query(SalesInvoice).filter(SalesInvoice.status.in_(statuses))
    if search:
        query = query.filter(SalesInvoice.customer.ilike(f"%{search.strip()}%"))

    grouped: dict[str, dict] = {}
    for invoice in query.order_by(SalesInvoice.invoice_date.asc(), SalesInvoice.id.asc()).all():
        key = invoice.customer.strip().lower()
        row = grouped.get(key)
        if row is None:
            row = grouped[key] = {
                "customer": invoice.customer,
                "invoice_count": 0,
                "overdue_count": 0,
                "total_amount": ZERO,
                "total_received": ZERO,
                "total_discount_allowed": ZERO,
                "total_outstanding": ZERO,
                "oldest_due_date": None,
                "last_invoice_date": None,
                "invoice_numbers": [],
            }
        row["invoice_count"] += 1
        if invoice.status == "overdue":
            row["overdue_count"] += 1
        row["total_amount"] += to_decimal(invoice.gross_amount)
        row["total_received"] += to_decimal(invoice.received_amount)
        row["total_discount_allowed"] += to_decimal(invoice.discount_allowed)
        row["total_outstanding"] += to_decimal(invoice.outstanding_amount)
        if row["oldest_due_date"] is None or invoice.due_date < row["oldest_due_date"]:
            row["oldest_due_date"] = invoice.due_date
        row["last_invoice_date"] = invoice.invoice_date
        row["invoice_numbers"].append(invoice.invoice_number)

    low = to_decimal(min_outstanding) if min_outstanding not in (None, "") else None
    high = to_decimal(max_outstanding) if max_outstanding not in (None, "") else None

    rows = []
    for row in grouped.values():
        if low is not None and row["total_outstanding"] < low:
            continue
        if high is not None and row["total_outstanding"] > high:
            continue
        row["oldest_due_date"] = to_utc_z(row["oldest_due_date"])
        row["last_invoice_date"] = to_utc_z(row["last_invoice_date"])
        rows.append(row)

    rows.sort(key=lambda r: (-r["total_outstanding"], r["customer"].lower()))
    return rows


# =============================================================================
# CSV
# =============================================================================

def _csv_columns(variant: InvoiceVariant) -> list[tuple[str, callable]]:
    columns = [
        ("Invoice Number", lambda i: i.invoice_number),
        ("Invoice Date", lambda i: to_iso_date(i.invoice_date.date()) if i.invoice_date else ""),
        ("Due Date", lambda i: to_iso_date(i.due_date.date()) if i.due_date else ""),
    ]
    if variant.has_line_items:
        columns += [
            ("Customer", lambda i: i.customer),
            ("Container No", lambda i: i.container_no),
            ("Supplier", lambda i: i.supplier),
            ("Product", lambda i: i.product),
            ("Marka", lambda i: i.marka),
            ("Quantity", lambda i: i.quantity),
            ("Rate", lambda i: _money(i.rate)),
            ("Subtotal", lambda i: _money(i.subtotal)),
            ("VAT %", lambda i: _money(i.vat_percentage)),
            ("VAT Amount", lambda i: _money(i.vat_amount)),
            ("Discount", lambda i: _money(i.discount)),
        ]
    else:
        columns += [
            ("Agent", lambda i: i.agent),
            ("Conversion Rate", lambda i: _rate(i.conversion_rate)),
        ]

    base = variant.currency
    columns += [
        (f"Amount ({base})", lambda i: _money(i.gross_amount)),
        (f"Received ({base})", lambda i: _money(i.received_amount)),
    ]
    if variant.has_payment_discount:
        columns.append(("Discount Allowed", lambda i: _money(i.discount_allowed)))
    columns.append((f"Outstanding ({base})", lambda i: _money(i.outstanding_amount)))

    if variant.is_dual_currency:
        mirror = variant.mirror_currency
        columns += [
            (f"Amount ({mirror})", lambda i: _money(i.converted_amount)),
            (f"Received ({mirror})", lambda i: _money(i.converted_received_amount)),
            (f"Outstanding ({mirror})", lambda i: _money(i.converted_outstanding_amount)),
        ]

    columns += [
        ("Status", lambda i: i.status),
        ("Last Payment", lambda i: to_utc_z(i.last_payment_date) or ""),
    ]
    return columns


def export_invoices_csv(
    variant: InvoiceVariant,
    filters: InvoiceFilters | None = None,
    *,
    include_payments: bool = False,
) -> str:
    """
    CSV of a filtered invoice set. With include_payments, each invoice row
    is followed by one row per payment (in the payment columns).
    """
    columns = _csv_columns(variant)
    payment_headers = ["Payment Date", "Payment Amount", "Payment Discount", "Payment Type", "Payment Method", "Reference"]

    output = io.StringIO()
    writer = csv.writer(output)

    header = [name for name, _ in columns]
    if include_payments:
        header += payment_headers
    writer.writerow(header)

    for invoice in build_invoice_query(variant, filters).all():
        writer.writerow([getter(invoice) for _, getter in columns] + ([""] * len(payment_headers) if include_payments else []))
        if not include_payments:
            continue
        for payment in load_payments(variant, invoice.id):
            writer.writerow([invoice.invoice_number] + [""] * (len(columns) - 1) + [
                to_utc_z(payment.payment_date),
                _money(payment.amount),
                _money(payment.discount),
                payment.payment_type,
                payment.payment_method,
                payment.reference or "",
            ])

    return output.getvalue()


# =============================================================================
# PDF
# =============================================================================

PAGE_SIZE = landscape(A4)
MARGIN = 15 * mm
ROW_HEIGHT = 6 * mm


class _TablePdf:
    """Minimal paginated table on a reportlab canvas."""

    def __init__(self, title: str, subtitle_lines: list[str], headers: list[str], widths: list[float]):
        self.buffer = io.BytesIO()
        self.c = canvas.Canvas(self.buffer, pagesize=PAGE_SIZE)
        self.c.setTitle(title)
        self.width, self.height = PAGE_SIZE
        self.title = title
        self.subtitle_lines = subtitle_lines
        self.headers = headers
        self.widths = widths
        self.page_num = 0
        self.y = 0.0
        self._new_page()

    def _new_page(self):
        if self.page_num:
            self.c.showPage()
        self.page_num += 1
        self.y = self.height - MARGIN

        self.c.setFont("Helvetica-Bold", 14)
        self.c.drawString(MARGIN, self.y, self.title)
        self.c.setFont("Helvetica", 8)
        self.c.drawRightString(self.width - MARGIN, self.y, f"Page {self.page_num}")
        self.y -= 6 * mm
        for line in self.subtitle_lines:
            self.c.drawString(MARGIN, self.y, line)
            self.y -= 4 * mm
        self.y -= 2 * mm
        self._row(self.headers, bold=True)
        self.c.line(MARGIN, self.y + ROW_HEIGHT - 4.5 * mm, self.width - MARGIN, self.y + ROW_HEIGHT - 4.5 * mm)

    def _row(self, cells: list[str], bold: bool = False):
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", 7.5)
        x = MARGIN
        for cell, width in zip(cells, self.widths):
            text = str(cell if cell is not None else "")
            max_chars = max(int(width / 3.8), 4)
            if len(text) > max_chars:
                text = text[: max_chars - 1] + "~"
            self.c.drawString(x, self.y, text)
            x += width
        self.y -= ROW_HEIGHT

    def row(self, cells: list[str], bold: bool = False):
        if self.y < MARGIN + ROW_HEIGHT:
            self._new_page()
        self._row(cells, bold=bold)

    def text(self, line: str, bold: bool = False):
        """A full-width line below the table (totals, notes)."""
        if self.y < MARGIN + ROW_HEIGHT:
            self._new_page()
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", 8)
        self.c.drawString(MARGIN, self.y, line)
        self.y -= ROW_HEIGHT

    def finish(self) -> bytes:
        self.c.save()
        return self.buffer.getvalue()


def export_invoices_pdf(
    variant: InvoiceVariant,
    filters: InvoiceFilters | None = None,
    *,
    company_name: str = "",
    company_trn: str = "",
) -> bytes:
    invoices = build_invoice_query(variant, filters).all()
    base = variant.currency

    if variant.has_line_items:
        headers = ["Invoice", "Date", "Due", "Customer", "Product", "Qty", "Rate", "VAT", f"Amount {base}", f"Received {base}", "Discount", f"Outstanding {base}", "Status"]
        widths = [24, 20, 20, 40, 34, 12, 18, 18, 24, 24, 20, 26, 20]
    else:
        mirror = variant.mirror_currency
        headers = ["Invoice", "Date", "Due", "Agent", "Rate", f"Amount {base}", f"Paid {base}", f"Outstanding {base}", f"Amount {mirror}", f"Outstanding {mirror}", "Status"]
        widths = [22, 20, 20, 50, 18, 28, 28, 30, 28, 30, 22]
    widths = [w * mm for w in widths]

    subtitle = [
        f"{company_name}" + (f"  TRN: {company_trn}" if company_trn else ""),
        f"Generated {to_utc_z(utcnow())}  |  {len(invoices)} invoice(s)",
    ]
    pdf = _TablePdf(f"{variant.label} Invoices Report", subtitle, headers, widths)

    total_amount = total_received = total_outstanding = ZERO
    for invoice in invoices:
        total_amount += to_decimal(invoice.gross_amount)
        total_received += to_decimal(invoice.received_amount)
        total_outstanding += to_decimal(invoice.outstanding_amount)

        dates = [
            invoice.invoice_number,
            to_iso_date(invoice.invoice_date.date()),
            to_iso_date(invoice.due_date.date()),
        ]
        if variant.has_line_items:
            cells = dates + [
                invoice.customer,
                invoice.product,
                invoice.quantity,
                _money(invoice.rate),
                _money(invoice.vat_amount),
                _money(invoice.gross_amount),
                _money(invoice.received_amount),
                _money(invoice.discount_allowed),
                _money(invoice.outstanding_amount),
                invoice.status,
            ]
        else:
            cells = dates + [
                invoice.agent,
                _rate(invoice.conversion_rate),
                _money(invoice.gross_amount),
                _money(invoice.received_amount),
                _money(invoice.outstanding_amount),
                _money(invoice.converted_amount),
                _money(invoice.converted_outstanding_amount),
                invoice.status,
            ]
        pdf.row(cells)

    pdf.row([])
    pdf.text(f"Total amount: {base} {_money(total_amount)}", bold=True)
    pdf.text(f"Total received: {base} {_money(total_received)}", bold=True)
    pdf.text(f"Total outstanding: {base} {_money(total_outstanding)}", bold=True)
    return pdf.finish()


def export_daily_ledger_pdf(ledger, *, company_name: str = "") -> bytes:
    headers = ["#", "Type", "Mode", "Description", "Reference", "Amount"]
    widths = [10 * mm, 22 * mm, 18 * mm, 130 * mm, 40 * mm, 30 * mm]
    subtitle = [company_name, f"Status: {'Closed' if ledger.is_closed else 'Open'}"]
    pdf = _TablePdf(f"Daily Ledger {ledger.ledger_date.isoformat()}", subtitle, headers, widths)

    pdf.row(["", "opening", "cash", "Opening balance", "", _money(ledger.opening_cash)])
    pdf.row(["", "opening", "bank", "Opening balance", "", _money(ledger.opening_bank)])
    for n, entry in enumerate(ledger.entries, start=1):
        pdf.row([n, entry.entry_type, entry.mode, entry.description, entry.reference_type, _money(entry.amount)])

    pdf.row([])
    pdf.row(["", "closing", "cash", "Closing balance", "", _money(ledger.closing_cash)], bold=True)
    pdf.row(["", "closing", "bank", "Closing balance", "", _money(ledger.closing_bank)], bold=True)
    return pdf.finish()

