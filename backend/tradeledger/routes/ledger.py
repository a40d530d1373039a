# Overview: Flask API routes for the daily cash/bank ledger.

"""
Daily Ledger API Routes

Dates in URLs are calendar dates (YYYY-MM-DD). Sales payments post their
receipts automatically; these routes manage opening balances, manual
entries and closing the day.
"""

from flask import Blueprint, Response, current_app, g, request

from ..decorators import require_admin, require_auth, require_staff
from ..services import ledger_service, reporting_service
from ..time_utils import parse_iso_date
from ..validation import ValidationError, coerce_decimal
from .responses import KNOWN_ERRORS, error_response, internal_error, json_body, money_json


ledger_bp = Blueprint("daily_ledger", __name__, url_prefix="/api/daily-ledger")


def _date(value, field: str = "date"):
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO-8601 date", field)
    return parsed


@ledger_bp.get("/summary")
@require_auth
@require_staff
def ledger_summary_route():
    """Totals across ?start_date=...&end_date=... (inclusive)."""
    try:
        start = _date(request.args.get("start_date"), "start_date")
        end = _date(request.args.get("end_date"), "end_date")
        if end < start:
            raise ValidationError("end_date cannot be before start_date", "end_date")
        return money_json({"summary": ledger_service.ledger_summary(start, end)})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to compute ledger summary")


@ledger_bp.get("/<ledger_date>")
@require_auth
@require_staff
def get_daily_ledger_route(ledger_date: str):
    try:
        ledger = ledger_service.require_daily_ledger(_date(ledger_date))
        return money_json({"ledger": ledger.to_dict(include_entries=True)})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get daily ledger")


@ledger_bp.post("/")
@require_auth
@require_staff
def set_opening_balances_route():
    """
    Create or update a day's ledger.

    Request body: {"date": "2024-03-01", "opening_cash": 0, "opening_bank": 0, "notes": ""}
    """
    try:
        data = json_body()
        ledger = ledger_service.set_opening_balances(
            _date(data.get("date")),
            opening_cash=coerce_decimal(data.get("opening_cash", 0), "opening_cash"),
            opening_bank=coerce_decimal(data.get("opening_bank", 0), "opening_bank"),
            notes=data.get("notes"),
        )
        return money_json({"ledger": ledger.to_dict(include_entries=True)})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to save daily ledger")


@ledger_bp.post("/entries")
@require_auth
@require_staff
def add_entry_route():
    """
    Add a manual entry.

    Request body: {"ledger_date", "entry_type": "receipt"|"payment",
                   "mode": "cash"|"bank", "description", "amount"}
    """
    try:
        data = json_body()
        entry = ledger_service.add_entry(
            _date(data.get("ledger_date"), "ledger_date"),
            entry_type=data.get("entry_type"),
            mode=data.get("mode"),
            description=data.get("description") or "",
            amount=coerce_decimal(data.get("amount"), "amount"),
            user_id=g.current_user.id,
        )
        return money_json({"entry": entry.to_dict()}, 201)
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to add ledger entry")


@ledger_bp.delete("/entries/<int:entry_id>")
@require_auth
@require_staff
def delete_entry_route(entry_id: int):
    try:
        ledger_service.delete_entry(entry_id)
        return money_json({"deleted": entry_id})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete ledger entry")


@ledger_bp.post("/<ledger_date>/close")
@require_auth
@require_admin
def close_daily_ledger_route(ledger_date: str):
    try:
        ledger = ledger_service.close_daily_ledger(_date(ledger_date), user_id=g.current_user.id)
        current_app.logger.info("Daily ledger %s closed by user_id=%s", ledger.ledger_date, g.current_user.id)
        return money_json({"ledger": ledger.to_dict(include_entries=True)})
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to close daily ledger")


@ledger_bp.get("/<ledger_date>/pdf")
@require_auth
@require_staff
def daily_ledger_pdf_route(ledger_date: str):
    try:
        ledger = ledger_service.require_daily_ledger(_date(ledger_date))
        body = reporting_service.export_daily_ledger_pdf(
            ledger,
            company_name=current_app.config.get("COMPANY_NAME", ""),
        )
        return Response(
            body,
            mimetype="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="daily_ledger_{ledger.ledger_date}.pdf"'},
        )
    except KNOWN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to export daily ledger PDF")
