# backend/tradeledger/routes/system.py
"""
Health and version endpoints. Both are public.

/api/health runs three checks, each timed on its own:
- database: reachable, and at least one user exists
- sessions: live and expired-but-unpurged token counts
- invoices: per-type invoice counts against their number counters
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..invoice_rules import VARIANTS
from ..models import SessionToken, User
from ..services.invoice_service import invoice_model
from ..services.sequence_service import peek_sequence
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _timed(name: str, check) -> dict:
    """Run `check()` -> (status, details); failures become 'unhealthy'."""
    start = time.perf_counter()
    try:
        status, details = check()
        result = {"status": status, "details": details}
    except Exception:
        current_app.logger.exception("Health check %s failed", name)
        db.session.rollback()
        result = {"status": "unhealthy", "error": f"{name} check failed"}
    result["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
    return result


def check_database():
    users = db.session.query(User).filter(User.is_active.is_(True)).count()
    if users == 0:
        return "degraded", {"active_users": 0, "hint": "run `flask system init`"}
    return "healthy", {"active_users": users}


def check_sessions():
    live = db.session.query(SessionToken).filter(SessionToken.is_revoked.is_(False))
    return "healthy", {
        "live": live.count(),
        "expired_unpurged": live.filter(SessionToken.expires_at < utcnow()).count(),
    }


def check_invoices():
    details = {}
    for variant in VARIANTS.values():
        details[variant.key] = {
            "invoices": db.session.query(invoice_model(variant)).count(),
            "last_number": peek_sequence(variant.counter_key),
        }
    return "healthy", details


@system_bp.get("/health")
def health():
    """200 while operational (healthy or degraded), 503 if any check fails."""
    checks = {
        "database": _timed("database", check_database),
        "sessions": _timed("sessions", check_sessions),
        "invoices": _timed("invoices", check_invoices),
    }
    statuses = {c["status"] for c in checks.values()}
    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return {"status": overall, "timestamp": utcnow().isoformat() + "Z", "checks": checks}, http_status


@system_bp.get("/version")
def version():
    return {
        "api_version": "1.0.0",
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "invoice_types": sorted(VARIANTS),
    }
