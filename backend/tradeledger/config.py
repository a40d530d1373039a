# backend/tradeledger/config.py
from __future__ import annotations
import os


def _split_csv(raw: str | None, default: list[str]) -> list[str]:
    parts = [p.strip() for p in (raw or "").split(",")]
    return [p for p in parts if p] or default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tradeledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///tradeledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Printed on invoices and PDF reports
    COMPANY_NAME = os.environ.get("COMPANY_NAME", "Trade Ledger")
    COMPANY_TRN = os.environ.get("COMPANY_TRN", "")

    # Used only by `flask system init`; never created implicitly at startup
    DEFAULT_ADMIN_USERNAME = os.environ.get("DEFAULT_ADMIN_USERNAME", "admin")
    DEFAULT_ADMIN_EMAIL = os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@tradeledger.local")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("DEFAULT_ADMIN_PASSWORD", "")

    CORS_ALLOWED_ORIGINS = _split_csv(
        os.environ.get("CORS_ALLOWED_ORIGINS"),
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
    )

    # Report listing page size cap
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "200"))

    # bcrypt cost factor (tests lower this)
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Bearer token lifetime and idle cutoff
    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))
    SESSION_IDLE_MINUTES = int(os.environ.get("SESSION_IDLE_MINUTES", "120"))
