# Overview: Service-layer operations for bearer tokens; issue, validate, revoke and purge.

"""
Bearer token sessions.

A login yields a random 64-hex-char token. The client keeps the plaintext,
the database keeps its SHA-256 digest. Lifetime and idle cutoff come from
SESSION_TTL_HOURS and SESSION_IDLE_MINUTES.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


# Revoked/expired rows older than this are purged by `flask sessions cleanup`
PURGE_AFTER = timedelta(days=30)


@dataclass
class SessionContext:
    user: User
    session: SessionToken


def _ttl() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))


def _idle_window() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", 120))


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # High-entropy input, so a plain digest is enough (no salt or stretching)
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _naive(dt):
    # SQLite hands datetimes back without tzinfo
    return dt.replace(tzinfo=None) if dt is not None and dt.tzinfo is not None else dt


def _active_by_token(token: str) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason[:120]


def create_session(
    user_id: int,
    user_agent: str | None = None,
    client_ip: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Issue a token for an active user.

    Returns (session_row, plaintext_token). The plaintext is not
    recoverable afterwards. Raises ValueError for unknown or inactive users.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValueError("User not found or inactive")

    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _ttl(),
        client_ip=client_ip,
        user_agent=(user_agent or "")[:255] or None,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user, or None.

    Idle sessions and sessions of deactivated users are revoked on the way
    out. A valid hit refreshes last_used_at.
    """
    session = _active_by_token(token)
    if session is None:
        return None

    now = utcnow()
    if _naive(session.expires_at) < now:
        return None

    if now - _naive(session.last_used_at) > _idle_window():
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User deactivated")
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=session)


def revoke_session(token: str, reason: str = "Logout") -> bool:
    session = _active_by_token(token)
    if session is None:
        return False
    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str) -> int:
    """Revoke every live token of a user. Caller commits."""
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _revoke(session, reason)
    return len(sessions)


def cleanup_expired_sessions() -> int:
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < now - PURGE_AFTER,
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
