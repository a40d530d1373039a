# Overview: Service-layer operations for users and credentials.

"""
Authentication Service

WHY: Every invoice, payment and ledger entry is attributed to a user.
Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, with upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)
- Deleting invoices or payments requires re-entering the password
  (see decorators.require_password_confirmation)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_EMPLOYEE, VALID_ROLES
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserError(Exception):
    """Raised for invalid user creation/update requests."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash the password."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash is treated as
    a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = ROLE_EMPLOYEE,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        UserError: unknown role, or username/email already taken
        PasswordValidationError: password doesn't meet requirements
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise UserError("username and email are required")
    if role not in VALID_ROLES:
        raise UserError(f"Invalid role: {role}. Must be one of {VALID_ROLES}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise UserError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username (or email) and password.

    Returns the User on success, None otherwise. Updates last_login_at.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username.lower()),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()


def set_user_active(user_id: int, active: bool) -> User:
    """
    Enable or disable a login. Disabling revokes the user's live tokens.

    The last active admin cannot be disabled.
    """
    from . import session_service

    user = db.session.get(User, user_id)
    if user is None:
        raise UserError("User not found")

    if not active and user.is_admin and user.is_active:
        other_admins = db.session.query(User).filter(
            User.role == ROLE_ADMIN,
            User.is_active.is_(True),
            User.id != user.id,
        ).count()
        if other_admins == 0:
            raise UserError("Cannot deactivate the last active admin")

    user.is_active = active
    if not active:
        session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
    db.session.commit()
    return user
