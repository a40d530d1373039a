# Overview: Authentication and role decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .models.auth import ROLE_ADMIN, ROLE_EMPLOYEE
from .services import session_service
from .services.auth_service import verify_password


def bearer_token() -> str | None:
    """Token from `Authorization: Bearer <token>`, or None."""
    scheme, _, token = (request.headers.get("Authorization") or "").partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def _unauthenticated():
    return jsonify({"error": "Authentication required"}), 401


def require_auth(f):
    """
    Resolve the bearer token to a user, or answer 401.

    On success g.current_user and g.session_context are set for the view
    and for the role/password decorators stacked below this one.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return _unauthenticated()

        context = session_service.validate_session(token)
        if context is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get("current_user")
            if user is None:
                return _unauthenticated()
            if user.role not in roles:
                return jsonify({"error": "Permission denied", "required_roles": list(roles)}), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_admin = require_role(ROLE_ADMIN)
require_staff = require_role(ROLE_ADMIN, ROLE_EMPLOYEE)


def require_password_confirmation(f):
    """
    Invoice, payment or purchase deletion: the caller re-enters their password as
    {"password": "..."} in the JSON body. Missing and wrong passwords get
    the same 401 body.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = g.get("current_user")
        if user is None:
            return _unauthenticated()

        payload = request.get_json(silent=True)
        password = payload.get("password") if isinstance(payload, dict) else None

        if not isinstance(password, str) or not verify_password(password, user.password_hash):
            current_app.logger.warning(
                "Password confirmation failed: user_id=%s %s %s", user.id, request.method, request.path
            )
            return jsonify({"error": "Password confirmation failed"}), 401

        return f(*args, **kwargs)

    return decorated_function
