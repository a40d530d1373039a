# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/tradeledger/routes/auth.py
"""
Authentication API routes

- Login issues an opaque bearer token (stored hashed, see session_service)
- Logout revokes it
- Self-registration is disabled; admins create users (CLI or /api/auth/users)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, require_admin, require_auth
from ..services import auth_service, session_service
from ..services.auth_service import PasswordValidationError, UserError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body: {"username": "...", "password": "..."} (email accepted as username)
    The token must be sent as `Authorization: Bearer <token>` afterwards.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username/email and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            client_ip=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    return jsonify({"users": [u.to_dict() for u in auth_service.list_users()]}), 200


@auth_bp.post("/users")
@require_auth
@require_admin
def create_user_route():
    """
    Create a user (admin only).

    Request body: {"username", "email", "password", "role": "admin" | "employee"}
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password") or "",
            role=data.get("role") or "employee",
        )
        current_app.logger.info("User created: %s (%s) by user_id=%s", user.username, user.role, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 201

    except (UserError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/users/<int:user_id>/active")
@require_auth
@require_admin
def set_user_active_route(user_id: int):
    """Request body: {"is_active": true | false}"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("is_active"), bool):
        return jsonify({"error": "is_active must be true or false"}), 400
    if user_id == g.current_user.id and not data["is_active"]:
        return jsonify({"error": "Cannot deactivate your own account"}), 400

    try:
        user = auth_service.set_user_active(user_id, data["is_active"])
    except UserError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "User %s %s by user_id=%s",
        user.username, "activated" if user.is_active else "deactivated", g.current_user.id,
    )
    return jsonify({"user": user.to_dict()}), 200
