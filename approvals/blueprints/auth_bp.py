"""
Auth Blueprint — registration, confirmation and JWT login.

  POST /api/v1/auth/register    — create unconfirmed domain user
  GET  /api/v1/auth/confirm     — confirm via emailed token
  POST /api/v1/auth/login       — email + password → access token (+ cookie)
  POST /api/v1/auth/logout      — clear the auth cookie
  GET  /api/v1/auth/me          — current user profile
"""

from flask import Blueprint, current_app, jsonify, request

from approvals.auth import current_user, login_required
from approvals.blueprints import json_body, register_error_handlers
from approvals.services.jwt_service import generate_access_token
from approvals.services.user_service import (
    UserServiceError,
    authenticate_user,
    confirm_user,
    register_user,
)
from approvals.utils.errors import E, api_error

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


@auth_bp.errorhandler(UserServiceError)
def handle_user_service_error(e):
    return jsonify({"error": e.message}), e.status_code


def _text(value, strip=True) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip() if strip else value


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "email": "...", "password": "...", "name": "...", "role": "..." }
    """
    data = json_body()
    email = _text(data.get("email"))
    password = _text(data.get("password"), strip=False)
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = register_user(email, password, data.get("name") or "", data.get("role") or "employee")
    return jsonify({
        "message": "Registered. Check your email to confirm the account.",
        "user": user.to_dict(),
    }), 201


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/confirm?token=...
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/confirm", methods=["GET"])
def confirm():
    user = confirm_user(request.args.get("token", ""))
    return jsonify({"message": "Account confirmed", "user": user.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    email = _text(data.get("email")).lower()
    password = _text(data.get("password"), strip=False)
    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    user = authenticate_user(email, password)
    token = generate_access_token(user)
    expires_in = current_app.config.get("JWT_ACCESS_EXPIRES")

    resp = jsonify({
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": expires_in,
        "user": user.to_dict(),
    })
    resp.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "auth_token"),
        token,
        max_age=expires_in,
        httponly=True,
        samesite="Lax",
        secure=not (current_app.debug or current_app.testing),
    )
    return resp, 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    resp = jsonify({"message": "Logged out successfully"})
    resp.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "auth_token"))
    return resp, 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    """Get current user profile from JWT."""
    return jsonify({"user": current_user().to_dict()}), 200
