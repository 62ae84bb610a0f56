"""
JWT Auth Middleware — resolves the caller once per request and sets g.current_user.

Token sources, in priority order:
  1. Authorization: Bearer <token>
  2. The auth cookie set by /api/v1/auth/login

The role stored on the user row is authoritative; the token's role claim is
only informational. Absence of a valid token leaves g.current_user = None,
which blueprints treat as unauthenticated.
"""

import logging

from flask import current_app, g, request

from approvals.services.jwt_service import resolve_caller
from approvals.services.user_service import get_user

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/confirm",
    "/api/v1/health",
    "/static/",
)


def _token_from_request() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "auth_token"))


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.jwt_user_id = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        caller = resolve_caller(_token_from_request())
        if caller is None:
            return

        user_id, _role = caller
        user = get_user(user_id)
        if user is None:
            logger.warning("Token for unknown user id=%s on %s", user_id, path)
            return
        g.current_user = user
        g.jwt_user_id = user_id
