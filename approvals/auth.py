"""
Request Approval Workflow
Route guards on top of the JWT middleware.

Usage:
    @bp.route("/requests", methods=["GET"])
    @login_required
    def list_requests(): ...
"""

import functools

from flask import g

from approvals.utils.errors import E, api_error


def current_user():
    """The user resolved by the JWT middleware, or ``None``."""
    return getattr(g, "current_user", None)


def login_required(f):
    """Decorator: 401 unless the middleware resolved a caller."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        return f(*args, **kwargs)
    return decorated
