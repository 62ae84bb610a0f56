"""
User directory blueprint.

  GET /api/v1/users            — all users
  GET /api/v1/users?role=hr    — users holding one role (forward picker)
"""

from flask import Blueprint, jsonify, request

from approvals.auth import login_required
from approvals.blueprints import register_error_handlers
from approvals.services.user_service import list_users, list_users_by_role

user_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")
register_error_handlers(user_bp)


@user_bp.route("", methods=["GET"])
@login_required
def list_all_users():
    role = request.args.get("role")
    users = list_users_by_role(role) if role else list_users()
    return jsonify([u.to_dict() for u in users]), 200
