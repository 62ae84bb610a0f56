"""
Request Blueprint — create, list, view, decide, forward, attach.

Routes:
  GET    /requests?filter=my|pending|all     – list (all → admin only)
  POST   /requests                           – create
  GET    /requests/<id>                      – full view (history, attachments)
  GET    /requests/<id>/history              – ledger
  POST   /requests/<id>/decide               – approve / reject
  POST   /requests/<id>/forward              – re-route to a role or user
  GET    /requests/<id>/attachments          – list attachments
  POST   /requests/<id>/attachments          – upload (multipart, field "file")
"""

import logging

from flask import Blueprint, jsonify, request

from approvals.auth import current_user, login_required
from approvals.blueprints import json_body, register_error_handlers
from approvals.services import attachment_service
from approvals.services.history import last_comments
from approvals.services.permission import check_can_view
from approvals.services.request_lifecycle import RequestLifecycle, parse_assignment_target
from approvals.utils.errors import E, api_error

logger = logging.getLogger(__name__)

request_bp = Blueprint("requests", __name__, url_prefix="/api/v1/requests")
register_error_handlers(request_bp)

LIST_FILTERS = ("my", "pending", "all")


def _engine() -> RequestLifecycle:
    return RequestLifecycle()


# ═════════════════════════════════════════════════════════════════════════════
# LIST / CREATE
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("", methods=["GET"])
@login_required
def list_requests():
    """List requests for the caller.

    ``filter=my`` (default) → requests I created;
    ``filter=pending`` → open requests waiting on my role or on me;
    ``filter=all`` → everything (admin only).
    """
    user = current_user()
    engine = _engine()
    which = request.args.get("filter", "my")

    if which not in LIST_FILTERS:
        return api_error(E.VALIDATION_INVALID, f"filter must be one of {list(LIST_FILTERS)}")

    if which == "my":
        return jsonify(engine.list_for_requester(user.id)), 200

    if which == "pending":
        rows = engine.list_pending_for(user)
    else:
        if not user.is_admin:
            return api_error(E.FORBIDDEN, "Only administrators may list all requests")
        rows = engine.list_all()

    comments = last_comments([r.id for r in rows])
    return jsonify([r.to_dict(last_comment=comments.get(r.id)) for r in rows]), 200


@request_bp.route("", methods=["POST"])
@login_required
def create_request():
    """Create a request.

    Body: { type, title, description, reason?, urgency?,
            assigned_to_user_id?, assigned_to_role? }
    """
    data = json_body()
    req = _engine().create(data, current_user())
    return jsonify(req.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# SINGLE REQUEST
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/<int:request_id>", methods=["GET"])
@login_required
def get_request(request_id):
    return jsonify(_engine().get_view(request_id, current_user())), 200


@request_bp.route("/<int:request_id>/history", methods=["GET"])
@login_required
def get_history(request_id):
    entries = _engine().history(request_id, current_user())
    return jsonify([e.to_dict() for e in entries]), 200


@request_bp.route("/<int:request_id>/decide", methods=["POST"])
@login_required
def decide(request_id):
    """Approve or reject.

    Body: { decision: "approve" | "reject", comment? }
    """
    data = json_body()
    decision = data.get("decision")
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "decision is required")

    req = _engine().decide(request_id, current_user(), decision, data.get("comment"))
    return jsonify(req.to_dict()), 200


@request_bp.route("/<int:request_id>/forward", methods=["POST"])
@login_required
def forward(request_id):
    """Forward to a role or a user.

    Body: { comment, forward_to_user_id | forward_to_role }
    """
    data = json_body()
    target = parse_assignment_target(
        data.get("forward_to_user_id"), data.get("forward_to_role"), allow_default=False,
    )
    req = _engine().forward(request_id, current_user(), data.get("comment"), target)
    return jsonify(req.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# ATTACHMENTS
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/<int:request_id>/attachments", methods=["GET"])
@login_required
def list_attachments(request_id):
    req = _engine().get(request_id)
    check_can_view(req, current_user())
    return jsonify([a.to_dict() for a in attachment_service.list_for(request_id)]), 200


@request_bp.route("/<int:request_id>/attachments", methods=["POST"])
@login_required
def upload_attachment(request_id):
    if "file" not in request.files:
        return api_error(E.VALIDATION_REQUIRED, "No file part")
    attachment = attachment_service.store(request_id, request.files["file"], current_user())
    return jsonify(attachment.to_dict()), 201
