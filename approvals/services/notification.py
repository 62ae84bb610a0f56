"""
Request Approval Workflow
Notification dispatcher — assignment emails.

Fire-and-forget: ``notify_assignment`` reports success as a bool and never
raises. The lifecycle engine calls it only after its transaction committed.
"""

import logging

from flask import current_app
from markupsafe import Markup, escape

from approvals.services.email_service import EmailService, URGENCY_COLORS

logger = logging.getLogger(__name__)


def build_assignment_payload(request_obj, *, is_forwarded=False, forwarded_by=None) -> dict:
    """Collect the fields the assignment email needs from a request row."""
    requester = request_obj.requester
    payload = {
        "request_id": request_obj.id,
        "type": request_obj.type,
        "title": request_obj.title,
        "description": request_obj.description,
        "urgency": request_obj.urgency,
        "created_by": {
            "name": requester.name if requester else "",
            "email": requester.email if requester else "",
        },
        "is_forwarded": is_forwarded,
    }
    if is_forwarded and forwarded_by is not None:
        payload["forwarded_by"] = {"name": forwarded_by.name, "email": forwarded_by.email}
    return payload


def _forwarded_by_block(payload) -> Markup:
    fwd = payload.get("forwarded_by")
    if not payload.get("is_forwarded") or not fwd:
        return Markup("")
    return Markup(
        '<p style="font-size: 13px; color: #6b7280;">Forwarded by: '
        "<strong>{}</strong> ({})</p>"
    ).format(fwd.get("name", ""), fwd.get("email", ""))


def notify_assignment(target_user, payload: dict) -> bool:
    """
    Email ``target_user`` that a request now waits on them.

    Args:
        target_user: User row (needs ``name`` and ``email``).
        payload: Output of ``build_assignment_payload``.

    Returns:
        True if the email was delivered (or logged in dev mode).
    """
    if target_user is None or not getattr(target_user, "email", None):
        logger.warning("Assignment notification skipped: no recipient for request %s",
                       payload.get("request_id"))
        return False

    forwarded = bool(payload.get("is_forwarded"))
    created_by = payload.get("created_by") or {}
    base_url = current_app.config.get("BASE_URL", "").rstrip("/")
    context = {
        "heading": "Request forwarded" if forwarded else "New request assigned",
        "action_text": "forwarded" if forwarded else "assigned",
        "recipient_name": target_user.name,
        "request_id": payload.get("request_id"),
        "type": str(payload.get("type", "")).upper(),
        "title": payload.get("title", ""),
        "description": payload.get("description", ""),
        "urgency": str(payload.get("urgency", "")).upper(),
        "urgency_color": URGENCY_COLORS.get(str(payload.get("urgency", "")).lower(), "#6b7280"),
        "created_by_label": "Originally created by" if forwarded else "Created by",
        "created_by_name": created_by.get("name", ""),
        "created_by_email": created_by.get("email", ""),
        "forwarded_by_block": _forwarded_by_block(payload),
        "request_url": f"{base_url}/requests/{escape(str(payload.get('request_id')))}",
    }

    try:
        return EmailService.send_from_template(
            to_email=target_user.email,
            to_name=target_user.name,
            template_name="request_forwarded" if forwarded else "request_assigned",
            context=context,
        )
    except Exception:
        logger.warning(
            "Assignment notification failed for request %s — main flow unaffected",
            payload.get("request_id"), exc_info=True,
        )
        return False
