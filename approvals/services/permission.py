"""
Permission Evaluator — who may act on, forward or view a request.

Role ownership and direct assignment are equally authoritative: matching
whichever is set grants write access. Admins may act on anything open.

Usage:
    from approvals.services.permission import can_act, check_can_act

    if can_act(req, user):
        ...
    check_can_forward(req, user)   # raises ForbiddenError
"""

from approvals.core.exceptions import ForbiddenError
from approvals.models.request import ApprovalHistory, OPEN_STATUSES


def is_open(request) -> bool:
    """True while the request still accepts a decision."""
    return request.status in OPEN_STATUSES


def is_owner(request, user) -> bool:
    """Role owner, directly assigned user or admin, regardless of status."""
    if user is None:
        return False
    if request.current_approver_role and request.current_approver_role == user.role:
        return True
    if request.assigned_to_user_id is not None and request.assigned_to_user_id == user.id:
        return True
    return user.role == "admin"


def is_requester(request, user) -> bool:
    return user is not None and request.requester_id == user.id


def can_act(request, user) -> bool:
    """May ``user`` approve or reject ``request`` right now?"""
    return is_open(request) and is_owner(request, user)


def can_forward(request, user) -> bool:
    """Owners may re-route; so may the original requester."""
    return is_owner(request, user) or is_requester(request, user)


def can_view(request, user) -> bool:
    """Requester, owner, admin, or anyone who already appears in the ledger."""
    if user is None:
        return False
    if is_requester(request, user) or is_owner(request, user):
        return True
    touched = (
        ApprovalHistory.query
        .filter(ApprovalHistory.request_id == request.id)
        .filter(
            (ApprovalHistory.actor_user_id == user.id)
            | (ApprovalHistory.forwarded_to_user_id == user.id)
        )
        .first()
    )
    return touched is not None


def check_can_act(request, user) -> None:
    if not can_act(request, user):
        raise ForbiddenError(getattr(user, "id", None), "decide", request.id)


def check_can_forward(request, user) -> None:
    if not can_forward(request, user):
        raise ForbiddenError(getattr(user, "id", None), "forward", request.id)


def check_can_view(request, user) -> None:
    if not can_view(request, user):
        raise ForbiddenError(getattr(user, "id", None), "view", request.id)
