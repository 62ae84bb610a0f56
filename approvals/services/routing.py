"""
Routing Policy — default ownership and escalation tables.

Pure functions, no I/O. Both are total: unknown input yields ``None``.

``next_approver`` is advisory only. Approval ends the active-ownership
chain; continuing a workflow is an explicit forward.

Usage:
    from approvals.services.routing import initial_approver

    role = initial_approver("purchase")   # "finance"
"""

# Request type → first approver role
INITIAL_APPROVER = {
    "purchase": "finance",
    "leave": "hr",
    "certificate": "hr",
    "support": "it",
    "maintenance": "general_services",
    "custom": "management",
}

# Department roles escalate to management
_ESCALATION = {
    "finance": "management",
    "it": "management",
    "hr": "management",
    "general_services": "management",
}


def initial_approver(request_type: str | None) -> str | None:
    """Return the role that owns a freshly created request of this type."""
    return INITIAL_APPROVER.get(request_type)


def next_approver(current_role: str | None, request_type: str | None) -> str | None:
    """Return the role a request would escalate to after ``current_role``.

    ``management`` escalates to ``executive`` for purchases only;
    ``executive`` ends the flow.
    """
    if not current_role:
        return None
    if current_role == "management":
        return "executive" if request_type == "purchase" else None
    return _ESCALATION.get(current_role)
