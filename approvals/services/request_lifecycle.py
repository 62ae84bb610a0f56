"""
Request Lifecycle Engine — create, decide and forward requests.

Every mutation runs as one transaction: the request row change and its
ledger entry are flushed together and committed once. Decide and forward
guard the row update with a compare-and-set on the status and owner observed
when the request was read, so a concurrent actor that committed first turns the
second call into a ConflictError instead of a silent overwrite.

Assignment targets are decided once at the boundary:

    DefaultRouting()   → routing table picks the approver role
    ToRole("hr")       → explicit role owner
    ToUser(12)         → explicit individual owner

Approval never escalates automatically; continuing a decided workflow is an
explicit forward.

Usage:
    from approvals.services.request_lifecycle import RequestLifecycle, ToRole

    engine = RequestLifecycle()
    req = engine.create({"type": "purchase", "title": "...", "description": "..."}, user)
    req = engine.decide(req.id, approver, "approve", comment="ok")
    req = engine.forward(req.id, approver, "needs sign-off", ToRole("management"))
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from approvals.core.exceptions import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
)
from approvals.models import db
from approvals.models.request import (
    DEFAULT_URGENCY,
    OPEN_STATUSES,
    REQUEST_TYPES,
    URGENCY_LEVELS,
    URGENCY_PRIORITY,
    Request,
)
from approvals.models.user import ROLES, User
from approvals.services import history as ledger
from approvals.services.attachment_service import list_for as list_attachments
from approvals.services.notification import build_assignment_payload, notify_assignment
from approvals.services.permission import (
    can_act,
    can_forward,
    check_can_act,
    check_can_forward,
    check_can_view,
    is_open,
)
from approvals.services.routing import initial_approver

logger = logging.getLogger(__name__)

# decision → resulting status / ledger action
DECISIONS = {
    "approve": "approved",
    "reject": "rejected",
}

TITLE_MAX_LENGTH = 300


# ═════════════════════════════════════════════════════════════════════════════
# Assignment targets
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DefaultRouting:
    """Route by request type (see routing.initial_approver)."""


@dataclass(frozen=True)
class ToRole:
    role: str


@dataclass(frozen=True)
class ToUser:
    user_id: int


AssignmentTarget = DefaultRouting | ToRole | ToUser


def parse_assignment_target(user_id=None, role=None, *, allow_default=True) -> AssignmentTarget:
    """
    Turn the optional ``user_id`` / ``role`` body fields into a target.

    Raises:
        ValidationError: both supplied, a malformed value, or neither
            supplied when ``allow_default`` is False.
    """
    has_user = user_id not in (None, "")
    has_role = role not in (None, "")

    if has_user and has_role:
        raise ValidationError(
            "Specify either a user or a role, not both",
            details={"target": "user and role are mutually exclusive"},
        )

    if has_user:
        if isinstance(user_id, bool):
            raise ValidationError("Invalid user id", details={"user_id": "must be an integer"})
        try:
            return ToUser(int(user_id))
        except (TypeError, ValueError):
            raise ValidationError("Invalid user id", details={"user_id": "must be an integer"})

    if has_role:
        if not isinstance(role, str) or role not in ROLES:
            raise ValidationError(
                f"Unknown role: {role}",
                details={"role": f"must be one of {sorted(ROLES)}"},
            )
        return ToRole(role)

    if not allow_default:
        raise ValidationError(
            "A target user or role is required",
            details={"target": "required"},
        )
    return DefaultRouting()


# ═════════════════════════════════════════════════════════════════════════════
# Input validation
# ═════════════════════════════════════════════════════════════════════════════

def _clean_text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _ownership_snapshot(req: Request) -> dict:
    """Columns a decide / forward must still find unchanged when it writes."""
    return {
        "status": req.status,
        "current_approver_role": req.current_approver_role,
        "assigned_to_user_id": req.assigned_to_user_id,
    }


def validate_create_input(data: dict) -> dict:
    """Check the create body and return the cleaned fields."""
    errors = {}

    req_type = data.get("type")
    if not isinstance(req_type, str) or req_type not in REQUEST_TYPES:
        errors["type"] = f"must be one of {sorted(REQUEST_TYPES)}"

    title = _clean_text(data.get("title"))
    if not title:
        errors["title"] = "required"
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = f"must be ≤ {TITLE_MAX_LENGTH} characters"

    description = _clean_text(data.get("description"))
    if not description:
        errors["description"] = "required"

    urgency = data.get("urgency") or DEFAULT_URGENCY
    if not isinstance(urgency, str) or urgency not in URGENCY_LEVELS:
        errors["urgency"] = f"must be one of {sorted(URGENCY_LEVELS)}"

    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        errors["reason"] = "must be a string"

    if errors:
        raise ValidationError("Invalid request data", details=errors)

    return {
        "type": req_type,
        "title": title,
        "description": description,
        "urgency": urgency,
        "reason": _clean_text(reason) or None,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════════

class RequestLifecycle:
    """
    Owns request creation and status transitions.

    Args:
        session: SQLAlchemy session; defaults to the app-bound ``db.session``.
        notifier: ``(target_user, payload) -> bool``; defaults to
            ``notification.notify_assignment``.
    """

    def __init__(self, session=None, notifier=None):
        self.session = session if session is not None else db.session
        self.notifier = notifier or notify_assignment

    # ── Create ────────────────────────────────────────────────────────────

    def create(self, data: dict, requester: User) -> Request:
        """
        Create a request with default routing or an explicit assignment.

        Body keys: type, title, description, reason?, urgency?,
        assigned_to_user_id?, assigned_to_role?

        Raises:
            ValidationError, NotFoundError (unknown assignee), DependencyError
        """
        fields = validate_create_input(data)
        target = parse_assignment_target(
            data.get("assigned_to_user_id"), data.get("assigned_to_role"),
        )

        assignee = None
        if isinstance(target, ToUser):
            assignee = self._get_user(target.user_id)
            approver_role, assigned_user_id, custom_flow = None, assignee.id, True
        elif isinstance(target, ToRole):
            approver_role, assigned_user_id, custom_flow = target.role, None, True
        else:
            approver_role, assigned_user_id, custom_flow = initial_approver(fields["type"]), None, False
            if approver_role is None:
                logger.warning("No default approver for type=%s; request created ownerless",
                               fields["type"])

        try:
            req = Request(
                type=fields["type"],
                title=fields["title"],
                description=fields["description"],
                reason=fields["reason"],
                urgency=fields["urgency"],
                status="pending",
                requester_id=requester.id,
                current_approver_role=approver_role,
                assigned_to_user_id=assigned_user_id,
                custom_flow=custom_flow,
            )
            self.session.add(req)
            self.session.flush()

            ledger.append_entry(
                self.session,
                request_id=req.id,
                actor_id=requester.id,
                action="created",
                comment="Request created with custom flow" if custom_flow else "Request created",
                new_status="pending",
                forwarded_to_role=approver_role,
                forwarded_to_user_id=assigned_user_id,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self._rollback("create", exc)

        logger.info(
            "Request %s created by user %s: type=%s role=%s assignee=%s custom_flow=%s",
            req.id, requester.id, req.type, approver_role, assigned_user_id, custom_flow,
        )

        if assignee is not None:
            self._notify(assignee, req)
        return req

    # ── Decide ────────────────────────────────────────────────────────────

    def decide(self, request_id: int, actor: User, decision: str, comment: str | None = None) -> Request:
        """
        Approve or reject an open request. The approver role is cleared either
        way; a direct assignment stays as the record of who decided.

        Raises:
            ValidationError: unknown decision.
            NotFoundError: no such request.
            ConflictError: request already decided, or a concurrent
                decision committed first.
            ForbiddenError: actor does not own the request.
            DependencyError: persistence failure (nothing applied).
        """
        new_status = DECISIONS.get(decision) if isinstance(decision, str) else None
        if new_status is None:
            raise ValidationError(
                f"Unknown decision: {decision}",
                details={"decision": f"must be one of {sorted(DECISIONS)}"},
            )

        req = self._load(request_id)
        snapshot = _ownership_snapshot(req)
        observed = snapshot["status"]
        if not is_open(req):
            raise ConflictError(request_id, decision, observed)
        check_can_act(req, actor)

        comment = _clean_text(comment) or None
        try:
            self._compare_and_set(
                request_id, snapshot, decision,
                status=new_status,
                current_approver_role=None,
            )
            ledger.append_entry(
                self.session,
                request_id=request_id,
                actor_id=actor.id,
                action=new_status,
                comment=comment,
                previous_status=observed,
                new_status=new_status,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self._rollback("decide", exc)

        logger.info("Request %s %s by user %s (was %s)", request_id, new_status, actor.id, observed)
        return self._load(request_id)

    # ── Forward ───────────────────────────────────────────────────────────

    def forward(self, request_id: int, actor: User, comment: str, target: AssignmentTarget) -> Request:
        """
        Re-route a request to a role or a user and reopen it as pending.

        The requester may forward their own request even without owning it.
        Any prior status is reopened, which is how a decided workflow is
        continued by hand.

        Raises:
            ValidationError, NotFoundError, ForbiddenError, ConflictError,
            DependencyError
        """
        if not isinstance(target, (ToRole, ToUser)):
            raise ValidationError(
                "A target user or role is required",
                details={"target": "required"},
            )
        if isinstance(target, ToRole) and (not isinstance(target.role, str) or target.role not in ROLES):
            raise ValidationError(
                f"Unknown role: {target.role}",
                details={"role": f"must be one of {sorted(ROLES)}"},
            )
        comment = _clean_text(comment)
        if not comment:
            raise ValidationError("comment is required", details={"comment": "required"})

        req = self._load(request_id)
        snapshot = _ownership_snapshot(req)
        observed = snapshot["status"]
        check_can_forward(req, actor)

        assignee = None
        if isinstance(target, ToUser):
            assignee = self._get_user(target.user_id)
            new_role, new_user_id = None, assignee.id
        else:
            new_role, new_user_id = target.role, None

        try:
            self._compare_and_set(
                request_id, snapshot, "forward",
                status="pending",
                current_approver_role=new_role,
                assigned_to_user_id=new_user_id,
                custom_flow=True,
            )
            ledger.append_entry(
                self.session,
                request_id=request_id,
                actor_id=actor.id,
                action="forwarded",
                comment=f"Forwarded: {comment}",
                previous_status=observed,
                new_status="pending",
                forwarded_to_role=new_role,
                forwarded_to_user_id=new_user_id,
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self._rollback("forward", exc)

        logger.info(
            "Request %s forwarded by user %s to role=%s user=%s (was %s)",
            request_id, actor.id, new_role, new_user_id, observed,
        )

        req = self._load(request_id)
        if assignee is not None:
            self._notify(assignee, req, is_forwarded=True, forwarded_by=actor)
        return req

    # ── Reads ─────────────────────────────────────────────────────────────

    def get(self, request_id: int) -> Request:
        return self._load(request_id)

    def get_view(self, request_id: int, viewer: User) -> dict:
        """Full request view: row, attachments, ledger and derived fields."""
        req = self._load(request_id)
        check_can_view(req, viewer)
        data = req.to_dict()
        data["attachments"] = [a.to_dict() for a in list_attachments(request_id)]
        data["history"] = [h.to_dict() for h in ledger.history_for(request_id, session=self.session)]
        data["last_comment"] = ledger.last_comment(request_id, session=self.session)
        data["can_act"] = can_act(req, viewer)
        data["can_forward"] = can_forward(req, viewer)
        return data

    def history(self, request_id: int, viewer: User) -> list:
        req = self._load(request_id)
        check_can_view(req, viewer)
        return ledger.history_for(request_id, session=self.session)

    def list_for_requester(self, user_id: int) -> list[dict]:
        """The caller's own requests, newest first, with their last comment."""
        rows = self.session.execute(
            db.select(Request)
            .where(Request.requester_id == user_id)
            .order_by(Request.created_at.desc(), Request.id.desc())
        ).scalars().all()
        comments = ledger.last_comments([r.id for r in rows], session=self.session)
        return [r.to_dict(last_comment=comments.get(r.id)) for r in rows]

    def list_pending_for(self, user: User) -> list[Request]:
        """Open requests owned by the user's role or assigned to the user.

        Ordered by urgency (high first), then oldest first.
        """
        urgency_rank = db.case(URGENCY_PRIORITY, value=Request.urgency, else_=len(URGENCY_PRIORITY) + 1)
        return list(
            self.session.execute(
                db.select(Request)
                .where(Request.status.in_(OPEN_STATUSES))
                .where(
                    (Request.current_approver_role == user.role)
                    | (Request.assigned_to_user_id == user.id)
                )
                .order_by(urgency_rank, Request.created_at.asc(), Request.id.asc())
            ).scalars()
        )

    def list_all(self) -> list[Request]:
        return list(
            self.session.execute(
                db.select(Request).order_by(Request.created_at.desc(), Request.id.desc())
            ).scalars()
        )

    # ── Internals ─────────────────────────────────────────────────────────

    def _load(self, request_id: int) -> Request:
        """Read the row from the store, discarding any stale in-session copy."""
        req = self.session.get(Request, request_id, populate_existing=True)
        if req is None:
            raise NotFoundError("Request", request_id)
        return req

    def _get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def _compare_and_set(self, request_id: int, snapshot: dict, action: str, **values) -> None:
        """UPDATE the row only if status and owner still match ``snapshot``."""
        conditions = [Request.id == request_id]
        for column_name, observed in snapshot.items():
            column = getattr(Request, column_name)
            conditions.append(column.is_(None) if observed is None else column == observed)

        values["updated_at"] = datetime.now(timezone.utc)
        result = self.session.execute(
            db.update(Request)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            current = self.session.execute(
                db.select(Request.status).where(Request.id == request_id)
            ).scalar()
            logger.warning(
                "Concurrent update on request %s: expected %s, found status=%s",
                request_id, snapshot, current,
            )
            raise ConflictError(request_id, action, current)

    def _rollback(self, operation: str, exc: Exception):
        self.session.rollback()
        logger.error("Persistence failure during %s: %s", operation, exc, exc_info=True)
        raise DependencyError(operation, exc) from exc

    def _notify(self, assignee: User, req: Request, *, is_forwarded=False, forwarded_by=None) -> None:
        """Best-effort assignment email; failures are logged and dropped."""
        try:
            payload = build_assignment_payload(req, is_forwarded=is_forwarded, forwarded_by=forwarded_by)
            if not self.notifier(assignee, payload):
                logger.warning("Assignment notification not delivered: request=%s user=%s",
                               req.id, assignee.id)
        except Exception:
            logger.warning("Assignment notification failed: request=%s user=%s",
                           req.id, assignee.id, exc_info=True)
