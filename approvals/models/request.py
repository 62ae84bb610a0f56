"""
Request Approval Workflow
Request domain models.

Models:
    - Request: the routed item, its status and its current owner
    - ApprovalHistory: append-only ledger, one row per mutating operation
    - Attachment: file metadata owned by a request
"""

from datetime import datetime, timezone

from approvals.models import db


# ── Constants ────────────────────────────────────────────────────────────────

REQUEST_TYPES = {"purchase", "leave", "support", "certificate", "maintenance", "custom"}

URGENCY_LEVELS = {"low", "medium", "high"}
DEFAULT_URGENCY = "medium"

# Sort key: high first
URGENCY_PRIORITY = {"high": 1, "medium": 2, "low": 3}

REQUEST_STATUSES = ("pending", "in_progress", "approved", "rejected", "resolved", "closed")
OPEN_STATUSES = frozenset({"pending", "in_progress"})

HISTORY_ACTIONS = {"created", "forwarded", "approved", "rejected", "commented"}


def _now():
    return datetime.now(timezone.utc)


class Request(db.Model):
    """
    A request routed to an approver role or an individual user.

    The active owner is ``current_approver_role`` or ``assigned_to_user_id``;
    create and forward set one and clear the other.
    """

    __tablename__ = "requests"
    __table_args__ = (
        db.Index("idx_requests_requester", "requester_id"),
        db.Index("idx_requests_type", "type"),
        db.Index("idx_requests_status", "status"),
        db.Index("idx_requests_current_approver", "current_approver_role"),
        db.Index("idx_requests_assigned_to", "assigned_to_user_id"),
        db.CheckConstraint(
            "status IN (" + ",".join(f"'{s}'" for s in REQUEST_STATUSES) + ")",
            name="ck_requests_status",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    urgency = db.Column(db.String(10), nullable=False, default=DEFAULT_URGENCY)
    status = db.Column(db.String(20), nullable=False, default="pending")

    requester_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    current_approver_role = db.Column(db.String(30), nullable=True)
    assigned_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    custom_flow = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    requester = db.relationship("User", foreign_keys=[requester_id])
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])
    history = db.relationship(
        "ApprovalHistory",
        back_populates="request",
        order_by="ApprovalHistory.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="dynamic",
    )
    attachments = db.relationship(
        "Attachment",
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="dynamic",
    )

    def to_dict(self, last_comment=None):
        d = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "reason": self.reason,
            "urgency": self.urgency,
            "status": self.status,
            "requester_id": self.requester_id,
            "current_approver_role": self.current_approver_role,
            "assigned_to_user_id": self.assigned_to_user_id,
            "custom_flow": bool(self.custom_flow),
            "requester": self.requester.summary() if self.requester else None,
            "assigned_to": self.assigned_to.summary() if self.assigned_to else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if last_comment is not None:
            d["last_comment"] = last_comment
        return d

    def __repr__(self):
        return f"<Request {self.id}: {self.type} [{self.status}]>"


class ApprovalHistory(db.Model):
    """
    Immutable ledger entry.

    ``previous_status``/``new_status`` are null for pure comments;
    ``forwarded_to_*`` carry the resulting ownership on create and forward.
    """

    __tablename__ = "approval_history"
    __table_args__ = (
        db.Index("idx_approval_history_request", "request_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False,
    )
    actor_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    action = db.Column(db.String(20), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=True)
    forwarded_to_role = db.Column(db.String(30), nullable=True)
    forwarded_to_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now, nullable=False)

    request = db.relationship("Request", back_populates="history")
    actor = db.relationship("User", foreign_keys=[actor_user_id])
    forwarded_to_user = db.relationship("User", foreign_keys=[forwarded_to_user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "actor_user_id": self.actor_user_id,
            "user_name": self.actor.name if self.actor else None,
            "user_role": self.actor.role if self.actor else None,
            "action": self.action,
            "comment": self.comment,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "forwarded_to_role": self.forwarded_to_role,
            "forwarded_to_user_id": self.forwarded_to_user_id,
            "forwarded_to_user_name": self.forwarded_to_user.name if self.forwarded_to_user else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ApprovalHistory {self.id}: request={self.request_id} {self.action}>"


class Attachment(db.Model):
    __tablename__ = "attachments"
    __table_args__ = (
        db.Index("idx_attachments_request", "request_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.Integer, db.ForeignKey("requests.id", ondelete="CASCADE"), nullable=False,
    )
    filename = db.Column(db.String(300), nullable=False)
    original_filename = db.Column(db.String(300), nullable=False)
    mime_type = db.Column(db.String(150), nullable=False)
    size = db.Column(db.Integer, nullable=False)
    path = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    request = db.relationship("Request", back_populates="attachments")

    def to_dict(self):
        return {
            "id": self.id,
            "request_id": self.request_id,
            "filename": self.filename,
            "original_filename": self.original_filename,
            "mime_type": self.mime_type,
            "size": self.size,
            "path": self.path,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
