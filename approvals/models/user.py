"""
User model — identity referenced by requests and the approval ledger.

Users are created at registration, mutated only by confirmation or
administrative edit, and never deleted in the normal flow.
"""

from datetime import datetime, timezone

from approvals.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ROLES = {
    "employee",
    "it",
    "hr",
    "finance",
    "management",
    "executive",
    "general_services",
    "admin",
}

# Roles a user may pick when registering (admin is granted administratively)
SELF_SERVICE_ROLES = ROLES - {"admin"}

ADMIN_ROLE = "admin"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(30), nullable=False, default="employee", index=True)
    password_hash = db.Column(db.String(256))
    is_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    confirmation_token = db.Column(db.String(128), index=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_admin(self):
        return self.role == ADMIN_ROLE

    def summary(self):
        """Compact form embedded in request / history payloads."""
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_confirmed": self.is_confirmed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
