"""
Approval History Ledger — append-only audit trail per request.

The ledger is the source of truth for the "last decision comment" shown on
finalized requests. That value is a read-time projection, cached in-process
per request and invalidated on every append for the same request.

Usage:
    from approvals.services.history import append_entry, history_for, last_comment

    append_entry(session, request_id=7, actor_id=3, action="approved",
                 comment="ok", previous_status="pending", new_status="approved")
    entries = history_for(7)
"""

import logging
import threading
import time

from sqlalchemy import event
from sqlalchemy.orm import Session

from approvals.models import db
from approvals.models.request import ApprovalHistory, HISTORY_ACTIONS

logger = logging.getLogger(__name__)

# ── last_comment cache ───────────────────────────────────────────────────

# Entries are dropped again once the appending transaction commits or rolls
# back; the TTL bounds staleness across worker processes.

CACHE_TTL = 60  # seconds

_MISSING = object()
_PENDING_KEY = "ledger_pending_invalidation"
_last_comment_cache: dict[int, tuple[float, str | None]] = {}
_cache_lock = threading.Lock()


def _get_cached(request_id: int):
    with _cache_lock:
        entry = _last_comment_cache.get(request_id)
        if entry is None:
            return _MISSING
        cached_at, value = entry
        if time.time() - cached_at > CACHE_TTL:
            del _last_comment_cache[request_id]
            return _MISSING
        return value


def _set_cached(request_id: int, value: str | None) -> None:
    with _cache_lock:
        _last_comment_cache[request_id] = (time.time(), value)


def invalidate(request_id: int) -> None:
    """Drop the cached last comment for one request."""
    with _cache_lock:
        _last_comment_cache.pop(request_id, None)


def invalidate_all_cache() -> None:
    with _cache_lock:
        _last_comment_cache.clear()


@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_rollback")
def _invalidate_pending(session) -> None:
    """Readers between flush and commit may have cached the old comment."""
    for request_id in session.info.pop(_PENDING_KEY, ()):
        invalidate(request_id)


# ── Append ───────────────────────────────────────────────────────────────

def append_entry(
    session,
    *,
    request_id: int,
    actor_id: int,
    action: str,
    comment: str | None = None,
    previous_status: str | None = None,
    new_status: str | None = None,
    forwarded_to_role: str | None = None,
    forwarded_to_user_id: int | None = None,
) -> ApprovalHistory:
    """
    Append a single ledger row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) ApprovalHistory instance.
    """
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action: {action}")

    entry = ApprovalHistory(
        request_id=request_id,
        actor_user_id=actor_id,
        action=action,
        comment=comment or None,
        previous_status=previous_status,
        new_status=new_status,
        forwarded_to_role=forwarded_to_role,
        forwarded_to_user_id=forwarded_to_user_id,
    )
    session.add(entry)
    session.flush()
    invalidate(request_id)
    session.info.setdefault(_PENDING_KEY, set()).add(request_id)
    logger.debug("Ledger append: request=%s action=%s actor=%s", request_id, action, actor_id)
    return entry


# ── Read ─────────────────────────────────────────────────────────────────

def history_for(request_id: int, session=None) -> list[ApprovalHistory]:
    """Chronological audit trail (``created_at`` ascending, ties by id)."""
    session = session or db.session
    return list(
        session.execute(
            db.select(ApprovalHistory)
            .where(ApprovalHistory.request_id == request_id)
            .order_by(ApprovalHistory.created_at.asc(), ApprovalHistory.id.asc())
        ).scalars()
    )


def _query_last_comment(session, request_id: int) -> str | None:
    return session.execute(
        db.select(ApprovalHistory.comment)
        .where(
            ApprovalHistory.request_id == request_id,
            ApprovalHistory.comment.is_not(None),
        )
        .order_by(ApprovalHistory.created_at.desc(), ApprovalHistory.id.desc())
        .limit(1)
    ).scalar()


def last_comment(request_id: int, session=None) -> str | None:
    """Most recent non-null comment on the request, or ``None``."""
    cached = _get_cached(request_id)
    if cached is not _MISSING:
        return cached

    value = _query_last_comment(session or db.session, request_id)
    _set_cached(request_id, value)
    return value


def last_comments(request_ids, session=None) -> dict[int, str | None]:
    """Bulk form of ``last_comment`` for list views."""
    return {rid: last_comment(rid, session=session) for rid in request_ids}
