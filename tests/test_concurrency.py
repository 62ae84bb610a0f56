"""
Concurrent decision tests.

Two approvers act on the same request; the second commit must observe a
ConflictError and leave exactly one decision in the ledger. The race is made
deterministic by running the competing decision from inside the first
caller's permission check, i.e. after it read the request and before its
compare-and-set. The first tests share one session; TestSeparateConnections
runs the competing actor on its own connection to a file-backed database.
"""
import pytest
from sqlalchemy.orm import Session

from approvals.core.exceptions import ConflictError
from approvals.models import db
from approvals.models.request import Request
from approvals.services import history, permission
from approvals.services.request_lifecycle import RequestLifecycle, ToRole


def _interleave(monkeypatch, competing):
    """Run ``competing()`` once, during the next permission check."""
    real_can_act = permission.can_act
    state = {"fired": False}

    def racing_can_act(request, user):
        allowed = real_can_act(request, user)
        if not state["fired"]:
            state["fired"] = True
            competing()
        return allowed

    monkeypatch.setattr(permission, "can_act", racing_can_act)
    return state


class TestConcurrentDecide:
    def test_second_approver_conflicts(self, make_user, monkeypatch):
        engine = RequestLifecycle(notifier=lambda *a: True)
        req = engine.create(
            {"type": "purchase", "title": "Server", "description": "Rack server"},
            make_user("employee"),
        )
        alice = make_user("finance", name="Alice")
        bob = make_user("finance", name="Bob")

        state = _interleave(
            monkeypatch,
            lambda: engine.decide(req.id, bob, "reject", comment="bob was first"),
        )

        with pytest.raises(ConflictError) as exc:
            engine.decide(req.id, alice, "approve", comment="alice too late")

        assert state["fired"]
        assert exc.value.current_status == "rejected"

        db.session.expire_all()
        assert db.session.get(Request, req.id).status == "rejected"
        decisions = [e for e in history.history_for(req.id) if e.action in ("approved", "rejected")]
        assert len(decisions) == 1
        assert decisions[0].actor_user_id == bob.id
        assert history.last_comment(req.id) == "bob was first"

    def test_forward_racing_decide_conflicts(self, make_user, monkeypatch):
        engine = RequestLifecycle(notifier=lambda *a: True)
        requester = make_user("employee")
        finance = make_user("finance")
        req = engine.create(
            {"type": "purchase", "title": "Desk", "description": "Standing desk"},
            requester,
        )

        state = _interleave(
            monkeypatch,
            lambda: engine.forward(req.id, finance, "wrong queue", ToRole("general_services")),
        )

        # Status is still pending after the forward; the owner change alone must conflict
        with pytest.raises(ConflictError) as exc:
            engine.decide(req.id, finance, "approve")
        assert state["fired"]
        assert exc.value.current_status == "pending"

        db.session.expire_all()
        current = db.session.get(Request, req.id)
        assert current.status == "pending"
        assert current.current_approver_role == "general_services"
        assert [e.action for e in history.history_for(req.id)] == ["created", "forwarded"]


class TestSeparateConnections:
    def test_second_approver_conflicts(self, file_db_app, make_user, monkeypatch):
        engine = RequestLifecycle(notifier=lambda *a: True)
        req = engine.create(
            {"type": "purchase", "title": "Laptop", "description": "Replacement laptop"},
            make_user("employee"),
        )
        alice = make_user("finance", name="Alice")
        bob = make_user("finance", name="Bob")

        bob_session = Session(bind=db.engine)
        bob_engine = RequestLifecycle(session=bob_session, notifier=lambda *a: True)

        def bob_decides():
            try:
                bob_engine.decide(req.id, bob, "reject", comment="bob was first")
            finally:
                bob_session.close()

        state = _interleave(monkeypatch, bob_decides)

        with pytest.raises(ConflictError) as exc:
            engine.decide(req.id, alice, "approve", comment="alice too late")

        assert state["fired"]
        assert exc.value.current_status == "rejected"

        db.session.expire_all()
        assert db.session.get(Request, req.id).status == "rejected"
        decisions = [e for e in history.history_for(req.id) if e.action in ("approved", "rejected")]
        assert [(e.action, e.actor_user_id) for e in decisions] == [("rejected", bob.id)]
        assert history.last_comment(req.id) == "bob was first"

    def test_reader_between_flush_and_commit(self, file_db_app, make_user, monkeypatch):
        engine = RequestLifecycle(notifier=lambda *a: True)
        req = engine.create(
            {"type": "purchase", "title": "Chair", "description": "Office chair"},
            make_user("employee"),
        )
        finance = make_user("finance")

        real_append = history.append_entry
        seen = []

        def append_then_read(session, **kwargs):
            entry = real_append(session, **kwargs)
            with Session(bind=db.engine) as reader:
                seen.append(history.last_comment(kwargs["request_id"], session=reader))
            return entry

        monkeypatch.setattr(history, "append_entry", append_then_read)
        engine.decide(req.id, finance, "approve", comment="approved ok")

        # The reader only saw committed data and cached it
        assert seen == ["Request created"]
        assert history.last_comment(req.id) == "approved ok"
