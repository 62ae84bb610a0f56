"""
Permission evaluator tests.

Tests cover:
  - can_act: open + (role owner | assignee | admin)
  - can_forward: owner or requester
  - can_view: requester, owner, ledger participants, admin
"""
import pytest

from approvals.core.exceptions import ForbiddenError
from approvals.models import db
from approvals.models.request import Request
from approvals.services import history
from approvals.services.permission import (
    can_act,
    can_forward,
    can_view,
    check_can_act,
    check_can_forward,
    check_can_view,
    is_owner,
)


def _request(requester, role=None, assignee=None, status="pending"):
    req = Request(
        type="purchase", title="Laptop", description="New laptop",
        status=status, requester_id=requester.id,
        current_approver_role=role,
        assigned_to_user_id=assignee.id if assignee else None,
    )
    db.session.add(req)
    db.session.commit()
    return req


class TestCanAct:
    def test_role_owner_can_act(self, make_user):
        req = _request(make_user("employee"), role="finance")
        assert can_act(req, make_user("finance"))

    def test_other_role_cannot_act(self, make_user):
        req = _request(make_user("employee"), role="finance")
        assert not can_act(req, make_user("hr"))

    def test_assignee_can_act(self, make_user):
        assignee = make_user("employee")
        req = _request(make_user("employee"), assignee=assignee)
        assert can_act(req, assignee)

    def test_admin_can_act_on_anything_open(self, make_user):
        req = _request(make_user("employee"), role="finance")
        assert can_act(req, make_user("admin"))

    @pytest.mark.parametrize("status", ["approved", "rejected", "resolved", "closed"])
    def test_nobody_acts_on_terminal(self, make_user, status):
        req = _request(make_user("employee"), role="finance", status=status)
        assert not can_act(req, make_user("finance"))
        assert not can_act(req, make_user("admin"))

    def test_in_progress_is_open(self, make_user):
        req = _request(make_user("employee"), role="finance", status="in_progress")
        assert can_act(req, make_user("finance"))

    def test_requester_alone_cannot_act(self, make_user):
        requester = make_user("employee")
        req = _request(requester, role="finance")
        assert not can_act(req, requester)

    def test_anonymous(self, make_user):
        req = _request(make_user("employee"), role="finance")
        assert not can_act(req, None)
        assert not is_owner(req, None)

    def test_check_raises_forbidden(self, make_user):
        req = _request(make_user("employee"), role="finance")
        with pytest.raises(ForbiddenError) as exc:
            check_can_act(req, make_user("hr"))
        assert exc.value.action == "decide"
        assert exc.value.request_id == req.id


class TestCanForward:
    def test_requester_may_forward_own_request(self, make_user):
        requester = make_user("employee")
        req = _request(requester, role="finance")
        assert can_forward(req, requester)
        check_can_forward(req, requester)

    def test_owner_may_forward(self, make_user):
        req = _request(make_user("employee"), role="it")
        assert can_forward(req, make_user("it"))

    def test_stranger_may_not_forward(self, make_user):
        req = _request(make_user("employee"), role="it")
        stranger = make_user("hr")
        assert not can_forward(req, stranger)
        with pytest.raises(ForbiddenError):
            check_can_forward(req, stranger)


class TestCanView:
    def test_requester_owner_admin(self, make_user):
        requester = make_user("employee")
        req = _request(requester, role="finance")
        assert can_view(req, requester)
        assert can_view(req, make_user("finance"))
        assert can_view(req, make_user("admin"))

    def test_stranger_cannot_view(self, make_user):
        req = _request(make_user("employee"), role="finance")
        stranger = make_user("hr")
        assert not can_view(req, stranger)
        with pytest.raises(ForbiddenError):
            check_can_view(req, stranger)

    def test_past_actor_keeps_view(self, make_user):
        req = _request(make_user("employee"), role="hr", status="approved")
        past_actor = make_user("finance")
        history.append_entry(db.session, request_id=req.id, actor_id=past_actor.id,
                             action="forwarded", comment="Forwarded: x",
                             previous_status="pending", new_status="pending",
                             forwarded_to_role="hr")
        db.session.commit()
        assert can_view(req, past_actor)

    def test_past_forward_target_keeps_view(self, make_user):
        requester = make_user("employee")
        req = _request(requester, role="finance")
        target = make_user("employee")
        history.append_entry(db.session, request_id=req.id, actor_id=requester.id,
                             action="forwarded", comment="Forwarded: x",
                             forwarded_to_user_id=target.id)
        db.session.commit()
        assert can_view(req, target)
