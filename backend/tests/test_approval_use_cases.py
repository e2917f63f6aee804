from __future__ import annotations

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from opstracker.domain_errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from opstracker.models import LeaveRequest, Material, MaterialRequisition, Notification, Site, User
from opstracker.use_cases.approvals import (
    create_leave_request_use_case,
    create_requisition_use_case,
    decide_leave_request_use_case,
    decide_requisition_use_case,
)


class _QueryStub:
    def __init__(self, *, first_result=None, all_result=None):
        self._first_result = first_result
        self._all_result = all_result or []

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result

    def all(self):
        return list(self._all_result)


class _SessionStub:
    def __init__(self, *, leave=None, requisition=None):
        self._results = {
            LeaveRequest: leave,
            MaterialRequisition: requisition,
            Site: SimpleNamespace(id=5),
            Material: SimpleNamespace(id=3, name="Cement"),
        }
        self.approvers = [SimpleNamespace(id=1, role="admin"), SimpleNamespace(id=2, role="manager")]
        self.added = []
        self.commit_calls = 0
        self.rollback_calls = 0

    def query(self, model):
        if model is User:
            return _QueryStub(all_result=self.approvers)
        if model not in self._results:
            raise AssertionError(f"Unexpected query model: {model}")
        return _QueryStub(first_result=self._results[model])

    def add(self, obj):
        self.added.append(obj)

    def flush(self):
        for index, obj in enumerate(self.added, start=1):
            if getattr(obj, "id", None) is None:
                obj.id = index

    def commit(self):
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1

    def notifications(self):
        return [item for item in self.added if isinstance(item, Notification)]


def _pending_leave():
    return SimpleNamespace(id=8, user_id=42, status="pending", approved_by=None, approved_at=None)


def _manager():
    return SimpleNamespace(id=2, role="manager", username="manager")


def _worker():
    return SimpleNamespace(id=42, role="worker", username="worker1")


def test_manager_approves_leave_and_requester_is_told() -> None:
    leave = _pending_leave()
    db = _SessionStub(leave=leave)

    decided = decide_leave_request_use_case(db=db, leave_request_id=8, status="approved", current_user=_manager())

    assert decided.status == "approved"
    assert decided.approved_by == 2
    assert decided.approved_at is not None
    notifications = db.notifications()
    assert len(notifications) == 1
    assert notifications[0].user_id == 42
    assert notifications[0].type == "attendance"
    assert notifications[0].message == "Your leave request has been approved"
    assert db.commit_calls == 1


def test_decided_leave_cannot_be_decided_again() -> None:
    leave = _pending_leave()
    leave.status = "rejected"
    db = _SessionStub(leave=leave)

    with pytest.raises(ConflictError) as exc:
        decide_leave_request_use_case(db=db, leave_request_id=8, status="approved", current_user=_manager())

    assert exc.value.code == "REQUEST_ALREADY_DECIDED"
    assert leave.status == "rejected"
    assert db.notifications() == []


def test_worker_cannot_decide_leave() -> None:
    leave = _pending_leave()
    db = _SessionStub(leave=leave)

    with pytest.raises(AuthorizationError):
        decide_leave_request_use_case(db=db, leave_request_id=8, status="approved", current_user=_worker())

    assert leave.status == "pending"


def test_decision_must_be_approved_or_rejected() -> None:
    db = _SessionStub(leave=_pending_leave())

    with pytest.raises(ValidationError):
        decide_leave_request_use_case(db=db, leave_request_id=8, status="pending", current_user=_manager())


def test_missing_leave_request_is_not_found() -> None:
    db = _SessionStub(leave=None)

    with pytest.raises(NotFoundError):
        decide_leave_request_use_case(db=db, leave_request_id=99, status="approved", current_user=_manager())


def test_leave_request_alerts_every_approver() -> None:
    db = _SessionStub()

    leave = create_leave_request_use_case(
        db=db,
        leave_type="sick",
        start_date=date(2026, 3, 2),
        end_date=date(2026, 3, 4),
        current_user=_worker(),
    )

    assert leave.status == "pending"
    assert leave.user_id == 42
    assert sorted(item.user_id for item in db.notifications()) == [1, 2]
    assert db.notifications()[0].message == "New leave request from worker1"


def test_leave_request_end_before_start_is_rejected() -> None:
    db = _SessionStub()

    with pytest.raises(ValidationError):
        create_leave_request_use_case(
            db=db,
            leave_type="annual",
            start_date=date(2026, 3, 4),
            end_date=date(2026, 3, 2),
            current_user=_worker(),
        )

    assert db.added == []


def test_requisition_alerts_approvers_with_quantity_and_material() -> None:
    db = _SessionStub()

    requisition = create_requisition_use_case(
        db=db,
        site_id=5,
        material_id=3,
        quantity=Decimal("20.00"),
        current_user=_worker(),
    )

    assert requisition.status == "pending"
    assert requisition.requested_by == 42
    messages = {item.message for item in db.notifications()}
    assert messages == {"New material requisition: 20 Cement"}
    assert len(db.notifications()) == 2


def test_approving_requisition_notifies_requester() -> None:
    requisition = SimpleNamespace(id=4, requested_by=42, status="pending", notes=None)
    db = _SessionStub(requisition=requisition)

    decide_requisition_use_case(
        db=db,
        requisition_id=4,
        status="rejected",
        notes="Over budget",
        current_user=_manager(),
    )

    assert requisition.status == "rejected"
    assert requisition.approved_by == 2
    assert requisition.notes == "Over budget"
    assert [item.user_id for item in db.notifications()] == [42]
