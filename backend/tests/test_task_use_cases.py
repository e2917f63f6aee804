from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from pydantic import ValidationError as PayloadValidationError

from opstracker.domain_errors import AuthorizationError, DomainError, ValidationError
from opstracker.models import Notification, Site, Task, TaskUpdate, User
from opstracker.schemas import TaskProgressCreate
from opstracker.use_cases.tasks import (
    add_task_progress_use_case,
    create_task_use_case,
    update_task_use_case,
)


class _QueryStub:
    def __init__(self, *, first_result=None):
        self._first_result = first_result

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result


class _SessionStub:
    def __init__(self, *, site=None, assignee=None, task=None):
        self._results = {Site: site, User: assignee, Task: task}
        self.added = []
        self.commit_calls = 0
        self.rollback_calls = 0
        self._next_id = 100

    def query(self, model):
        if model not in self._results:
            raise AssertionError(f"Unexpected query model: {model}")
        return _QueryStub(first_result=self._results[model])

    def add(self, obj):
        self.added.append(obj)

    def flush(self):
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = self._next_id
                self._next_id += 1

    def commit(self):
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1


def _user(*, user_id: int, role: str = "worker", is_active: bool = True):
    return SimpleNamespace(id=user_id, role=role, username=f"user{user_id}", is_active=is_active)


def _task(*, assigned_to: int, status: str = "pending", completed_at=None):
    return SimpleNamespace(
        id=11,
        site_id=5,
        title="Pour slab",
        description=None,
        assigned_to=assigned_to,
        status=status,
        priority="urgent",
        completed_at=completed_at,
    )


def test_manager_creates_task_and_assignee_gets_one_task_notification() -> None:
    manager = _user(user_id=1, role="manager")
    worker = _user(user_id=42)
    db = _SessionStub(site=SimpleNamespace(id=5, supervisor_id=3), assignee=worker)

    task = create_task_use_case(
        db=db,
        site_id=5,
        title="Pour slab",
        assigned_to=worker.id,
        current_user=manager,
        priority="urgent",
    )

    assert isinstance(task, Task)
    assert task.status == "pending"
    assert task.priority == "urgent"
    assert task.assigned_by == manager.id
    notifications = [item for item in db.added if isinstance(item, Notification)]
    assert len(notifications) == 1
    assert notifications[0].user_id == 42
    assert notifications[0].type == "task"
    assert notifications[0].is_read is False
    assert notifications[0].related_id == task.id
    assert notifications[0].message == "You have been assigned a new task: Pour slab"
    assert db.commit_calls == 1


def test_worker_cannot_create_tasks() -> None:
    worker = _user(user_id=42)
    db = _SessionStub(site=SimpleNamespace(id=5), assignee=worker)

    with pytest.raises(AuthorizationError) as exc:
        create_task_use_case(db=db, site_id=5, title="Pour slab", assigned_to=42, current_user=worker)

    assert exc.value.http_status == 403
    assert db.added == []
    assert db.commit_calls == 0


def test_create_task_rejects_inactive_assignee() -> None:
    db = _SessionStub(site=SimpleNamespace(id=5), assignee=_user(user_id=42, is_active=False))

    with pytest.raises(ValidationError) as exc:
        create_task_use_case(
            db=db,
            site_id=5,
            title="Pour slab",
            assigned_to=42,
            current_user=_user(user_id=1, role="supervisor"),
        )

    assert exc.value.code == "TASK_ASSIGNEE_INVALID"
    assert exc.value.details == {"errors": [{"field": "assigned_to", "message": "Assignee not found or inactive"}]}


def test_progress_100_completes_task_and_stamps_completed_at() -> None:
    worker = _user(user_id=42)
    task = _task(assigned_to=worker.id, status="in_progress")
    db = _SessionStub(task=task)

    update = add_task_progress_use_case(
        db=db,
        task_id=task.id,
        current_user=worker,
        progress_percentage=100,
        notes="Done",
    )

    assert isinstance(update, TaskUpdate)
    assert update.progress_percentage == 100
    assert update.updated_by == worker.id
    assert task.status == "completed"
    assert task.completed_at is not None
    assert db.commit_calls == 1


def test_partial_progress_leaves_status_alone() -> None:
    worker = _user(user_id=42)
    task = _task(assigned_to=worker.id, status="in_progress")
    db = _SessionStub(task=task)

    add_task_progress_use_case(db=db, task_id=task.id, current_user=worker, progress_percentage=40)

    assert task.status == "in_progress"
    assert task.completed_at is None


def test_other_worker_cannot_post_progress() -> None:
    task = _task(assigned_to=42)
    db = _SessionStub(task=task)

    with pytest.raises(AuthorizationError):
        add_task_progress_use_case(db=db, task_id=task.id, current_user=_user(user_id=7), progress_percentage=10)

    assert db.added == []


def test_update_without_fields_is_rejected() -> None:
    db = _SessionStub(task=_task(assigned_to=42))

    with pytest.raises(DomainError, match="No fields to update") as exc:
        update_task_use_case(db=db, task_id=11, changes={}, current_user=_user(user_id=1, role="manager"))

    assert exc.value.http_status == 400
    assert exc.value.code == "TASK_NO_FIELDS"


def test_assignee_may_only_change_status_and_description() -> None:
    worker = _user(user_id=42)
    task = _task(assigned_to=worker.id)
    db = _SessionStub(task=task)

    with pytest.raises(AuthorizationError) as exc:
        update_task_use_case(db=db, task_id=task.id, changes={"priority": "low"}, current_user=worker)

    assert exc.value.code == "TASK_FIELD_FORBIDDEN"
    assert exc.value.details == {"fields": ["priority"]}
    assert task.priority == "urgent"
    assert db.commit_calls == 0


def test_assignee_completing_via_update_stamps_completed_at() -> None:
    worker = _user(user_id=42)
    task = _task(assigned_to=worker.id, status="in_progress")
    db = _SessionStub(task=task)

    update_task_use_case(
        db=db,
        task_id=task.id,
        changes={"status": "completed", "description": "Slab poured"},
        current_user=worker,
    )

    assert task.status == "completed"
    assert task.description == "Slab poured"
    assert task.completed_at is not None


def test_reopening_a_completed_task_keeps_completion_stamp() -> None:
    stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    task = _task(assigned_to=42, status="completed", completed_at=stamp)
    db = _SessionStub(task=task)

    update_task_use_case(
        db=db,
        task_id=task.id,
        changes={"status": "in_progress"},
        current_user=_user(user_id=1, role="supervisor"),
    )

    assert task.status == "in_progress"
    assert task.completed_at == stamp


def test_null_title_is_rejected_before_loading_task() -> None:
    db = _SessionStub(task=None)

    with pytest.raises(ValidationError) as exc:
        update_task_use_case(db=db, task_id=11, changes={"title": None}, current_user=_user(user_id=1, role="admin"))

    assert exc.value.details["errors"][0]["field"] == "title"


def test_progress_payload_requires_percentage_within_bounds() -> None:
    with pytest.raises(PayloadValidationError):
        TaskProgressCreate.model_validate({"notes": "Formwork up"})
    with pytest.raises(PayloadValidationError):
        TaskProgressCreate.model_validate({"progress_percentage": 101})

    assert TaskProgressCreate.model_validate({"progress_percentage": 0}).progress_percentage == 0


def test_progress_without_percentage_is_rejected() -> None:
    worker = _user(user_id=42)
    task = _task(assigned_to=worker.id, status="in_progress")
    db = _SessionStub(task=task)

    with pytest.raises(ValidationError) as exc:
        add_task_progress_use_case(db=db, task_id=task.id, current_user=worker, progress_percentage=None)

    assert exc.value.code == "TASK_PROGRESS_OUT_OF_RANGE"
    assert db.added == []
    assert db.commit_calls == 0


def test_completing_an_already_completed_task_restamps_completion() -> None:
    stamp = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    task = _task(assigned_to=42, status="completed", completed_at=stamp)
    db = _SessionStub(task=task)

    update_task_use_case(
        db=db,
        task_id=task.id,
        changes={"status": "completed"},
        current_user=_user(user_id=1, role="manager"),
    )

    assert task.status == "completed"
    assert task.completed_at is not None
    assert task.completed_at is not stamp
