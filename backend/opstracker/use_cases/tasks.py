"""Task lifecycle use-cases used by task router endpoints."""
from __future__ import annotations

from datetime import date
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import atomic
from ..domain_errors import AuthorizationError, NotFoundError, ValidationError
from ..models import DailyActivity, Site, Task, TaskUpdate, User
from ..security import can, require_permission
from ..services.notifications import notify_user

# Fields the assignee may change without an elevated role.
ASSIGNEE_EDITABLE_FIELDS = frozenset({"status", "description"})
NON_NULLABLE_FIELDS = frozenset({"title", "status", "priority"})


def get_task_or_404(*, db: Session, task_id: int) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
    return task


def _require_site(db: Session, site_id: int) -> Site:
    site = db.query(Site).filter(Site.id == site_id).first()
    if not site:
        raise ValidationError.for_field("site_id", "Site not found", code="TASK_SITE_INVALID")
    return site


def _require_assignee(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise ValidationError.for_field(
            "assigned_to",
            "Assignee not found or inactive",
            code="TASK_ASSIGNEE_INVALID",
        )
    return user


def _mark_completed(task: Task) -> None:
    # Every completion re-stamps; reverting status later leaves the stamp in place.
    task.completed_at = func.now()
    task.status = "completed"


def create_task_use_case(
    *,
    db: Session,
    site_id: int,
    title: str,
    assigned_to: int,
    current_user: User,
    description: str | None = None,
    priority: str = "medium",
    due_date: date | None = None,
) -> Task:
    """Create a task and notify its assignee."""
    require_permission(current_user, "canAssignTasks")
    _require_site(db, site_id)
    _require_assignee(db, assigned_to)

    with atomic(db, operation="Task creation"):
        task = Task(
            site_id=site_id,
            title=title,
            description=description,
            assigned_to=assigned_to,
            assigned_by=current_user.id,
            status="pending",
            priority=priority or "medium",
            due_date=due_date,
        )
        db.add(task)
        db.flush()
        notify_user(
            db,
            user_id=assigned_to,
            title="New Task Assigned",
            message=f"You have been assigned a new task: {title}",
            type="task",
            related_id=task.id,
            related_type="task",
        )
    return task


def update_task_use_case(
    *,
    db: Session,
    task_id: int,
    changes: dict[str, Any],
    current_user: User,
) -> Task:
    """Apply a partial update.

    Elevated roles may change any field; the current assignee may change only
    status and description.
    """
    if not changes:
        raise ValidationError("No fields to update", code="TASK_NO_FIELDS")

    for field in NON_NULLABLE_FIELDS.intersection(changes):
        if changes[field] is None:
            raise ValidationError.for_field(field, f"{field} cannot be null")

    task = get_task_or_404(db=db, task_id=task_id)
    require_permission(current_user, "task.edit", owner_id=task.assigned_to)

    if not can(current_user, "canAssignTasks"):
        forbidden = sorted(set(changes) - ASSIGNEE_EDITABLE_FIELDS)
        if forbidden:
            raise AuthorizationError(
                "Only status and description can be changed by the assignee",
                code="TASK_FIELD_FORBIDDEN",
                details={"fields": forbidden},
            )

    if changes.get("assigned_to") is not None:
        require_permission(current_user, "task.reassign")
        _require_assignee(db, changes["assigned_to"])

    with atomic(db, operation="Task update"):
        for field, value in changes.items():
            if field == "status":
                continue
            setattr(task, field, value)
        if "status" in changes:
            if changes["status"] == "completed":
                _mark_completed(task)
            else:
                task.status = changes["status"]
    return task


def add_task_progress_use_case(
    *,
    db: Session,
    task_id: int,
    current_user: User,
    progress_percentage: int,
    notes: str | None = None,
) -> TaskUpdate:
    """Append a progress entry; 100% completes the parent task."""
    if progress_percentage is None or not 0 <= progress_percentage <= 100:
        raise ValidationError.for_field(
            "progress_percentage",
            "Progress must be between 0 and 100",
            code="TASK_PROGRESS_OUT_OF_RANGE",
        )

    task = get_task_or_404(db=db, task_id=task_id)
    require_permission(current_user, "task.progress", owner_id=task.assigned_to)

    with atomic(db, operation="Task progress update"):
        update = TaskUpdate(
            task_id=task.id,
            updated_by=current_user.id,
            progress_percentage=progress_percentage,
            notes=notes,
        )
        db.add(update)
        if progress_percentage == 100:
            _mark_completed(task)
        db.flush()
    return update


def log_daily_activity_use_case(
    *,
    db: Session,
    site_id: int,
    description: str,
    current_user: User,
    activity_date: date,
    hours_worked=None,
) -> DailyActivity:
    if not db.query(Site).filter(Site.id == site_id).first():
        raise ValidationError.for_field("site_id", "Site not found")

    with atomic(db, operation="Daily activity logging"):
        activity = DailyActivity(
            site_id=site_id,
            user_id=current_user.id,
            activity_date=activity_date,
            description=description,
            hours_worked=hours_worked,
        )
        db.add(activity)
        db.flush()
    return activity
