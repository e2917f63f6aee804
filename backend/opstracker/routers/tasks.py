"""Task and daily activity endpoints."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, selectinload

from ..auth import get_current_user
from ..database import get_db
from ..domain_errors import NotFoundError
from ..models import DailyActivity, Task, User
from ..schemas import (
    DailyActivityCreate,
    DailyActivityResponse,
    TaskCreate,
    TaskDetailResponse,
    TaskPriority,
    TaskProgressCreate,
    TaskResponse,
    TaskStatus,
    TaskUpdate,
    TaskUpdateResponse,
)
from ..security import require_permission, restrict_to_owner
from ..services.query_filters import apply_filters
from ..use_cases.tasks import (
    add_task_progress_use_case,
    create_task_use_case,
    log_daily_activity_use_case,
    update_task_use_case,
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskResponse])
def get_tasks(
    site_id: Optional[int] = None,
    status: Optional[TaskStatus] = None,
    assigned_to: Optional[int] = None,
    priority: Optional[TaskPriority] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List tasks; workers only see tasks assigned to them."""
    query = restrict_to_owner(db.query(Task), current_user, Task.assigned_to)
    query = apply_filters(
        query,
        {
            Task.site_id: site_id,
            Task.status: status,
            Task.assigned_to: assigned_to,
            Task.priority: priority,
        },
    )
    return query.order_by(Task.created_at.desc()).all()


@router.get("/activities/daily", response_model=list[DailyActivityResponse])
def get_daily_activities(
    activity_date: Optional[date] = None,
    site_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Activities for one day (today by default)."""
    query = db.query(DailyActivity).filter(DailyActivity.activity_date == (activity_date or date.today()))
    query = restrict_to_owner(query, current_user, DailyActivity.user_id)
    query = apply_filters(query, {DailyActivity.site_id: site_id})
    return query.order_by(DailyActivity.created_at.desc()).all()


@router.post("/activities", response_model=DailyActivityResponse, status_code=201)
def log_daily_activity(
    data: DailyActivityCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return log_daily_activity_use_case(
        db=db,
        site_id=data.site_id,
        description=data.description,
        current_user=current_user,
        activity_date=data.activity_date or date.today(),
        hours_worked=data.hours_worked,
    )


@router.get("/{task_id}", response_model=TaskDetailResponse)
def get_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Task with its progress updates, newest first."""
    task = (
        db.query(Task)
        .options(selectinload(Task.updates))
        .filter(Task.id == task_id)
        .first()
    )
    if not task:
        raise NotFoundError("Task not found", code="TASK_NOT_FOUND")
    require_permission(current_user, "task.view", owner_id=task.assigned_to)
    return task


@router.post("", response_model=TaskResponse, status_code=201)
def create_task(
    data: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create task and notify the assignee."""
    return create_task_use_case(
        db=db,
        site_id=data.site_id,
        title=data.title,
        assigned_to=data.assigned_to,
        current_user=current_user,
        description=data.description,
        priority=data.priority,
        due_date=data.due_date,
    )


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    data: TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Partial update; only the fields present in the body change."""
    return update_task_use_case(
        db=db,
        task_id=task_id,
        changes=data.model_dump(exclude_unset=True),
        current_user=current_user,
    )


@router.post("/{task_id}/updates", response_model=TaskUpdateResponse, status_code=201)
def add_task_update(
    task_id: int,
    data: TaskProgressCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Post progress; 100% completes the task."""
    return add_task_progress_use_case(
        db=db,
        task_id=task_id,
        current_user=current_user,
        progress_percentage=data.progress_percentage,
        notes=data.notes,
    )
