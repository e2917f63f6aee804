"""Read-only aggregate reports computed on demand."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import get_db
from ..models import (
    Attendance,
    DailyActivity,
    Equipment,
    Material,
    MaterialInventory,
    MaterialTransaction,
    Project,
    Site,
    Task,
    User,
)
from ..schemas import (
    AttendanceSummaryRow,
    DashboardActivity,
    DashboardOverview,
    DashboardResponse,
    EquipmentStatusRow,
    MaterialUsageRow,
    TaskProgressRow,
)
from ..services.query_filters import apply_date_range, apply_filters

router = APIRouter(prefix="/reports", tags=["reports"])

EQUIPMENT_ISSUE_STATUSES = ("maintenance", "broken")
RECENT_ACTIVITY_LIMIT = 10


def _count(query) -> int:
    return query.scalar() or 0


def _date_bounds(column, start_date: Optional[date], end_date: Optional[date]) -> list:
    bounds = []
    if start_date is not None:
        bounds.append(column >= start_date)
    if end_date is not None:
        bounds.append(column <= end_date)
    return bounds


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Headline counters plus today's activity feed, scoped by role."""
    pending_tasks = db.query(func.count(Task.id)).filter(Task.status == "pending")
    if current_user.role == "worker":
        pending_tasks = pending_tasks.filter(Task.assigned_to == current_user.id)
    elif current_user.role == "supervisor":
        supervised = db.query(Site.id).filter(Site.supervisor_id == current_user.id)
        pending_tasks = pending_tasks.filter(Task.site_id.in_(supervised))

    overview = DashboardOverview(
        active_projects=_count(db.query(func.count(Project.id)).filter(Project.status == "active")),
        pending_tasks=_count(pending_tasks),
        low_stock_materials=_count(
            db.query(func.count(MaterialInventory.id)).filter(
                MaterialInventory.quantity <= MaterialInventory.min_threshold
            )
        ),
        equipment_issues=_count(
            db.query(func.count(Equipment.id)).filter(Equipment.status.in_(EQUIPMENT_ISSUE_STATUSES))
        ),
        present_today=_count(
            db.query(func.count(Attendance.id)).filter(
                Attendance.attendance_date == func.current_date(),
                Attendance.status == "present",
            )
        ),
    )

    activities = (
        db.query(DailyActivity, Site.name, User.full_name)
        .outerjoin(Site, Site.id == DailyActivity.site_id)
        .outerjoin(User, User.id == DailyActivity.user_id)
        .filter(DailyActivity.activity_date == func.current_date())
    )
    if current_user.role == "worker":
        activities = activities.filter(DailyActivity.user_id == current_user.id)
    rows = activities.order_by(DailyActivity.created_at.desc()).limit(RECENT_ACTIVITY_LIMIT).all()

    recent = [
        DashboardActivity(
            id=activity.id,
            site_id=activity.site_id,
            user_id=activity.user_id,
            activity_date=activity.activity_date,
            description=activity.description,
            hours_worked=float(activity.hours_worked) if activity.hours_worked is not None else None,
            created_at=activity.created_at,
            site_name=site_name,
            user_name=user_name,
        )
        for activity, site_name, user_name in rows
    ]
    return DashboardResponse(overview=overview, recent_activities=recent)


@router.get("/tasks/progress", response_model=list[TaskProgressRow])
def get_task_progress(
    site_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Task counts per status, with urgent/high breakdowns."""
    query = db.query(
        Task.status,
        func.count(Task.id),
        func.count(Task.id).filter(Task.priority == "urgent"),
        func.count(Task.id).filter(Task.priority == "high"),
    )
    query = apply_filters(query, {Task.site_id: site_id})
    query = apply_date_range(query, func.date(Task.created_at), start_date, end_date)
    rows = query.group_by(Task.status).order_by(Task.status).all()
    return [
        TaskProgressRow(status=status, count=count, urgent_count=urgent, high_count=high)
        for status, count, urgent, high in rows
    ]


@router.get("/materials/usage", response_model=list[MaterialUsageRow])
def get_material_usage(
    site_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delivered and used totals per material for one site, next to its current stock."""
    txn_join = and_(
        MaterialTransaction.material_id == Material.id,
        MaterialTransaction.site_id == site_id,
        *_date_bounds(func.date(MaterialTransaction.created_at), start_date, end_date),
    )
    delivered = func.coalesce(
        func.sum(case((MaterialTransaction.transaction_type == "delivery", MaterialTransaction.quantity), else_=0)),
        0,
    )
    used = func.coalesce(
        func.sum(case((MaterialTransaction.transaction_type == "usage", MaterialTransaction.quantity), else_=0)),
        0,
    )
    rows = (
        db.query(
            Material.id,
            Material.name,
            Material.unit,
            delivered,
            used,
            func.coalesce(MaterialInventory.quantity, 0),
        )
        .outerjoin(MaterialTransaction, txn_join)
        .outerjoin(
            MaterialInventory,
            and_(MaterialInventory.material_id == Material.id, MaterialInventory.site_id == site_id),
        )
        .group_by(Material.id, Material.name, Material.unit, MaterialInventory.quantity)
        .order_by(Material.name)
        .all()
    )
    return [
        MaterialUsageRow(
            material_id=material_id,
            name=name,
            unit=unit,
            delivered=float(delivered_qty),
            used=float(used_qty),
            current_stock=float(stock),
        )
        for material_id, name, unit, delivered_qty, used_qty, stock in rows
    ]


@router.get("/attendance/summary", response_model=list[AttendanceSummaryRow])
def get_attendance_summary(
    site_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(PermissionChecker("canViewTeamReports")),
    db: Session = Depends(get_db),
):
    """Per-worker attendance tallies and total hours."""
    attendance_join = [Attendance.user_id == User.id]
    if site_id is not None:
        attendance_join.append(Attendance.site_id == site_id)
    attendance_join.extend(_date_bounds(Attendance.attendance_date, start_date, end_date))

    rows = (
        db.query(
            User.id,
            User.full_name,
            func.count(Attendance.id).filter(Attendance.status == "present"),
            func.count(Attendance.id).filter(Attendance.status == "absent"),
            func.count(Attendance.id).filter(Attendance.status == "late"),
            func.coalesce(func.sum(Attendance.hours_worked), 0),
        )
        .outerjoin(Attendance, and_(*attendance_join))
        .filter(User.role == "worker")
        .group_by(User.id, User.full_name)
        .order_by(User.full_name)
        .all()
    )
    return [
        AttendanceSummaryRow(
            user_id=user_id,
            full_name=full_name,
            present_days=present,
            absent_days=absent,
            late_days=late,
            total_hours=float(hours),
        )
        for user_id, full_name, present, absent, late, hours in rows
    ]


@router.get("/equipment/status", response_model=list[EquipmentStatusRow])
def get_equipment_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = db.query(Equipment.status, func.count(Equipment.id)).group_by(Equipment.status).order_by(Equipment.status).all()
    return [EquipmentStatusRow(status=status, count=count) for status, count in rows]
