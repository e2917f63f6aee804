"""Attendance and leave request endpoints."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Attendance, LeaveRequest, User
from ..schemas import (
    AttendanceMark,
    AttendanceResponse,
    ClockRequest,
    DecisionRequest,
    LeaveRequestCreate,
    LeaveRequestResponse,
)
from ..security import restrict_to_owner
from ..services.query_filters import apply_date_range, apply_filters
from ..use_cases.approvals import create_leave_request_use_case, decide_leave_request_use_case
from ..use_cases.attendance import clock_in_use_case, clock_out_use_case, mark_attendance_use_case

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.get("", response_model=list[AttendanceResponse])
def get_attendance(
    user_id: Optional[int] = None,
    site_id: Optional[int] = None,
    attendance_date: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Attendance records; workers only see their own."""
    query = restrict_to_owner(db.query(Attendance), current_user, Attendance.user_id)
    query = apply_filters(
        query,
        {
            Attendance.user_id: user_id,
            Attendance.site_id: site_id,
            Attendance.attendance_date: attendance_date,
        },
    )
    query = apply_date_range(query, Attendance.attendance_date, start_date, end_date)
    return query.order_by(Attendance.attendance_date.desc(), Attendance.clock_in.desc()).all()


@router.post("/clock-in", response_model=AttendanceResponse, status_code=201)
def clock_in(
    payload: ClockRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return clock_in_use_case(db=db, site_id=payload.site_id, current_user=current_user, notes=payload.notes)


@router.post("/clock-out", response_model=AttendanceResponse)
def clock_out(
    payload: ClockRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Close today's record; hours worked are derived from the clock times."""
    return clock_out_use_case(db=db, site_id=payload.site_id, current_user=current_user, notes=payload.notes)


@router.post("/mark", response_model=AttendanceResponse)
def mark_attendance(
    payload: AttendanceMark,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Supervisor override: insert or overwrite a worker's record for the day."""
    return mark_attendance_use_case(db=db, payload=payload, current_user=current_user)


@router.get("/leave-requests", response_model=list[LeaveRequestResponse])
def get_leave_requests(
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = restrict_to_owner(db.query(LeaveRequest), current_user, LeaveRequest.user_id)
    query = apply_filters(query, {LeaveRequest.status: status})
    return query.order_by(LeaveRequest.created_at.desc()).all()


@router.post("/leave-requests", response_model=LeaveRequestResponse, status_code=201)
def create_leave_request(
    payload: LeaveRequestCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return create_leave_request_use_case(
        db=db,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        current_user=current_user,
        reason=payload.reason,
    )


@router.patch("/leave-requests/{leave_request_id}", response_model=LeaveRequestResponse)
def decide_leave_request(
    leave_request_id: int,
    payload: DecisionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return decide_leave_request_use_case(
        db=db,
        leave_request_id=leave_request_id,
        status=payload.status,
        current_user=current_user,
    )
