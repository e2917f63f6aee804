"""Attendance clock-in/clock-out and direct marking."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from ..database import atomic
from ..domain_errors import ConflictError, ValidationError
from ..models import Attendance, Site, User
from ..schemas import AttendanceMark
from ..security import require_permission
from ..services.workflow_rules import as_utc, hours_between


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_site(db: Session, site_id: int) -> Site:
    site = db.query(Site).filter(Site.id == site_id).first()
    if not site:
        raise ValidationError.for_field("site_id", "Site not found", code="ATTENDANCE_SITE_INVALID")
    return site


def _todays_record(db: Session, *, user_id: int, site_id: int, day) -> Attendance | None:
    return db.query(Attendance).filter(
        Attendance.user_id == user_id,
        Attendance.site_id == site_id,
        Attendance.attendance_date == day,
    ).first()


def clock_in_use_case(
    *,
    db: Session,
    site_id: int,
    current_user: User,
    notes: str | None = None,
) -> Attendance:
    """Start today's attendance at a site; at most one clock-in per (user, site, day)."""
    _require_site(db, site_id)
    now = _utc_now()
    today = now.date()
    already = ConflictError("Already clocked in today", code="ATTENDANCE_ALREADY_CLOCKED_IN")

    record = _todays_record(db, user_id=current_user.id, site_id=site_id, day=today)
    if record is not None and record.clock_in is not None:
        raise already

    with atomic(db, operation="Clock-in", on_conflict=already):
        if record is not None:
            # A row created by "mark" without a clock-in is reused.
            record.clock_in = now
            record.status = "present"
            if notes is not None:
                record.notes = notes
        else:
            record = Attendance(
                user_id=current_user.id,
                site_id=site_id,
                attendance_date=today,
                clock_in=now,
                status="present",
                notes=notes,
                marked_by=current_user.id,
            )
            db.add(record)
        db.flush()
    return record


def clock_out_use_case(
    *,
    db: Session,
    site_id: int,
    current_user: User,
    notes: str | None = None,
) -> Attendance:
    """Close today's attendance and derive hours worked once."""
    now = _utc_now()
    record = _todays_record(db, user_id=current_user.id, site_id=site_id, day=now.date())
    if record is None or record.clock_in is None:
        raise ValidationError("Must clock in first", code="ATTENDANCE_NOT_CLOCKED_IN")
    if record.clock_out is not None:
        raise ConflictError("Already clocked out today", code="ATTENDANCE_ALREADY_CLOCKED_OUT")
    if now <= as_utc(record.clock_in):
        raise ValidationError("Clock-out must be later than clock-in", code="ATTENDANCE_CLOCK_ORDER")

    with atomic(db, operation="Clock-out"):
        record.clock_out = now
        record.hours_worked = hours_between(record.clock_in, now)
        if notes is not None:
            record.notes = notes
    return record


def mark_attendance_use_case(*, db: Session, payload: AttendanceMark, current_user: User) -> Attendance:
    """Insert-or-overwrite the (user, date, site) row, bypassing clock in/out."""
    require_permission(current_user, "canMarkAttendance")
    _require_site(db, payload.site_id)
    if not db.query(User).filter(User.id == payload.user_id).first():
        raise ValidationError.for_field("user_id", "User not found", code="ATTENDANCE_USER_INVALID")

    hours = payload.hours_worked
    if payload.clock_in is not None and payload.clock_out is not None:
        hours = hours_between(payload.clock_in, payload.clock_out)

    values = {
        "user_id": payload.user_id,
        "site_id": payload.site_id,
        "attendance_date": payload.attendance_date,
        "status": payload.status,
        "clock_in": payload.clock_in,
        "clock_out": payload.clock_out,
        "hours_worked": hours,
        "notes": payload.notes,
        "marked_by": current_user.id,
    }
    stmt = pg_insert(Attendance).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Attendance.user_id, Attendance.attendance_date, Attendance.site_id],
        set_={
            "status": stmt.excluded.status,
            "clock_in": stmt.excluded.clock_in,
            "clock_out": stmt.excluded.clock_out,
            "hours_worked": stmt.excluded.hours_worked,
            "notes": stmt.excluded.notes,
            "marked_by": stmt.excluded.marked_by,
            "updated_at": func.now(),
        },
    )

    with atomic(db, operation="Attendance marking"):
        record = db.scalars(
            stmt.returning(Attendance),
            execution_options={"populate_existing": True},
        ).one()
    return record
