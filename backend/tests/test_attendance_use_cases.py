from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from opstracker.domain_errors import AuthorizationError, ConflictError, ValidationError
from opstracker.models import Attendance, Site, User
from opstracker.schemas import AttendanceMark
from opstracker.use_cases import attendance as use_case

CLOCK_IN_AT = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
CLOCK_OUT_AT = datetime(2026, 3, 2, 17, 30, tzinfo=timezone.utc)


class _QueryStub:
    def __init__(self, *, first_result=None):
        self._first_result = first_result

    def filter(self, *_args, **_kwargs):
        return self

    def first(self):
        return self._first_result


class _ScalarResult:
    def __init__(self, row):
        self._row = row

    def one(self):
        return self._row


class _SessionStub:
    """Holds at most one attendance row, like the (user, date, site) unique key."""

    def __init__(self, *, record=None, site=True, user=None):
        self.record = record
        self._site = SimpleNamespace(id=5) if site else None
        self._user = user
        self.added = []
        self.statements = []
        self.commit_calls = 0
        self.rollback_calls = 0

    def query(self, model):
        if model is Site:
            return _QueryStub(first_result=self._site)
        if model is Attendance:
            return _QueryStub(first_result=self.record)
        if model is User:
            return _QueryStub(first_result=self._user)
        raise AssertionError(f"Unexpected query model: {model}")

    def add(self, obj):
        self.added.append(obj)
        if isinstance(obj, Attendance):
            self.record = obj

    def flush(self):
        pass

    def scalars(self, stmt, execution_options=None):
        self.statements.append(stmt)
        return _ScalarResult(SimpleNamespace(id=1))

    def commit(self):
        self.commit_calls += 1

    def rollback(self):
        self.rollback_calls += 1


def _worker(user_id: int = 42):
    return SimpleNamespace(id=user_id, role="worker", username="worker1")


def _at(monkeypatch: pytest.MonkeyPatch, moment: datetime) -> None:
    monkeypatch.setattr(use_case, "_utc_now", lambda: moment)


def test_clock_in_then_out_derives_hours_worked(monkeypatch: pytest.MonkeyPatch) -> None:
    worker = _worker()
    db = _SessionStub()

    _at(monkeypatch, CLOCK_IN_AT)
    record = use_case.clock_in_use_case(db=db, site_id=5, current_user=worker)

    assert isinstance(record, Attendance)
    assert record.clock_in == CLOCK_IN_AT
    assert record.attendance_date == date(2026, 3, 2)
    assert record.status == "present"

    _at(monkeypatch, CLOCK_OUT_AT)
    record = use_case.clock_out_use_case(db=db, site_id=5, current_user=worker)

    assert record.clock_out == CLOCK_OUT_AT
    assert record.hours_worked == Decimal("8.50")
    assert db.commit_calls == 2


def test_second_clock_in_same_day_is_a_conflict(monkeypatch: pytest.MonkeyPatch) -> None:
    worker = _worker()
    existing = SimpleNamespace(clock_in=CLOCK_IN_AT, clock_out=None, status="present")
    db = _SessionStub(record=existing)
    _at(monkeypatch, CLOCK_OUT_AT)

    with pytest.raises(ConflictError, match="Already clocked in today") as exc:
        use_case.clock_in_use_case(db=db, site_id=5, current_user=worker)

    assert exc.value.http_status == 409
    assert exc.value.code == "ATTENDANCE_ALREADY_CLOCKED_IN"
    assert db.added == []
    assert db.commit_calls == 0


def test_clock_in_reuses_marked_row_without_clock_in(monkeypatch: pytest.MonkeyPatch) -> None:
    marked = SimpleNamespace(clock_in=None, clock_out=None, status="late", notes=None)
    db = _SessionStub(record=marked)
    _at(monkeypatch, CLOCK_IN_AT)

    record = use_case.clock_in_use_case(db=db, site_id=5, current_user=_worker())

    assert record is marked
    assert marked.clock_in == CLOCK_IN_AT
    assert marked.status == "present"
    assert db.added == []


def test_clock_out_requires_clock_in(monkeypatch: pytest.MonkeyPatch) -> None:
    db = _SessionStub(record=None)
    _at(monkeypatch, CLOCK_OUT_AT)

    with pytest.raises(ValidationError, match="Must clock in first"):
        use_case.clock_out_use_case(db=db, site_id=5, current_user=_worker())


def test_second_clock_out_is_a_conflict(monkeypatch: pytest.MonkeyPatch) -> None:
    record = SimpleNamespace(clock_in=CLOCK_IN_AT, clock_out=CLOCK_OUT_AT, hours_worked=Decimal("8.50"))
    db = _SessionStub(record=record)
    _at(monkeypatch, CLOCK_OUT_AT)

    with pytest.raises(ConflictError, match="Already clocked out today"):
        use_case.clock_out_use_case(db=db, site_id=5, current_user=_worker())

    assert record.hours_worked == Decimal("8.50")


def test_clock_in_unknown_site_is_validation_error(monkeypatch: pytest.MonkeyPatch) -> None:
    db = _SessionStub(site=False)
    _at(monkeypatch, CLOCK_IN_AT)

    with pytest.raises(ValidationError) as exc:
        use_case.clock_in_use_case(db=db, site_id=99, current_user=_worker())

    assert exc.value.code == "ATTENDANCE_SITE_INVALID"


def test_mark_derives_hours_from_clock_times() -> None:
    supervisor = SimpleNamespace(id=3, role="supervisor")
    db = _SessionStub(user=_worker())
    payload = AttendanceMark(
        user_id=42,
        site_id=5,
        attendance_date=date(2026, 3, 2),
        status="present",
        clock_in=CLOCK_IN_AT,
        clock_out=CLOCK_OUT_AT,
        hours_worked=Decimal("3"),
    )

    use_case.mark_attendance_use_case(db=db, payload=payload, current_user=supervisor)

    params = db.statements[0].compile(dialect=postgresql.dialect()).params
    assert params["hours_worked"] == Decimal("8.50")
    assert params["marked_by"] == supervisor.id
    assert db.commit_calls == 1


def test_worker_cannot_mark_attendance() -> None:
    db = _SessionStub(user=_worker())
    payload = AttendanceMark(user_id=42, site_id=5, attendance_date=date(2026, 3, 2), status="absent")

    with pytest.raises(AuthorizationError):
        use_case.mark_attendance_use_case(db=db, payload=payload, current_user=_worker())

    assert db.statements == []


def test_mark_payload_rejects_clock_out_before_clock_in() -> None:
    with pytest.raises(ValueError):
        AttendanceMark(
            user_id=42,
            site_id=5,
            attendance_date=date(2026, 3, 2),
            status="present",
            clock_in=CLOCK_OUT_AT,
            clock_out=CLOCK_IN_AT,
        )
