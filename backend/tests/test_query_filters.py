from __future__ import annotations

import operator
from datetime import date
from types import SimpleNamespace

from sqlalchemy.sql import operators

from opstracker.models import Attendance, Task
from opstracker.security import restrict_to_owner
from opstracker.services.query_filters import apply_date_range, apply_filters, apply_search


class _RecordingQuery:
    def __init__(self):
        self.criteria = []

    def filter(self, *criteria):
        self.criteria.extend(criteria)
        return self


def _comparison(criterion):
    return criterion.left.key, criterion.operator, criterion.right.value


def test_apply_filters_skips_absent_values() -> None:
    query = apply_filters(_RecordingQuery(), {Task.status: "pending", Task.priority: None, Task.site_id: 5})

    assert [_comparison(c) for c in query.criteria] == [
        ("status", operator.eq, "pending"),
        ("site_id", operator.eq, 5),
    ]
    assert query.criteria[0].left.table.name == "tasks"


def test_apply_filters_without_values_leaves_query_unchanged() -> None:
    query = apply_filters(_RecordingQuery(), {Task.status: None})

    assert query.criteria == []


def test_date_range_bounds_apply_independently() -> None:
    only_start = apply_date_range(_RecordingQuery(), Attendance.attendance_date, start=date(2026, 3, 1))
    both = apply_date_range(
        _RecordingQuery(),
        Attendance.attendance_date,
        start=date(2026, 3, 1),
        end=date(2026, 3, 31),
    )

    assert [_comparison(c) for c in only_start.criteria] == [("attendance_date", operator.ge, date(2026, 3, 1))]
    assert [_comparison(c) for c in both.criteria] == [
        ("attendance_date", operator.ge, date(2026, 3, 1)),
        ("attendance_date", operator.le, date(2026, 3, 31)),
    ]


def test_search_matches_any_column_case_insensitively() -> None:
    query = apply_search(_RecordingQuery(), "  slab ", Task.title, Task.description)

    (criterion,) = query.criteria
    assert criterion.operator is operators.or_
    clauses = list(criterion.clauses)
    assert [clause.left.key for clause in clauses] == ["title", "description"]
    assert all(clause.operator is operators.ilike_op for clause in clauses)
    assert {clause.right.value for clause in clauses} == {"%slab%"}


def test_blank_search_is_ignored() -> None:
    assert apply_search(_RecordingQuery(), "", Task.title).criteria == []


def test_workers_are_scoped_to_their_own_rows() -> None:
    worker_query = restrict_to_owner(_RecordingQuery(), SimpleNamespace(id=42, role="worker"), Task.assigned_to)
    manager_query = restrict_to_owner(_RecordingQuery(), SimpleNamespace(id=1, role="manager"), Task.assigned_to)

    assert [_comparison(c) for c in worker_query.criteria] == [("assigned_to", operator.eq, 42)]
    assert manager_query.criteria == []
