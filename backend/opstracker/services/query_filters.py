"""Central translation of optional list filters into SQLAlchemy criteria."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import or_


def apply_filters(query: Any, equals: Mapping[Any, Any]):
    """AND-combine ``column == value`` for every value that is not None."""
    for column, value in equals.items():
        if value is not None:
            query = query.filter(column == value)
    return query


def apply_date_range(query: Any, column: Any, start: Any = None, end: Any = None):
    """Inclusive range; each bound applies independently when given."""
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def apply_search(query: Any, term: str | None, *columns: Any):
    """Case-insensitive substring match on any of ``columns``."""
    if not term:
        return query
    pattern = f"%{term.strip()}%"
    return query.filter(or_(*(column.ilike(pattern) for column in columns)))
