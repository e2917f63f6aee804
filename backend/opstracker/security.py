"""Security helpers (capability policy, row scoping and access checks)."""

from __future__ import annotations

from typing import Any, TypeVar

from sqlalchemy.orm import Session

from .auth import check_permission
from .domain_errors import AuthorizationError, NotFoundError
from .models import Site, SiteTeam, User

T = TypeVar("T")

# action -> (capability that grants it, whether the owning user is also granted it)
ACTION_RULES: dict[str, tuple[str, bool]] = {
    "task.edit": ("canAssignTasks", True),
    "task.progress": ("canAssignTasks", True),
    "task.reassign": ("canAssignTasks", False),
    "task.view": ("canViewTeamRecords", True),
    "user.read": ("canViewUsers", True),
    "request.decide": ("canDecideRequests", False),
}


def can(actor: User, action: str, *, owner_id: int | None = None) -> bool:
    """Pure permission decision.

    ``action`` is either a named rule from ACTION_RULES or a raw capability key
    from ROLE_PERMISSIONS. ``owner_id`` is the user that owns the resource; owners
    are granted only the actions whose rule allows it.
    """
    capability, owner_allowed = ACTION_RULES.get(action, (action, False))
    if check_permission(actor, capability):
        return True
    return bool(owner_allowed and owner_id is not None and owner_id == actor.id)


def require_permission(user: User, action: str, *, owner_id: int | None = None) -> None:
    """Enforce ``can`` server-side."""
    if not can(user, action, owner_id=owner_id):
        raise AuthorizationError()


def sees_only_own_rows(user: User) -> bool:
    return not check_permission(user, "canViewTeamRecords")


def restrict_to_owner(query: Any, user: User, owner_column: Any):
    """Scope a list query to the caller's own rows unless they may see team records."""
    if sees_only_own_rows(user):
        return query.filter(owner_column == user.id)
    return query


def assigned_site_ids_query(db: Session, user: User):
    """Sites reachable by a worker through team assignments."""
    return db.query(SiteTeam.site_id).filter(SiteTeam.worker_id == user.id)


def assigned_project_ids_query(db: Session, user: User):
    return db.query(Site.project_id).join(SiteTeam, SiteTeam.site_id == Site.id).filter(
        SiteTeam.worker_id == user.id
    )


def get_or_404(db: Session, model: type[T], entity_id: int, *, not_found: str, code: str | None = None) -> T:
    """Load an entity by id or raise NotFoundError."""
    entity = db.query(model).filter(getattr(model, "id") == entity_id).first()  # noqa: B009
    if not entity:
        raise NotFoundError(not_found, code=code)
    return entity
