"""User endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user, get_password_hash
from ..database import atomic, get_db
from ..domain_errors import ConflictError
from ..models import User
from ..schemas import Role, UserCreate, UserResponse, UserUpdate
from ..security import get_or_404, require_permission
from ..services.query_filters import apply_filters, apply_search
from .auth import ensure_unique_identity

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[UserResponse])
def get_users(
    role: Optional[Role] = None,
    search: Optional[str] = None,
    current_user: User = Depends(PermissionChecker("canViewUsers")),
    db: Session = Depends(get_db),
):
    """Get all users."""
    query = apply_filters(db.query(User), {User.role: role})
    query = apply_search(query, search, User.username, User.full_name, User.email)
    return query.order_by(User.created_at.desc()).all()


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get user by ID."""
    require_permission(current_user, "user.read", owner_id=user_id)
    return get_or_404(db, User, user_id, not_found="User not found", code="USER_NOT_FOUND")


@router.post("", response_model=UserResponse, status_code=201)
def create_user(
    payload: UserCreate,
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    """Create a user of any role."""
    ensure_unique_identity(db, username=payload.username, email=payload.email)
    conflict = ConflictError("Username or email already exists", code="USER_ALREADY_EXISTS")
    with atomic(db, operation="User creation", on_conflict=conflict):
        user = User(
            username=payload.username,
            email=payload.email,
            password_hash=get_password_hash(payload.password),
            role=payload.role,
            full_name=payload.full_name,
            phone=payload.phone,
            is_active=True,
        )
        db.add(user)
    db.refresh(user)
    logger.info("User %s created by %s", user.username, current_user.username)
    return user


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    payload: UserUpdate,
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    user = get_or_404(db, User, user_id, not_found="User not found", code="USER_NOT_FOUND")
    changes = payload.model_dump(exclude_unset=True)
    if "email" in changes:
        ensure_unique_identity(db, username=None, email=changes["email"], exclude_id=user.id)

    conflict = ConflictError("Username or email already exists", code="USER_ALREADY_EXISTS")
    with atomic(db, operation="User update", on_conflict=conflict):
        password = changes.pop("password", None)
        if password:
            user.password_hash = get_password_hash(password)
        for field, value in changes.items():
            if value is not None:
                setattr(user, field, value)
    db.refresh(user)
    return user


@router.delete("/{user_id}")
def deactivate_user(
    user_id: int,
    current_user: User = Depends(PermissionChecker("canManageUsers")),
    db: Session = Depends(get_db),
):
    """Deactivate a user; accounts are never hard-deleted."""
    user = get_or_404(db, User, user_id, not_found="User not found", code="USER_NOT_FOUND")
    with atomic(db, operation="User deactivation"):
        user.is_active = False
    logger.info("User %s deactivated by %s", user.username, current_user.username)
    return {"message": "User deactivated successfully"}
