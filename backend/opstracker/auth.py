"""Authentication and authorization."""
from datetime import timedelta
from typing import Optional
import logging
import time
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .config import settings
from .database import get_db
from .domain_errors import AuthorizationError
from .models import User

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
logger = logging.getLogger(__name__)

# Bearer token scheme
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token."""
    to_encode = data.copy()
    now = int(time.time())
    if expires_delta:
        exp = now + int(expires_delta.total_seconds())
    else:
        exp = now + int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60
    to_encode.update({"exp": exp, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_token_for_user(user: User) -> str:
    return create_access_token({"sub": str(user.id), "username": user.username, "role": user.role})


def decode_token(token: str) -> dict:
    """Decode and verify a JWT, raising 401 on any problem."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _credentials_error()
    if payload.get("type") != "access":
        raise _credentials_error("Invalid token type")
    return payload


def _parse_token_subject(payload: dict) -> int:
    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        raise _credentials_error()


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current authenticated user."""
    payload = decode_token(credentials.credentials)
    user_id = _parse_token_subject(payload)
    user = db.query(User).filter(User.id == user_id, User.is_active == True).first()  # noqa: E712
    if user is None:
        raise _credentials_error("User not found or inactive")

    # Picked up by the audit middleware after the response is produced.
    request.state.user_id = user.id
    return user


# Role permissions matrix
ROLE_PERMISSIONS = {
    "admin": {
        "canManageUsers": True,
        "canViewUsers": True,
        "canManageProjects": True,
        "canDeleteProjects": True,
        "canManageSites": True,
        "canAssignTasks": True,
        "canViewTeamRecords": True,
        "canManageMaterials": True,
        "canManageEquipment": True,
        "canMarkAttendance": True,
        "canDecideRequests": True,
        "canDeleteDocuments": True,
        "canViewTeamReports": True,
    },
    "manager": {
        "canManageUsers": False,
        "canViewUsers": True,
        "canManageProjects": True,
        "canDeleteProjects": False,
        "canManageSites": True,
        "canAssignTasks": True,
        "canViewTeamRecords": True,
        "canManageMaterials": True,
        "canManageEquipment": True,
        "canMarkAttendance": True,
        "canDecideRequests": True,
        "canDeleteDocuments": True,
        "canViewTeamReports": True,
    },
    "supervisor": {
        "canManageUsers": False,
        "canViewUsers": False,
        "canManageProjects": False,
        "canDeleteProjects": False,
        "canManageSites": True,
        "canAssignTasks": True,
        "canViewTeamRecords": True,
        "canManageMaterials": False,
        "canManageEquipment": False,
        "canMarkAttendance": True,
        "canDecideRequests": False,
        "canDeleteDocuments": True,
        "canViewTeamReports": True,
    },
    "worker": {
        "canManageUsers": False,
        "canViewUsers": False,
        "canManageProjects": False,
        "canDeleteProjects": False,
        "canManageSites": False,
        "canAssignTasks": False,
        "canViewTeamRecords": False,
        "canManageMaterials": False,
        "canManageEquipment": False,
        "canMarkAttendance": False,
        "canDecideRequests": False,
        "canDeleteDocuments": False,
        "canViewTeamReports": False,
    },
}

PERMISSION_KEYS = tuple(ROLE_PERMISSIONS["admin"].keys())


def check_permission(user: User, permission: str) -> bool:
    """Check if user has specific permission."""
    permissions = ROLE_PERMISSIONS.get(user.role, {})
    return permissions.get(permission, False)


class PermissionChecker:
    """Dependency that resolves the current user and enforces a role permission."""

    def __init__(self, required_permission: str):
        self.required_permission = required_permission

    def __call__(self, current_user: User = Depends(get_current_user)) -> User:
        if not check_permission(current_user, self.required_permission):
            raise AuthorizationError()
        return current_user
