"""Auth endpoints."""
import logging

import redis
from redis.exceptions import RedisError
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..audit import client_ip
from ..auth import create_token_for_user, get_current_user, get_password_hash, verify_password
from ..config import settings
from ..database import atomic, get_db
from ..domain_errors import AuthorizationError, ConflictError
from ..models import User
from ..schemas import LoginRequest, TokenResponse, UserCreate, UserResponse

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


_redis_client = None


def _get_redis():
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


def _set_no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


def _incr_with_ttl(key: str, ttl_seconds: int) -> tuple[int, int]:
    """
    Increment a Redis counter and ensure it has an expiry.
    Returns (value, ttl_remaining_seconds).
    """
    r = _get_redis()
    value = r.incr(key)
    if value == 1:
        r.expire(key, ttl_seconds)
    ttl = r.ttl(key)
    if ttl is None or ttl < 0:
        ttl = ttl_seconds
    return int(value), int(ttl)


def _enforce_login_rate_limits(*, request: Request, username: str | None) -> None:
    ip = client_ip(request)
    try:
        attempts, ttl = _incr_with_ttl(f"auth:rl:login:ip:{ip}", 60)
        if attempts > settings.AUTH_LOGIN_IP_LIMIT_PER_MINUTE:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many login attempts. Try again later.",
                headers={"Retry-After": str(ttl)},
            )

        if username:
            lock_ttl = _get_redis().ttl(f"auth:lock:login:user:{username.lower()}")
            if lock_ttl and lock_ttl > 0:
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Account temporarily locked due to failed logins. Try again later.",
                    headers={"Retry-After": str(int(lock_ttl))},
                )
    except RedisError:
        # Fail open if Redis is down to avoid total auth outage.
        logger.exception("Redis error during login rate limiting (fail-open)")


def _register_login_failure(*, username: str | None) -> None:
    if not username:
        return
    try:
        username_key = username.lower()
        fails, _ = _incr_with_ttl(
            f"auth:fail:login:user:{username_key}",
            settings.AUTH_LOGIN_USER_LOCK_SECONDS,
        )
        if fails >= settings.AUTH_LOGIN_USER_FAIL_THRESHOLD:
            _get_redis().set(
                f"auth:lock:login:user:{username_key}",
                "1",
                ex=settings.AUTH_LOGIN_USER_LOCK_SECONDS,
            )
    except RedisError:
        logger.exception("Redis error during login failure tracking (fail-open)")


def _clear_login_failures(*, username: str | None) -> None:
    if not username:
        return
    try:
        r = _get_redis()
        username_key = username.lower()
        r.delete(f"auth:fail:login:user:{username_key}")
        r.delete(f"auth:lock:login:user:{username_key}")
    except RedisError:
        logger.exception("Redis error during login failure cleanup (ignored)")


def ensure_unique_identity(db: Session, *, username: str | None, email: str | None, exclude_id: int | None = None) -> None:
    """Reject a username/email already used by another account."""
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return
    query = db.query(User.id).filter(or_(*clauses))
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError("Username or email already exists", code="USER_ALREADY_EXISTS")


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(payload: UserCreate, response: Response, db: Session = Depends(get_db)):
    """Self-service sign-up, limited to the roles allowed by configuration."""
    _set_no_store(response)
    if payload.role not in settings.self_registration_roles:
        raise AuthorizationError(f"Self-registration is not allowed for role '{payload.role}'")
    ensure_unique_identity(db, username=payload.username, email=payload.email)

    conflict = ConflictError("Username or email already exists", code="USER_ALREADY_EXISTS")
    with atomic(db, operation="Registration", on_conflict=conflict):
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
    logger.info("User registered: %s (%s)", user.username, user.role)
    return TokenResponse(token=create_token_for_user(user), user=UserResponse.model_validate(user))


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login with username or email and password."""
    _set_no_store(response)
    identifier = payload.username.strip()
    _enforce_login_rate_limits(request=request, username=identifier)

    user = db.query(User).filter(or_(User.username == identifier, User.email == identifier)).first()
    if not user or not verify_password(payload.password, user.password_hash):
        _register_login_failure(username=identifier if user else None)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Account is deactivated")

    _clear_login_failures(username=identifier)
    return TokenResponse(token=create_token_for_user(user), user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    """Current user profile."""
    return current_user
