"""Audit trail for mutating authenticated requests."""
from __future__ import annotations

import ipaddress
import logging

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from .config import settings
from .database import SessionLocal
from .models import AuditLog

logger = logging.getLogger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def client_ip(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            try:
                ipaddress.ip_address(real_ip)
                return real_ip
            except ValueError:
                pass

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For may contain a list: client, proxy1, proxy2
            candidate = forwarded.split(",")[0].strip()
            try:
                ipaddress.ip_address(candidate)
                return candidate
            except ValueError:
                pass

    if request.client:
        return request.client.host
    return "unknown"


def describe_path(path: str) -> tuple[str | None, int | None]:
    """``/api/tasks/12/updates`` -> ("tasks", 12)."""
    segments = [segment for segment in path.split("/") if segment]
    if segments and segments[0] == "api":
        segments = segments[1:]
    if not segments:
        return None, None
    entity_type = segments[0]
    entity_id = int(segments[1]) if len(segments) > 1 and segments[1].isdigit() else None
    return entity_type, entity_id


def record_audit_entry(
    *,
    user_id: int,
    method: str,
    path: str,
    status_code: int,
    ip_address: str | None,
    user_agent: str | None,
    session_factory=SessionLocal,
) -> None:
    """Persist one AuditLog row in its own session; failures are logged, never raised."""
    entity_type, entity_id = describe_path(path)
    db = session_factory()
    try:
        db.add(
            AuditLog(
                user_id=user_id,
                action=f"{method} {path}",
                entity_type=entity_type,
                entity_id=entity_id,
                new_values={"status_code": status_code},
                ip_address=ip_address,
                user_agent=(user_agent or "")[:512] or None,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Audit log write failed for %s %s", method, path)
    finally:
        db.close()


async def audit_mutations(request: Request, call_next):
    response = await call_next(request)
    if request.method in SAFE_METHODS:
        return response
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        return response
    await run_in_threadpool(
        record_audit_entry,
        user_id=user_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return response
