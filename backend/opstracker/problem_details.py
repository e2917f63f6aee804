"""RFC 7807 Problem Details helpers."""
from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .domain_errors import DomainError, InternalError, ValidationError

logger = logging.getLogger(__name__)


def build_problem_details_response(exc: DomainError) -> JSONResponse:
    """Render DomainError as RFC 7807 payload with stable domain code."""
    try:
        title = HTTPStatus(exc.http_status).phrase
    except ValueError:
        title = "Domain Error"

    payload: dict[str, object] = {
        "type": f"https://api.opstracker.local/problems/{exc.code.lower()}",
        "title": title,
        "status": exc.http_status,
        "detail": exc.message,
        "code": exc.code,
    }
    if exc.details is not None:
        payload["details"] = exc.details

    return JSONResponse(
        status_code=exc.http_status,
        content=payload,
        media_type="application/problem+json",
    )


def _field_name(loc) -> str:
    # FastAPI prefixes the field path with "body"/"query"/"path".
    parts = [str(part) for part in loc]
    if len(parts) > 1 and parts[0] in {"body", "query", "path", "header", "form"}:
        parts = parts[1:]
    return ".".join(parts)


def validation_error_from_request(exc: RequestValidationError) -> ValidationError:
    """Convert FastAPI request validation failures into a per-field ValidationError."""
    errors = [
        {"field": _field_name(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in exc.errors()
    ]
    return ValidationError("Validation failed", details={"errors": errors})


async def handle_domain_error(_: Request, exc: DomainError) -> JSONResponse:
    return build_problem_details_response(exc)


async def handle_request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
    return build_problem_details_response(validation_error_from_request(exc))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    if settings.is_production:
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    else:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return build_problem_details_response(InternalError())
