from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel

from opstracker.domain_errors import (
    AuthorizationError,
    ConflictError,
    DomainError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from opstracker.problem_details import (
    build_problem_details_response,
    handle_domain_error,
    handle_request_validation_error,
    handle_unexpected_error,
)


def test_problem_details_payload_contains_stable_code_and_rfc7807_fields() -> None:
    response = build_problem_details_response(
        DomainError(
            code="SAMPLE_ERROR",
            http_status=409,
            message="sample failed",
            details={"sample": True},
        )
    )

    assert response.status_code == 409
    assert response.media_type == "application/problem+json"

    body = response.body.decode("utf-8")
    assert '"type":"https://api.opstracker.local/problems/sample_error"' in body
    assert '"title":"Conflict"' in body
    assert '"status":409' in body
    assert '"detail":"sample failed"' in body
    assert '"code":"SAMPLE_ERROR"' in body
    assert '"details":{"sample":true}' in body


def test_problem_details_omits_details_when_none() -> None:
    response = build_problem_details_response(NotFoundError("Task not found", code="TASK_NOT_FOUND"))

    body = response.body.decode("utf-8")
    assert response.status_code == 404
    assert '"code":"TASK_NOT_FOUND"' in body
    assert '"details"' not in body


def test_categorized_errors_carry_their_defaults() -> None:
    cases = [
        (ValidationError(), 400, "VALIDATION_ERROR"),
        (AuthorizationError(), 403, "INSUFFICIENT_PERMISSIONS"),
        (NotFoundError(), 404, "NOT_FOUND"),
        (ConflictError(), 409, "CONFLICT"),
        (InternalError(), 500, "INTERNAL_ERROR"),
    ]
    for error, status, code in cases:
        assert error.http_status == status
        assert error.code == code
        assert str(error) == error.message


def test_field_validation_error_lists_the_field() -> None:
    error = ValidationError.for_field("quantity", "Quantity must be positive", code="MATERIAL_QUANTITY_INVALID")

    assert error.code == "MATERIAL_QUANTITY_INVALID"
    assert error.details == {"errors": [{"field": "quantity", "message": "Quantity must be positive"}]}


class _Payload(BaseModel):
    quantity: int


def _app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get("/conflict")
    def _conflict():
        raise ConflictError("Already clocked in today", code="ATTENDANCE_ALREADY_CLOCKED_IN")

    @app.post("/items")
    def _create(payload: _Payload):
        return {"quantity": payload.quantity}

    @app.get("/crash")
    def _crash():
        raise RuntimeError("database password leaked here")

    return app


def test_fastapi_exception_handler_maps_domain_error_to_problem_details() -> None:
    client = TestClient(_app())
    response = client.get("/conflict")

    assert response.status_code == 409
    assert response.headers["content-type"].startswith("application/problem+json")
    payload = response.json()
    assert payload["code"] == "ATTENDANCE_ALREADY_CLOCKED_IN"
    assert payload["detail"] == "Already clocked in today"


def test_request_validation_is_reported_per_field() -> None:
    client = TestClient(_app())
    response = client.post("/items", json={"quantity": "lots"})

    assert response.status_code == 400
    payload = response.json()
    assert payload["code"] == "VALIDATION_ERROR"
    assert [error["field"] for error in payload["details"]["errors"]] == ["quantity"]


def test_unexpected_errors_do_not_leak_internals() -> None:
    client = TestClient(_app(), raise_server_exceptions=False)
    response = client.get("/crash")

    assert response.status_code == 500
    payload = response.json()
    assert payload["code"] == "INTERNAL_ERROR"
    assert "password" not in response.text
