"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://paysuite.local/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


# ── Payroll run errors ──────────────────────────────────────────────

class InvalidPeriodFormatError(AppException):
    """422 — period key is not ``YYYY-MM``."""

    def __init__(self, period: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="invalid-period",
            title="Invalid Period",
            detail=f"Period '{period}' is not a valid YYYY-MM month.",
            errors={"period": ["Expected format YYYY-MM (e.g. 2025-03)."]},
        )


class NoActiveEmployeesError(AppException):
    """422 — nothing to compute for the period."""

    def __init__(self, period: str) -> None:
        super().__init__(
            status_code=422,
            error_type="no-active-employees",
            title="No Active Employees",
            detail=f"There are no active employees to compute payroll for {period}.",
        )


class AlreadyLockedError(AppException):
    """409 — the run is locked (or paid) and can no longer be recomputed."""

    def __init__(self, period: str, status: str = "locked") -> None:
        super().__init__(
            status_code=409,
            error_type="already-locked",
            title="Payroll Run Locked",
            detail=f"Payroll run {period} is {status}; it can no longer be changed.",
        )


class AlreadyPaidError(AppException):
    """409 — the run has already produced its disbursement."""

    def __init__(self, period: str) -> None:
        super().__init__(
            status_code=409,
            error_type="already-paid",
            title="Payroll Run Paid",
            detail=f"Payroll run {period} has already been paid.",
        )


class NotLockedError(AppException):
    """409 — the run must be locked first."""

    def __init__(self, period: str) -> None:
        super().__init__(
            status_code=409,
            error_type="not-locked",
            title="Payroll Run Not Locked",
            detail=f"Payroll run {period} is not locked.",
        )


class ConcurrentModificationError(AppException):
    """409 — the run row changed underneath this request."""

    def __init__(self, period: str) -> None:
        super().__init__(
            status_code=409,
            error_type="concurrent-modification",
            title="Concurrent Modification",
            detail=f"Payroll run {period} was modified by another request; retry.",
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
