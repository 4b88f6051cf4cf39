"""
Domain error taxonomy and global exception handlers.

Services raise :class:`LedgerError` subclasses; the handlers registered here
turn them into ``{"success": false, "kind": ..., "detail": ...}`` payloads
and prevent stack-trace leakage to clients.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


# ── Domain errors ───────────────────────────────────────────────────
class LedgerError(Exception):
    """Base class for errors reported to callers with a machine-readable kind."""

    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(LedgerError):
    kind = "Unauthorized"
    status_code = 403

    def __init__(self, message: str = "You do not have permission to perform this action") -> None:
        super().__init__(message)


class ValidationError(LedgerError):
    kind = "ValidationError"
    status_code = 422

    def __init__(self, message: str = "Invalid input", errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFound(LedgerError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class AlreadyRegistered(LedgerError):
    kind = "AlreadyRegistered"
    status_code = 409

    def __init__(self, message: str = "User already registered") -> None:
        super().__init__(message)


class InvalidCredentials(LedgerError):
    kind = "InvalidCredentials"
    status_code = 401

    def __init__(self, message: str = "Invalid login credentials") -> None:
        super().__init__(message)


class InternalError(LedgerError):
    pass


_KIND_BY_STATUS = {
    401: InvalidCredentials.kind,
    403: Unauthorized.kind,
    404: NotFound.kind,
    409: AlreadyRegistered.kind,
    422: ValidationError.kind,
}


def _error_body(kind: str, detail: object) -> dict:
    return {"success": False, "kind": kind, "detail": detail}


# ── Handlers ────────────────────────────────────────────────────────
async def _ledger_error_handler(_request: Request, exc: LedgerError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidCredentials) else None
    body = _error_body(exc.kind, exc.message)
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={**_error_body(ValidationError.kind, "Invalid input"), "errors": errors},
    )


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(_KIND_BY_STATUS.get(exc.status_code, "InternalError"), exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content=_error_body(ValidationError.kind, "Database constraint violation"),
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_body(InternalError.kind, "Internal database error"),
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content=_error_body(InternalError.kind, "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(LedgerError, _ledger_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
