"""
Error taxonomy shared by the guard, the services and the HTTP layer.

Every failure on the authorization path is one of six codes, each with a
fixed HTTP status. Handlers raise ``DocifyError`` subclasses; the exception
handler installed by ``install_error_handlers`` renders them as

    {"error": {"code": ..., "message": ..., "status": ..., "request_id": ...}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.logs import current_request_id
from docify_shared.schemas.common import ErrorBody, ErrorResponse

log = structlog.get_logger()


class ErrorCode(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INTERNAL = "internal"


STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.VALIDATION: 400,
    ErrorCode.INTERNAL: 500,
}

INTERNAL_MESSAGE = "Internal error; retry the request"


class DocifyError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str, *, meta: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.meta = meta or {}

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE[self.code]


class Unauthenticated(DocifyError):
    code = ErrorCode.UNAUTHENTICATED


class Unauthorized(DocifyError):
    code = ErrorCode.UNAUTHORIZED


class NotFound(DocifyError):
    code = ErrorCode.NOT_FOUND


class Conflict(DocifyError):
    code = ErrorCode.CONFLICT


class ValidationFailed(DocifyError):
    code = ErrorCode.VALIDATION


class InternalError(DocifyError):
    """Store unavailable or timed out. Callers may retry the whole request."""

    code = ErrorCode.INTERNAL


@dataclass(frozen=True)
class Denial:
    """Structured guard result for a request that must not reach its handler."""

    code: ErrorCode
    reason: str
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        return STATUS_BY_CODE[self.code]


_ERROR_BY_CODE: dict[ErrorCode, type[DocifyError]] = {
    ErrorCode.UNAUTHENTICATED: Unauthenticated,
    ErrorCode.UNAUTHORIZED: Unauthorized,
    ErrorCode.NOT_FOUND: NotFound,
    ErrorCode.CONFLICT: Conflict,
    ErrorCode.VALIDATION: ValidationFailed,
    ErrorCode.INTERNAL: InternalError,
}


def error_for(denial: Denial) -> DocifyError:
    """Turn a guard denial into the exception the HTTP layer renders."""
    return _ERROR_BY_CODE[denial.code](denial.reason, meta=denial.meta)


def error_body(
    code: ErrorCode, message: str, request_id: Optional[str] = None
) -> dict[str, Any]:
    return ErrorResponse(
        error=ErrorBody(
            code=code.value,
            message=message,
            status=STATUS_BY_CODE[code],
            request_id=request_id,
        )
    ).model_dump()


def install_error_handlers(app: FastAPI) -> None:
    """Register JSON renderers for the error taxonomy."""

    @app.exception_handler(DocifyError)
    async def _docify_error(request: Request, exc: DocifyError):
        request_id = getattr(request.state, "request_id", None) or current_request_id()
        # Store details for internal errors go to the log only
        message = INTERNAL_MESSAGE if exc.code == ErrorCode.INTERNAL else exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.code, message, request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        request_id = getattr(request.state, "request_id", None) or current_request_id()
        log.info("request.invalid", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=STATUS_BY_CODE[ErrorCode.VALIDATION],
            content=error_body(ErrorCode.VALIDATION, "Malformed request body or parameter", request_id),
        )
