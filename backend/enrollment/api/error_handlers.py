"""Error Handlers — map every failure escaping a route to the enrollment error envelope.

Invariants:
    - Every error body has the shape {"error": {code, message, category, severity, ...}}
    - EnrollmentServiceError keeps its own http_status (404 unknown person/attempt,
      409 invalid transition or already enrolled, 503 fetch/persist failures)
    - Malformed request bodies are 400 VALIDATION_ERROR with one detail per field
    - Anything else is 500 INTERNAL_ERROR and the body never carries the exception text
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from enrollment.core.errors import (
    EnrollmentServiceError, ErrorCategory, ErrorSeverity,
)

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EnrollmentServiceError, handle_enrollment_error)
    app.add_exception_handler(RequestValidationError, handle_invalid_request)
    app.add_exception_handler(Exception, handle_unexpected_error)


async def handle_enrollment_error(
    request: Request, exc: EnrollmentServiceError,
) -> JSONResponse:
    # 4xx are the person's mistakes, 5xx are ours
    level = logging.WARNING if exc.http_status < 500 else logging.ERROR
    logger.log(
        level, "%s on %s: %s", exc.code, request.url.path, exc.message,
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "attempt_id": exc.context.attempt_id,
            "person_uid": exc.context.person_uid,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_invalid_request(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Rejected request body on %s (%d field error(s))",
        request.url.path, len(details), extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.WARNING, details=details,
        ),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled %s on %s", type(exc).__name__, request.url.path,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )


def _error_body(
    code: str,
    message: str,
    category: ErrorCategory,
    severity: ErrorSeverity,
    **extra,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            **extra,
        },
    }
