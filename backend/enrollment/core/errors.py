"""Error Hierarchy — typed, categorized exceptions for enrollment failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (400-level) are recoverable; infrastructure errors (500-level) end the current run only
    - to_response() produces REST envelope; to_sse_event() produces SSE envelope
    - "No eligible org units" and user cancellation are outcomes, never errors

Design Decisions:
    - Single hierarchy with EnrollmentServiceError base: FastAPI global handler catches all
    - FetchError vs PersistenceError kept apart so "read failed" never reads as "write failed"
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    FETCH = "fetch"
    PERSISTENCE = "persistence"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    person_uid: str | None = None
    program_uid: str | None = None
    attempt_id: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None


class EnrollmentServiceError(Exception):
    """Base exception for all enrollment service errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "person_uid": self.context.person_uid,
                    "program_uid": self.context.program_uid,
                    "attempt_id": self.context.attempt_id,
                },
            }
        }

    def to_sse_event(self) -> dict:
        """Convert to SSE error event."""
        return {
            "type": "error",
            "data": {
                "code": self.code,
                "message": self.context.user_message or self.message,
                "severity": self.severity.value,
                "recoverable": self.severity in (
                    ErrorSeverity.INFO, ErrorSeverity.WARNING,
                ),
                "attempt_id": self.context.attempt_id,
            },
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class ResourceNotFoundError(EnrollmentServiceError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidTransitionError(EnrollmentServiceError):
    """Event does not apply to the attempt's current state."""
    def __init__(self, state: str, event: str, context: ErrorContext | None = None):
        super().__init__(
            f"Event '{event}' is not valid in state '{state}'",
            "INVALID_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )
        self.state = state
        self.event = event


class DateOutOfRangeError(EnrollmentServiceError):
    """Confirmed enrollment date is later than the program allows."""
    def __init__(self, max_date: str, context: ErrorContext | None = None):
        super().__init__(
            f"Enrollment date cannot be later than {max_date}",
            "DATE_OUT_OF_RANGE", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.max_date = max_date


class OrgUnitNotEligibleError(EnrollmentServiceError):
    """Selected org unit is not among the eligible candidates."""
    def __init__(self, org_unit_uid: str, context: ErrorContext | None = None):
        super().__init__(
            f"Organisation unit '{org_unit_uid}' is not eligible for this enrollment",
            "ORG_UNIT_NOT_ELIGIBLE", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.org_unit_uid = org_unit_uid


class AlreadyEnrolledError(EnrollmentServiceError):
    """Program allows a single enrollment and the person already has one."""
    def __init__(self, program_uid: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.user_message = ctx.user_message or "The person is already enrolled in this program."
        super().__init__(
            f"Program '{program_uid}' allows one enrollment and the person already has it",
            "ALREADY_ENROLLED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, ctx, 409,
        )
        self.program_uid = program_uid


# ─── Infrastructure Errors (500-level) ──────────────────────────

class FetchError(EnrollmentServiceError):
    """Upstream retrieval failed. The affected list is not published for this run."""
    def __init__(self, message: str, source: str, context: ErrorContext | None = None):
        super().__init__(
            f"Fetching {source} failed: {message}",
            "FETCH_ERROR", ErrorCategory.FETCH,
            ErrorSeverity.ERROR, context, 503,
        )
        self.source = source


class PersistenceError(EnrollmentServiceError):
    """Enrollment write failed. Aborts the current attempt."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.user_message = ctx.user_message or "The enrollment could not be saved."
        super().__init__(
            f"Saving enrollment failed: {message}",
            "PERSISTENCE_ERROR", ErrorCategory.PERSISTENCE,
            ErrorSeverity.ERROR, ctx, 503,
        )


class DatabaseError(EnrollmentServiceError):
    """Database operation failed outside a fetch/persist boundary."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation
