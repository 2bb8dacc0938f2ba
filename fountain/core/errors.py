"""Error Hierarchy — typed, categorized exceptions for all coordinator failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Pre-submission errors (400-level) never leave a log entry or partial state behind
    - Execution errors are captured into the Operation Record, not raised to submitters
    - to_response() produces the REST envelope; no internal details leaked

Design Decisions:
    - Single hierarchy with FountainError base: FastAPI global handler catches all
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - DuplicateOperationError carries the cached record so callers can answer idempotently
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


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
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"
    TIMEOUT = "timeout"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    holder: str | None = None
    nonce: str | None = None
    op_type: str | None = None
    consensus_position: int | None = None
    ledger_step: str | None = None
    user_message: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class FountainError(Exception):
    """Base exception for all coordinator errors."""

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
                    "holder": self.context.holder,
                    "nonce": self.context.nonce,
                    "op_type": self.context.op_type,
                    "consensus_position": self.context.consensus_position,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Pre-submission Errors (400-level) ─────────────────────────

class ValidationError(FountainError):
    """Malformed or out-of-range input; rejected before any log append."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class NotEligibleError(FountainError):
    """Credential state does not permit the requested transition."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "NOT_ELIGIBLE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
        )


class QuotaExceededError(FountainError):
    """Accrue amount exceeds the credential's remaining quota."""
    def __init__(
        self, requested: int, remaining: int, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Insufficient quota: requested {requested}, remaining {remaining}",
            "QUOTA_EXCEEDED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )
        self.requested = requested
        self.remaining = remaining


class DuplicateOperationError(FountainError):
    """Nonce already completed. Surfaced to callers as idempotent success."""
    def __init__(self, nonce: str, record: dict, context: ErrorContext | None = None):
        super().__init__(
            f"Operation '{nonce}' already completed",
            "DUPLICATE_OPERATION", ErrorCategory.CONFLICT,
            ErrorSeverity.INFO, context, 200,
        )
        self.nonce = nonce
        self.record = record


class MalformedMessageError(FountainError):
    """Consensus log entry failed schema, version, or signature checks."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "MALFORMED_MESSAGE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )


class ResourceNotFoundError(FountainError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


# ─── Execution / Infrastructure Errors (500-level) ─────────────

class LedgerOperationError(FountainError):
    """A ledger gateway call failed mid-sequence."""
    def __init__(
        self, step: str, message: str, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.ledger_step = step
        super().__init__(
            f"Ledger {step} failed: {message}",
            "LEDGER_OPERATION_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 502,
        )
        self.step = step


class ConsensusSubmissionError(FountainError):
    """Appending an intent to the consensus log failed."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"Consensus submission failed: {message}",
            "CONSENSUS_SUBMISSION_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, context, 503,
        )


class ConsensusTimeoutError(FountainError):
    """Caller gave up waiting; the submitted intent is NOT retracted."""
    def __init__(
        self, nonce: str, timeout_seconds: float, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for operation '{nonce}'",
            "CONSENSUS_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.WARNING, context, 504,
        )
        self.nonce = nonce
        self.timeout_seconds = timeout_seconds


class DatabaseError(FountainError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ConcurrencyError(FountainError):
    """Concurrent modification detected."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )
