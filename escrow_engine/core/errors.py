"""Error Hierarchy — typed, categorized exceptions for all escrow failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (4xx) are recoverable by retry or alternate path;
      infrastructure errors (5xx) are critical
    - to_response() produces the REST envelope
    - No internal details leaked in user-facing messages: NotFoundError for a
      missing escrow and for a non-party caller is byte-identical

Design Decisions:
    - Single hierarchy with EscrowError base: FastAPI global handler catches all
    - Pure core checks RETURN these instances (first error wins); only the
      service layer raises them
    - ErrorContext as dataclass: rich observability without coupling to logging
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
    AUTHORIZATION = "authorization"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    CONFLICT = "conflict"
    POLICY = "policy"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    escrow_id: str | None = None
    dispute_id: str | None = None
    actor_id: int | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class EscrowError(Exception):
    """Base exception for all escrow engine errors."""

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
                "retry_after_ms": self.context.retry_after_ms,
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class InvalidInputError(EscrowError):
    """Malformed or missing command fields."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_INPUT", ErrorCategory.VALIDATION,
            ErrorSeverity.WARNING, context, 400,
        )
        self.field = field


class UnauthorizedError(EscrowError):
    """Caller is a party but lacks the role for this action, or lacks a required role."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHORIZED", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class UnauthenticatedError(EscrowError):
    """No usable principal on the request (raised by the HTTP shell only)."""
    def __init__(self, message: str = "Missing or invalid principal", context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHENTICATED", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 401,
        )


class NotFoundError(EscrowError):
    """Resource does not exist, or the caller may not know that it does."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.WARNING, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidStateError(EscrowError):
    """Operation not valid from the current status (or lost a status race)."""
    def __init__(self, operation: str, status: str, context: ErrorContext | None = None):
        super().__init__(
            f"Operation '{operation}' is not allowed in '{status}' state",
            "INVALID_STATE", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )
        self.operation = operation
        self.status = status


class SelfDealingError(EscrowError):
    """Buyer and seller are the same principal."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "You cannot create an escrow transaction with yourself",
            "SELF_DEALING", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 400,
        )


class SelfRatingError(EscrowError):
    """Rater and rated user are the same principal."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "You cannot rate yourself",
            "SELF_RATING", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 400,
        )


class DisputeAlreadyOpenError(EscrowError):
    """An unresolved dispute already exists for this escrow."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "A dispute is already open for this escrow transaction",
            "DISPUTE_ALREADY_OPEN", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class DuplicateRatingError(EscrowError):
    """The rater already rated this escrow."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "You have already rated this escrow transaction",
            "DUPLICATE_RATING", ErrorCategory.CONFLICT,
            ErrorSeverity.WARNING, context, 409,
        )


class FundingVerificationFailedError(EscrowError):
    """Fund verifier did not confirm the funding reference."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "Funding reference could not be verified",
            "FUNDING_VERIFICATION_FAILED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 402,
        )


class PolicyBlockedError(EscrowError):
    """Arbitration policy rejected the action."""
    def __init__(self, action: str, context: ErrorContext | None = None):
        super().__init__(
            f"Action '{action}' blocked by arbitration policy",
            "POLICY_BLOCKED", ErrorCategory.POLICY,
            ErrorSeverity.WARNING, context, 403,
        )
        self.action = action


class OracleTimeoutError(EscrowError):
    """An external oracle did not answer within the configured timeout."""
    def __init__(self, oracle: str, timeout_seconds: float, context: ErrorContext | None = None):
        super().__init__(
            f"{oracle} did not respond within {timeout_seconds:g}s",
            "ORACLE_TIMEOUT", ErrorCategory.TIMEOUT,
            ErrorSeverity.ERROR, context, 504,
        )
        self.oracle = oracle


# ─── Infrastructure Errors (500-level) ──────────────────────────

class InternalError(EscrowError):
    """Stored data violates an invariant — abort the operation."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INTERNAL_ERROR", ErrorCategory.INTERNAL,
            ErrorSeverity.CRITICAL, context, 500,
        )


class DatabaseError(EscrowError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class ExternalServiceError(EscrowError):
    """An oracle adapter failed to obtain an answer (transport, parsing, API error)."""
    def __init__(
        self,
        message: str,
        service: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"{service} error: {message}",
            "EXTERNAL_SERVICE_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.service = service
