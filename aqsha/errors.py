"""
Error Taxonomy

Every failure the core can produce maps to exactly one of these types.
Callers (the HTTP layer, tests) distinguish them by class, never by
parsing messages.

    ValidationError      malformed or contradictory request parameters
    NotFoundError        entity absent or not owned by the caller
    UpstreamError        AI gateway unreachable, erroring or too slow
    AuthorizationError   missing or invalid identity
"""

from typing import Any, Optional

from aqsha.models.finance import ValidationIssue


class FinanceError(Exception):
    """Base class for all typed errors raised by the core."""

    code = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(FinanceError):
    """Request parameters are malformed or contradict each other."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.issues = issues or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [issue.model_dump() for issue in self.issues]
        return data


class NotFoundError(FinanceError):
    """Entity does not exist or belongs to another user."""

    code = "not_found"


class UpstreamError(FinanceError):
    """The AI gateway failed. Retryable by the caller."""

    code = "upstream_error"


class UpstreamTimeoutError(UpstreamError):
    """The AI gateway did not answer within the configured timeout."""

    code = "upstream_timeout"


class AuthorizationError(FinanceError):
    """Missing or invalid caller identity."""

    code = "unauthorized"
