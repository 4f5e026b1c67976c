"""
Error Taxonomy

Domain exceptions raised by services. Each carries the HTTP status and
the machine-readable ``error`` code the API returns for it; the handlers
in practiceflow.main turn them into JSON responses.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to response body."""
        body: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Request failed validation."""
    status_code = 400
    error_code = "validation_error"


class NotFoundError(AppError):
    """Referenced resource does not exist."""
    status_code = 404
    error_code = "not_found"


class ConflictError(AppError):
    """Resource already exists or state forbids the change."""
    status_code = 409
    error_code = "conflict"


class FeatureAccessDenied(AppError):
    """Subscription plan does not grant the requested feature."""
    status_code = 403
    error_code = "feature_unavailable"


class UpstreamServiceError(AppError):
    """A vendor service (payments, LLM) failed."""
    status_code = 502
    error_code = "upstream_error"


class ServiceUnavailableError(AppError):
    """A required backing service (database) is unreachable."""
    status_code = 503
    error_code = "service_unavailable"
