"""
Exception hierarchy for Community Safety Alerts.

Services raise these; routes translate them into HTTP responses using the
status code carried by each exception.

    AuthenticationError     401  missing/malformed/unverifiable token
    AuthorizationError      403  valid identity, insufficient role
    ValidationError         400  bad enum, missing field, out-of-range value
    InvalidTransitionError  400  alert status change not allowed
    NotFoundError           404  target entity absent
    BackendError            500  store/transport unavailable or misconfigured
"""

from typing import Any, Dict, Optional


class SafetyAlertsError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class AuthenticationError(SafetyAlertsError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401, error_code="UNAUTHENTICATED")


class AuthorizationError(SafetyAlertsError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403, error_code="FORBIDDEN")


class ValidationError(SafetyAlertsError):
    """Input validation failed (400)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(message, status_code=400, error_code="VALIDATION_ERROR", details=d)


class InvalidTransitionError(ValidationError):
    """Alert status change rejected by the lifecycle rules."""

    def __init__(self, message: str, *, current_status: Optional[str] = None):
        super().__init__(message, field="status", current_status=current_status)
        self.error_code = "INVALID_TRANSITION"


class NotFoundError(SafetyAlertsError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


class BackendError(SafetyAlertsError):
    """Document store or SMS transport unavailable or misconfigured (500)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message, status_code=500, error_code="BACKEND_ERROR", details=details)
