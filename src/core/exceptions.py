"""Custom exceptions for the CRM drafts backend."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Exception type → safe user-facing message mapping
_SAFE_MESSAGES: dict[str, str] = {
    "NotFoundError": "The requested resource was not found.",
    "AuthenticationError": "Authentication failed. Please log in again.",
    "MissingParameterError": "A required parameter is missing.",
    "InvalidParameterError": "The provided input is invalid. Please check and try again.",
    "DatabaseError": "A database error occurred. Please try again.",
    "DraftGenerationError": "Failed to generate draft.",
    "ExternalServiceError": "An external service is temporarily unavailable.",
    "CircuitBreakerOpen": "A service dependency is temporarily unavailable. Please try again in a moment.",
    "ValueError": "The provided value is invalid.",
}

_DEFAULT_MESSAGE = "An error occurred. Please try again."


def sanitize_error(e: Exception) -> str:
    """Map an exception to a safe, user-facing error message.

    Walks the exception's MRO so subclasses inherit the message of the
    nearest mapped ancestor.

    Args:
        e: The exception to sanitize.

    Returns:
        A safe, generic error message string.
    """
    for cls in type(e).__mro__:
        safe_msg = _SAFE_MESSAGES.get(cls.__name__)
        if safe_msg:
            return safe_msg

    return _DEFAULT_MESSAGE


class CRMException(Exception):
    """Base exception for all application-specific errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP status code.
            details: Additional error details, structured or the underlying
                exception message.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class NotFoundError(CRMException):
    """Resource not found error (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        """Initialize not found error.

        Args:
            resource: Name of the resource that was not found.
            resource_id: Optional ID of the resource.
        """
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id},
        )


class AuthenticationError(CRMException):
    """Authentication failed error (401)."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(
            message=message,
            code="AUTHENTICATION_ERROR",
            status_code=401,
        )


class MissingParameterError(CRMException):
    """A required request parameter was not supplied (400)."""

    def __init__(self, message: str, parameter: str | None = None) -> None:
        """Initialize missing parameter error.

        Args:
            message: Error message.
            parameter: Name of the missing parameter.
        """
        super().__init__(
            message=message,
            code="MISSING_PARAMETER",
            status_code=400,
            details={"parameter": parameter} if parameter else {},
        )


class InvalidParameterError(CRMException):
    """A request parameter carried an unsupported value (400)."""

    def __init__(
        self,
        message: str,
        parameter: str | None = None,
        allowed: list[str] | None = None,
    ) -> None:
        """Initialize invalid parameter error.

        Args:
            message: Error message.
            parameter: Name of the offending parameter.
            allowed: Accepted values, when the parameter is an enumeration.
        """
        details: dict[str, Any] = {}
        if parameter:
            details["parameter"] = parameter
        if allowed:
            details["allowed"] = allowed
        super().__init__(
            message=message,
            code="INVALID_PARAMETER",
            status_code=400,
            details=details,
        )


class DatabaseError(CRMException):
    """Database operation error (500)."""

    def __init__(self, message: str = "A database error occurred") -> None:
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            status_code=500,
        )


class DraftGenerationError(CRMException):
    """Every drafting tier was exhausted without producing a draft (500)."""

    def __init__(
        self,
        message: str = "Failed to generate draft",
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize draft generation error.

        Args:
            message: Error message shown to the caller.
            details: Additional error details (underlying cause, status code).
        """
        super().__init__(
            message=message,
            code="DRAFT_GENERATION_FAILED",
            status_code=500,
            details=details,
        )


class ExternalServiceError(CRMException):
    """External service error (502)."""

    def __init__(self, service: str, message: str | None = None) -> None:
        """Initialize external service error.

        Args:
            service: Name of the external service.
            message: Optional error message.
        """
        super().__init__(
            message=message or f"External service '{service}' is unavailable",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=502,
            details={"service": service},
        )
