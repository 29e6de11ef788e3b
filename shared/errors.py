"""
Shared error types for the office policy engine.

Policy denials are returned as values by the decision functions; these
exceptions cover missing records, broken configuration, and failures of
workflows that write state.
"""

from typing import Dict, Any, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PolicyError(Exception):
    """Base exception for policy engine errors."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class NotFoundError(PolicyError):
    """A referenced principal, office, feature, group or token does not exist."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class InvalidConfigurationError(PolicyError):
    """Stored configuration (e.g. an admin scope) is missing or malformed."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_CONFIGURATION", message, details)


class ForbiddenError(PolicyError):
    """Policy denial."""

    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__("FORBIDDEN", message, details)


class ConflictError(PolicyError):
    """The requested state already exists."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class VerificationFailedError(PolicyError):
    """External token verification rejected the token or was unreachable."""

    status_code = 400

    def __init__(self, message: str = "Token validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VERIFICATION_FAILED", message, details)


class ValidationError(PolicyError):
    """Request input is inconsistent with the stored records."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)
