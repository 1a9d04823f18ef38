"""
Shared error handling for the decision engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class DecisionEngineException(Exception):
    """Base exception for the decision engine."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(DecisionEngineException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ValidationError(DecisionEngineException):
    """Validation-related errors."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class BundleValidationError(DecisionEngineException):
    """Raised when a config bundle cannot be parsed or violates its invariants."""

    status_code = 422

    def __init__(self, message: str = "Invalid config bundle", details: Optional[Dict[str, Any]] = None):
        super().__init__("BUNDLE_VALIDATION_ERROR", message, details)


class BundleUnavailableError(DecisionEngineException):
    """No config bundle is loaded."""

    status_code = 503

    def __init__(self, message: str = "Config bundle unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("BUNDLE_UNAVAILABLE", message, details)


class PolicyNotFoundError(DecisionEngineException):
    """Policy id is not present in the loaded bundle."""

    status_code = 404

    def __init__(self, policy_id: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("POLICY_NOT_FOUND", f"Policy not found: {policy_id}", details)


class ExternalServiceError(DecisionEngineException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
