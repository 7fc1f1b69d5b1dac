"""
Shared error handling for the identity core.

Token verification outcomes are not exceptions; they are returned as
``VerificationResult`` values. The classes below cover deployment and
upstream failures the caller cannot recover from.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class IdentityLayerException(Exception):
    """Base exception for the identity core."""

    status_code: int = 400

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


class AuthenticationError(IdentityLayerException):
    """Caller identity could not be established."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ConfigurationError(IdentityLayerException):
    """Required configuration is missing or unusable."""

    status_code = 500

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class KeyImportError(IdentityLayerException):
    """The configured service-account private key could not be imported."""

    status_code = 500

    def __init__(self, message: str = "Failed to import private key", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEY_IMPORT_ERROR", message, details)


class AuthExchangeError(IdentityLayerException):
    """The OAuth2 token endpoint did not return an access token."""

    status_code = 502

    def __init__(
        self,
        message: str = "Failed to get access token",
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.error = error
        self.error_description = error_description
        merged = {"error": error, "error_description": error_description}
        merged.update(details or {})
        super().__init__("AUTH_EXCHANGE_ERROR", message, merged)


class CreateFailedError(IdentityLayerException):
    """The document store rejected a create request."""

    status_code = 502

    def __init__(self, upstream_message: str, details: Optional[Dict[str, Any]] = None):
        self.upstream_message = upstream_message
        super().__init__("CREATE_FAILED", f"Document store addDoc failed: {upstream_message}", details)


class ExternalServiceError(IdentityLayerException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
