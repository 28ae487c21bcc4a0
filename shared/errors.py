"""
Shared error handling for the asset registry access layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for access layer services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class MalformedPathError(AccessLayerException):
    """Request path could not be parsed into registry parameters."""

    status_code = 400

    def __init__(self, message: str = "Malformed request path", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_PATH", message, details)


class AuthenticationError(AccessLayerException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "AUTHENTICATION_ERROR"):
        super().__init__(code, message, details)


class MissingTokenError(AuthenticationError):
    """No bearer token was supplied."""

    def __init__(self, message: str = "Authorization header is missing"):
        super().__init__(message, code="MISSING_TOKEN")


class InvalidTokenError(AuthenticationError):
    """Bearer token has a bad signature or format."""

    def __init__(self, message: str = "Authorization token is invalid"):
        super().__init__(message, code="INVALID_TOKEN")


class ExpiredTokenError(AuthenticationError):
    """Bearer token is past its expiry."""

    def __init__(self, message: str = "Authorization token expired"):
        super().__init__(message, code="EXPIRED_TOKEN")


class InvalidCredentialError(AuthenticationError):
    """Bootstrap credential was rejected."""

    def __init__(self, message: str = "Invalid credential"):
        super().__init__(message, code="INVALID_CREDENTIAL")


class RegistryHandlerError(AccessLayerException):
    """Error raised by a delegated registry handler; its status is relayed verbatim."""

    def __init__(self, status_code: int, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("HANDLER_ERROR", message, details, status_code=status_code)


class InternalServiceError(AccessLayerException):
    """Unclassified failure; carries no internal detail."""

    status_code = 500

    def __init__(self):
        super().__init__("INTERNAL_ERROR", "Internal server error")


class ConfigurationError(Exception):
    """Invalid service configuration detected at startup."""
