"""
Shared error handling for the SharePoint Gateway.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error envelope. Unset fields are dropped when serialized."""

    success: bool = False
    error: str
    message: Optional[str] = None
    details: Optional[Any] = None
    stack: Optional[str] = None

    def to_content(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class GatewayError(Exception):
    """Base exception for gateway services."""

    status_code = 500
    default_error = "Internal server error"

    def __init__(
        self,
        error: Optional[str] = None,
        message: Optional[str] = None,
        details: Optional[Any] = None,
        *,
        status_code: Optional[int] = None,
        stack: Optional[str] = None,
    ):
        self.error = error or self.default_error
        self.message = message
        self.details = details
        self.stack = stack
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.error)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.error,
            message=self.message,
            details=self.details,
            stack=self.stack,
        )


class ValidationError(GatewayError):
    """Missing or malformed request input."""

    status_code = 400
    default_error = "Validation failed"


class AuthenticationError(GatewayError):
    """Authentication-related errors."""

    status_code = 401
    default_error = "Authentication failed"


class TokenAcquisitionError(AuthenticationError):
    """The platform token endpoint refused or failed the credential grant."""

    default_error = "Token acquisition failed"


class AuthorizationError(GatewayError):
    """Authorization-related errors."""

    status_code = 403
    default_error = "Access denied"


class NotFoundError(GatewayError):
    """Requested resource does not exist."""

    status_code = 404
    default_error = "Resource not found"


class RateLimitError(GatewayError):
    """Rate limiting errors."""

    status_code = 429
    default_error = "Too many requests from this IP, please try again later."
