"""
Maps failures from the document platform onto gateway error kinds.
"""

import traceback
from typing import Any, Optional

import httpx

from shared.errors import AuthenticationError, AuthorizationError, GatewayError, NotFoundError


def _upstream_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def translate_error(exc: BaseException, *, environment: str = "development") -> GatewayError:
    """Classify ``exc`` by upstream status: 401, 403 and 404 get their own kinds.

    Everything else becomes a 500. The original message is passed through
    outside production; development also receives the traceback.
    """
    if isinstance(exc, GatewayError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        details = _upstream_body(exc.response)
        if status == 401:
            return AuthenticationError(
                "SharePoint authentication failed",
                "Token may be expired or invalid",
                details,
            )
        if status == 403:
            return AuthorizationError(
                "Access denied",
                "Insufficient permissions to access SharePoint resource",
                details,
            )
        if status == 404:
            return NotFoundError(
                "Resource not found",
                "The requested SharePoint resource does not exist",
                details,
            )

    env = environment.lower()
    stack: Optional[str] = None
    if env == "development":
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    error = "Internal server error" if env == "production" else (str(exc) or type(exc).__name__)
    return GatewayError(error, status_code=500, stack=stack)
