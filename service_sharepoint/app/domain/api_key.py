"""
API key authentication for Gateway routes.
"""

import hmac
from typing import Optional

from fastapi import Request

from shared.base_service import get_client_ip
from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import get_logger


class ApiKeyAuth:
    """FastAPI dependency comparing the caller's key with the configured one.

    The key is read from ``X-API-Key`` or, failing that, from the
    ``Authorization`` header, with or without a ``Bearer`` prefix.
    """

    def __init__(self, api_key: str):
        self._api_key = api_key
        self.logger = get_logger("sharepoint_gateway.api_key_auth")

    @staticmethod
    def extract_key(request: Request) -> Optional[str]:
        api_key = request.headers.get("X-API-Key")
        if api_key:
            return api_key

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return None
        if auth_header.startswith("Bearer "):
            auth_header = auth_header[7:]
        return auth_header.strip() or None

    async def __call__(self, request: Request) -> None:
        api_key = self.extract_key(request)

        if not api_key:
            self.logger.warning("API request without API key", ip=get_client_ip(request), path=request.url.path)
            raise AuthenticationError("API key is required")

        if not hmac.compare_digest(api_key.encode(), self._api_key.encode()):
            self.logger.warning("Invalid API key attempt", ip=get_client_ip(request), path=request.url.path)
            raise AuthorizationError("Invalid API key")
