"""
Client-credential token cache for the SharePoint platform.
"""

import asyncio
import time
from typing import Callable, Optional

import httpx

from shared.errors import TokenAcquisitionError
from shared.logging import get_logger, mask_secret
from shared.metrics import MetricsCollector


class TokenProvider:
    """Holds one bearer token and refreshes it from the OAuth2 token endpoint.

    The token lives for a fixed ``ttl_seconds`` from the moment it was
    obtained. Refreshes are single-flight: callers arriving while a refresh
    is in progress wait for it and reuse its result.
    """

    def __init__(
        self,
        token_endpoint: str,
        client_id: str,
        client_secret: str,
        resource: str,
        *,
        http_client: httpx.AsyncClient,
        ttl_seconds: int = 3500,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.token_endpoint = token_endpoint
        self.client_id = client_id
        self.client_secret = client_secret
        self.resource = resource
        self.ttl_seconds = ttl_seconds
        self.metrics = metrics
        self.logger = get_logger("sharepoint_gateway.token_provider")
        self._client = http_client
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def _cached(self) -> Optional[str]:
        if self._token is not None and self._clock() < self._expires_at:
            return self._token
        return None

    async def get_token(self) -> str:
        """Return a valid token, refreshing it when missing or expired."""
        token = self._cached()
        if token is not None:
            self.logger.debug("Using cached SharePoint token")
            return token

        async with self._lock:
            token = self._cached()
            if token is not None:
                return token
            return await self._refresh()

    async def _refresh(self) -> str:
        self.logger.info("Requesting new SharePoint access token")
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "resource": self.resource,
        }

        try:
            response = await self._client.post(
                self.token_endpoint,
                data=form,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
            response.raise_for_status()
            token = response.json()["access_token"]
        except httpx.HTTPStatusError as exc:
            description = self._error_description(exc.response) or str(exc)
            self._record("error")
            self.logger.error(
                "Failed to get SharePoint access token",
                error=str(exc),
                status_code=exc.response.status_code,
            )
            raise TokenAcquisitionError(
                f"Token acquisition failed: {description}",
                details={"status_code": exc.response.status_code},
            ) from exc
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            self._record("error")
            self.logger.error("Failed to get SharePoint access token", error=str(exc))
            raise TokenAcquisitionError(f"Token acquisition failed: {exc}") from exc

        self._token = token
        self._expires_at = self._clock() + self.ttl_seconds
        self._record("success")
        self.logger.info(
            "Successfully obtained SharePoint access token",
            token_preview=mask_secret(token),
            ttl_seconds=self.ttl_seconds,
        )
        return token

    @staticmethod
    def _error_description(response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        if isinstance(payload, dict):
            return payload.get("error_description") or payload.get("error")
        return None

    def _record(self, status: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("token_refresh_total", status=status)

    def expires_in(self) -> int:
        """Seconds until the cached token expires, ``0`` when none is cached."""
        if self._cached() is None:
            return 0
        return max(0, int(self._expires_at - self._clock()))

    def invalidate(self) -> None:
        """Drop the cached token so the next call refreshes it."""
        self._token = None
        self._expires_at = 0.0
