"""
Async client for the SharePoint REST (OData verbose) API.
"""

import time
from typing import Any, Dict, Mapping, Optional

import httpx

from shared.errors import GatewayError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .token_provider import TokenProvider

ODATA_VERBOSE = "application/json;odata=verbose"


class SharePointClient:
    """Thin authenticated wrapper around the site's ``/_api`` endpoints.

    Upstream HTTP errors propagate as ``httpx.HTTPStatusError`` so the
    gateway's error translator can map them by status.
    """

    def __init__(
        self,
        site_url: str,
        token_provider: TokenProvider,
        *,
        http_client: httpx.AsyncClient,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.site_url = site_url.rstrip("/")
        self.token_provider = token_provider
        self.metrics = metrics
        self.logger = get_logger("sharepoint_gateway.sharepoint_client")
        self._client = http_client

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """Send an authenticated request and return the decoded JSON body."""
        token = await self.token_provider.get_token()
        url = f"{self.site_url}{endpoint}"
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Accept": ODATA_VERBOSE,
            "Content-Type": ODATA_VERBOSE,
        }
        if headers:
            request_headers.update(headers)

        self.logger.debug(f"SharePoint {method} request", url=url, endpoint=endpoint, params=dict(params or {}))
        start = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            self.logger.error(f"SharePoint {method} request failed", url=url, error=str(exc))
            raise

        if self.metrics:
            self.metrics.record_upstream_request(method, response.status_code, time.perf_counter() - start)

        if response.is_error:
            self.logger.error(
                f"SharePoint {method} request failed",
                url=url,
                status=response.status_code,
                data=response.text[:500],
            )
            response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            self.logger.error(
                f"SharePoint {method} returned a non-JSON body",
                url=url,
                content_type=response.headers.get("Content-Type"),
                data=response.text[:200],
            )
            raise GatewayError("Unexpected response from SharePoint", status_code=502) from exc

    async def get(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        return await self.request("POST", endpoint, json=json, headers=headers)

    async def get_form_digest(self) -> str:
        """Fetch a request digest for write operations."""
        data = await self.post("/_api/contextinfo")
        return data["d"]["GetContextWebInformation"]["FormDigestValue"]

    async def write(
        self,
        endpoint: str,
        json: Any = None,
        *,
        http_method: Optional[str] = None,
        etag: Optional[str] = None,
    ) -> Dict[str, Any]:
        """POST a write with a fresh form digest.

        ``http_method`` tunnels MERGE/DELETE through ``X-HTTP-Method`` and
        sends ``IF-MATCH`` with the given ETag (``*`` when unknown).
        """
        headers = {"X-RequestDigest": await self.get_form_digest()}
        if http_method:
            headers["X-HTTP-Method"] = http_method
            headers["IF-MATCH"] = etag or "*"
        return await self.post(endpoint, json=json, headers=headers)

    async def get_web(self) -> Dict[str, Any]:
        return await self.get("/_api/web")
