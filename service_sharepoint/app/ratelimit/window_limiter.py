"""
Fixed-window rate limiter for the Gateway.
"""

import math
import time
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from shared.base_service import get_client_ip
from shared.errors import RateLimitError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class FixedWindowRateLimiter:
    """In-process per-client request counter reset every ``window_seconds``."""

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 900.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.logger = get_logger("sharepoint_gateway.rate_limiter")
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}

    def check_rate_limit(self, client_id: str) -> Dict[str, Any]:
        """Count one request for ``client_id`` and report whether it is allowed."""
        now = self._clock()
        self._evict(now)

        window_start, count = self._windows.get(client_id, (now, 0))
        reset_in = max(0, math.ceil(window_start + self.window_seconds - now))

        if count >= self.max_requests:
            self.logger.warning(
                "Rate limit exceeded",
                client_id=client_id,
                current_count=count,
                limit=self.max_requests,
            )
            return {
                "allowed": False,
                "current_count": count,
                "limit": self.max_requests,
                "remaining": 0,
                "reset_in_seconds": reset_in,
                "retry_after": reset_in,
            }

        count += 1
        self._windows[client_id] = (window_start, count)
        return {
            "allowed": True,
            "current_count": count,
            "limit": self.max_requests,
            "remaining": self.max_requests - count,
            "reset_in_seconds": reset_in,
        }

    def reset(self, client_id: Optional[str] = None) -> None:
        if client_id is None:
            self._windows.clear()
        else:
            self._windows.pop(client_id, None)

    def _evict(self, now: float) -> None:
        expired = [
            client_id
            for client_id, (window_start, _count) in self._windows.items()
            if now - window_start >= self.window_seconds
        ]
        for client_id in expired:
            del self._windows[client_id]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests over the per-IP budget with a 429 envelope."""

    def __init__(self, app, rate_limiter: FixedWindowRateLimiter, metrics: Optional[MetricsCollector] = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        client_id = get_client_ip(request)
        result = self.rate_limiter.check_rate_limit(client_id)
        headers = {
            "RateLimit-Limit": str(result["limit"]),
            "RateLimit-Remaining": str(result["remaining"]),
            "RateLimit-Reset": str(result["reset_in_seconds"]),
        }

        if not result["allowed"]:
            if self.metrics:
                self.metrics.increment_counter("rate_limit_hits_total", client_id=client_id)
            headers["Retry-After"] = str(result["retry_after"])
            return JSONResponse(
                status_code=RateLimitError.status_code,
                content=RateLimitError().to_response().to_content(),
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
