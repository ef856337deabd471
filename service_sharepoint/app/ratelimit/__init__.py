"""
Rate limiting package for the Gateway.

Holds the fixed-window limiter and the middleware that enforces a
per-client-IP request budget.
"""

from .window_limiter import FixedWindowRateLimiter, RateLimitMiddleware

__all__ = ["FixedWindowRateLimiter", "RateLimitMiddleware"]
