"""
Gateway caching package.

Provides the in-process response cache used to reduce load on the
document platform. Prefer short-lived caches and explicit invalidation.
"""

from .response_cache import ResponseCache

__all__ = ["ResponseCache"]
