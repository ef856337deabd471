"""
Adapters package for the SharePoint Gateway.

Contains the HTTP clients for the upstream platform:

- TokenProvider: client-credential token acquisition and caching
- SharePointClient: authenticated OData verbose REST calls, form digest

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .sharepoint_client import SharePointClient
from .token_provider import TokenProvider

__all__ = [
    "SharePointClient",
    "TokenProvider",
]
