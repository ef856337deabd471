"""
Domain package for the SharePoint Gateway.

- documents: list/item CRUD, file search templates, statistics, smart search
- api_key: inbound API key check used as a route dependency
- error_translator: upstream failures to gateway error kinds
"""

from .api_key import ApiKeyAuth
from .documents import DocumentService
from .error_translator import translate_error

__all__ = ["ApiKeyAuth", "DocumentService", "translate_error"]
