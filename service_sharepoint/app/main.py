"""
SharePoint Gateway service.
"""

import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import pydantic
from fastapi import Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import SharePointGatewayConfig, get_config
from shared.errors import GatewayError, ValidationError
from shared.logging import mask_secret
from .adapters.sharepoint_client import SharePointClient
from .adapters.token_provider import TokenProvider
from .caching.response_cache import ResponseCache
from .domain.api_key import ApiKeyAuth
from .domain.documents import DEFAULT_LIBRARY, DocumentService, results_of
from .domain.error_translator import translate_error
from .query.filter_builder import FilterCriteria
from .query.intent import IntentClassifier
from .ratelimit.window_limiter import FixedWindowRateLimiter, RateLimitMiddleware

SERVICE_NAME = "sharepoint_gateway"


def collection(payload: Any, **extra: Any) -> Dict[str, Any]:
    """Success envelope for OData collections: ``data`` is ``d.results``."""
    results = results_of(payload)
    if results is None:
        raise GatewayError("Unexpected response shape from SharePoint", status_code=502)
    return {"success": True, **extra, "data": results, "count": len(results)}


def loose_collection(payload: Any, **extra: Any) -> Dict[str, Any]:
    """Like :func:`collection`, but passes non-collection payloads through with ``count`` 0."""
    results = results_of(payload)
    if results is None:
        return {"success": True, **extra, "data": payload, "count": 0}
    return {"success": True, **extra, "data": results, "count": len(results)}


def entity(payload: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    return {"success": True, **extra, "data": payload.get("d", payload)}


def require(value: Any, error: str) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(error)
    return value


class SharePointGatewayService(BaseService):
    """REST facade over a SharePoint site."""

    def __init__(
        self,
        config: Optional[SharePointGatewayConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(SERVICE_NAME, config or get_config())
        self.http_client = http_client or httpx.AsyncClient(timeout=self.config.upstream_timeout_seconds)

        self.token_provider = TokenProvider(
            self.config.token_endpoint,
            self.config.sharepoint_client_id,
            self.config.sharepoint_client_secret,
            self.config.site_url,
            ttl_seconds=self.config.token_cache_ttl,
            http_client=self.http_client,
            clock=clock,
            metrics=self.metrics,
        )
        self.sharepoint_client = SharePointClient(
            self.config.site_url,
            self.token_provider,
            http_client=self.http_client,
            metrics=self.metrics,
        )
        self.data_cache = ResponseCache(
            self.config.data_cache_ttl,
            name="data",
            timer=clock,
            metrics=self.metrics,
        )
        self.documents = DocumentService(
            self.sharepoint_client,
            self.data_cache,
            IntentClassifier(self.config.folder_root),
        )
        self.api_key_auth = ApiKeyAuth(self.config.api_key)
        self.rate_limiter = FixedWindowRateLimiter(
            self.config.rate_limit_max_requests,
            self.config.rate_limit_window_ms / 1000,
            clock=clock,
        )
        self.app.add_middleware(RateLimitMiddleware, rate_limiter=self.rate_limiter, metrics=self.metrics)

        @self.app.on_event("startup")
        async def _startup():
            self.logger.info(
                "SharePoint API Service started",
                environment=self.config.environment,
                site_url=self.config.site_url,
                client_id=mask_secret(self.config.sharepoint_client_id),
                port=self.config.port,
            )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.http_client.aclose()
            self.logger.info("HTTP client closed")

        async def upstream_exception_handler(request: Request, exc: Exception):
            return self.error_response(request, translate_error(exc, environment=self.config.environment))

        self.app.add_exception_handler(httpx.HTTPError, upstream_exception_handler)
        self.app.add_exception_handler(Exception, upstream_exception_handler)

        protected = [Depends(self.api_key_auth)]
        self._setup_index_route()
        self._setup_auth_routes(protected)
        self._setup_list_routes(protected)
        self._setup_search_routes(protected)
        self._setup_item_routes(protected)
        self._setup_cache_routes(protected)

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "token_cache": "warm" if self.token_provider.expires_in() > 0 else "cold",
            "data_cache_keys": str(len(self.data_cache)),
        }

    def _setup_index_route(self):

        @self.app.get("/")
        async def root():
            """Service index."""
            return {
                "name": "SharePoint API Service",
                "version": "1.0.0",
                "endpoints": {
                    "health": "GET /health",
                    "auth": {
                        "getToken": "GET /api/auth/token",
                        "validateToken": "GET /api/auth/validate",
                    },
                    "lists": {
                        "getAllLists": "GET /api/lists",
                        "createList": "POST /api/lists",
                        "getListByTitle": "GET /api/lists/:listTitle",
                        "updateList": "PUT /api/lists/:listTitle",
                        "deleteList": "DELETE /api/lists/:listTitle",
                        "getFolders": "GET /api/lists/:listTitle/folders",
                    },
                    "items": {
                        "getItems": "GET /api/items/:listTitle/items",
                        "getItemById": "GET /api/items/:listTitle/items/:itemId",
                        "createItem": "POST /api/items/:listTitle/items",
                        "updateItem": "PUT /api/items/:listTitle/items/:itemId",
                        "deleteItem": "DELETE /api/items/:listTitle/items/:itemId",
                        "smartSearch": "GET /api/items/smart-search?query=...",
                        "search": "GET /api/items/search?keyword=...",
                        "advancedSearch": "POST /api/items/search/advanced",
                        "recent": "GET /api/items/recent",
                        "statistics": "GET /api/items/statistics",
                    },
                },
                "authentication": "Include X-API-Key header in all requests (except /health and /)",
            }

    def _setup_auth_routes(self, protected: List[Any]):

        @self.app.get("/api/auth/token", dependencies=protected)
        async def get_token():
            token = await self.token_provider.get_token()
            return {
                "success": True,
                "data": {
                    "access_token": token,
                    "token_type": "Bearer",
                    "expires_in": self.token_provider.expires_in(),
                },
            }

        @self.app.get("/api/auth/validate", dependencies=protected)
        async def validate_token():
            try:
                await self.token_provider.get_token()
                await self.sharepoint_client.get_web()
            except Exception as exc:
                self.logger.warning("Token validation failed", error=str(exc))
                return JSONResponse(
                    status_code=401,
                    content={
                        "success": False,
                        "message": "Token is invalid or expired",
                        "data": {"valid": False},
                    },
                )
            return {"success": True, "message": "Token is valid", "data": {"valid": True}}

    def _setup_list_routes(self, protected: List[Any]):

        @self.app.get("/api/lists", dependencies=protected)
        async def get_all_lists():
            return collection(await self.documents.get_lists())

        @self.app.post("/api/lists", status_code=201, dependencies=protected)
        async def create_list(body: Optional[Dict[str, Any]] = Body(default=None)):
            body = body or {}
            title = require(body.get("Title") or body.get("title"), "List title is required")
            description = body.get("Description", body.get("description"))
            try:
                base_template = int(body.get("BaseTemplate", body.get("baseTemplate", 100)))
            except (TypeError, ValueError):
                raise ValidationError("BaseTemplate must be an integer")
            data = await self.documents.create_list(title, description, base_template)
            return {"success": True, "message": "List created successfully", "data": data.get("d", data)}

        @self.app.get("/api/lists/{list_title}", dependencies=protected)
        async def get_list_by_title(list_title: str):
            return entity(await self.documents.get_list_by_title(list_title))

        @self.app.put("/api/lists/{list_title}", dependencies=protected)
        async def update_list(list_title: str, body: Optional[Dict[str, Any]] = Body(default=None)):
            if not body:
                raise ValidationError("Request body is empty")
            await self.documents.update_list(list_title, body)
            return {"success": True, "message": "List updated successfully"}

        @self.app.delete("/api/lists/{list_title}", dependencies=protected)
        async def delete_list(list_title: str):
            await self.documents.delete_list(list_title)
            return {"success": True, "message": "List deleted successfully"}

        @self.app.get("/api/lists/{list_title}/folders", dependencies=protected)
        async def get_folders(list_title: str):
            return collection(await self.documents.get_folders(list_title), library=list_title)

        @self.app.get("/api/lists/{list_title}/folders/search", dependencies=protected)
        async def search_folders(list_title: str, term: Optional[str] = Query(None)):
            require(term, "Search term parameter is required")
            return collection(await self.documents.search_folders(term, list_title), term=term)

        @self.app.get("/api/folders/contents", dependencies=protected)
        async def get_folder_contents(path: Optional[str] = Query(None)):
            require(path, "Folder path is required")
            return entity(await self.documents.get_folder_contents(path), folderPath=path)

    def _setup_search_routes(self, protected: List[Any]):
        """Search routes live under /api/items and must be registered before the list item routes."""

        @self.app.get("/api/items/smart-search", dependencies=protected)
        async def smart_search(query: Optional[str] = Query(None), library: str = Query(DEFAULT_LIBRARY)):
            require(query, "Query parameter is required")
            self.logger.info("Smart search request", query=query, library=library)
            intent, data = await self.documents.smart_search(query, library)
            return loose_collection(data, query=query, intent=intent.to_dict())

        @self.app.get("/api/items/search", dependencies=protected)
        async def search_items(keyword: Optional[str] = Query(None), library: str = Query(DEFAULT_LIBRARY)):
            require(keyword, "Keyword parameter is required")
            return collection(await self.documents.search_by_keyword(keyword, library), keyword=keyword)

        @self.app.get("/api/items/search/type", dependencies=protected)
        async def search_by_type(type: Optional[str] = Query(None), library: str = Query(DEFAULT_LIBRARY)):
            require(type, "File type parameter is required")
            extensions = [ext.strip() for ext in type.split(",") if ext.strip()]
            if not extensions:
                raise ValidationError("File type parameter is required")
            if len(extensions) > 1:
                data = await self.documents.search_files_by_types(extensions, library)
            else:
                data = await self.documents.search_files_by_type(extensions[0], library)
            return collection(data, fileType=type)

        @self.app.get("/api/items/search/author", dependencies=protected)
        async def search_by_author(author: Optional[str] = Query(None), library: str = Query(DEFAULT_LIBRARY)):
            require(author, "Author parameter is required")
            return collection(await self.documents.search_files_by_author(author, library), author=author)

        @self.app.get("/api/items/search/editor", dependencies=protected)
        async def search_by_editor(editor: Optional[str] = Query(None), library: str = Query(DEFAULT_LIBRARY)):
            require(editor, "Editor parameter is required")
            return collection(await self.documents.search_files_by_editor(editor, library), editor=editor)

        @self.app.get("/api/items/search/name", dependencies=protected)
        async def search_by_name(name: Optional[str] = Query(None), library: str = Query(DEFAULT_LIBRARY)):
            require(name, "File name parameter is required")
            return collection(await self.documents.search_files_by_name(name, library), fileName=name)

        @self.app.get("/api/items/search/date", dependencies=protected)
        async def search_by_date(
            start: Optional[str] = Query(None),
            end: Optional[str] = Query(None),
            year: Optional[int] = Query(None, ge=1900, le=9999),
            month: Optional[int] = Query(None, ge=1, le=12),
            library: str = Query(DEFAULT_LIBRARY),
        ):
            if month is not None:
                year = year or time.gmtime().tm_year
                data = await self.documents.search_files_by_month(year, month, library)
                return collection(data, year=year, month=month)
            if not start and not end:
                raise ValidationError("A start date, end date or month parameter is required")
            data = await self.documents.search_files_by_date_range(start, end, library)
            return collection(data, startDate=start, endDate=end)

        @self.app.post("/api/items/search/advanced", dependencies=protected)
        async def advanced_search(
            body: Optional[Dict[str, Any]] = Body(default=None),
            library: str = Query(DEFAULT_LIBRARY),
        ):
            if not body:
                raise ValidationError("Search criteria are required in request body")
            try:
                criteria = FilterCriteria.model_validate(body)
            except pydantic.ValidationError as exc:
                raise ValidationError("Invalid search criteria", details=exc.errors(include_url=False)) from exc
            if criteria.is_empty():
                raise ValidationError("Search criteria are required in request body")
            data = await self.documents.search_multi_criteria(criteria, library)
            return loose_collection(data, criteria=criteria.to_dict())

        @self.app.get("/api/items/search/platform", dependencies=protected)
        async def platform_search(
            query: Optional[str] = Query(None),
            rowlimit: int = Query(50, ge=1, le=500),
            startrow: int = Query(0, ge=0),
            select: Optional[str] = Query(None),
        ):
            require(query, "Query parameter is required")
            rows = await self.documents.platform_search(
                query,
                row_limit=rowlimit,
                start_row=startrow,
                select_properties=select,
            )
            return {"success": True, "query": query, "data": rows, "count": len(rows)}

        @self.app.get("/api/items/recent", dependencies=protected)
        async def get_recent_files(count: int = Query(10, ge=1), library: str = Query(DEFAULT_LIBRARY)):
            return collection(await self.documents.get_recent_files(count, library))

        @self.app.get("/api/items/statistics", dependencies=protected)
        async def get_statistics(library: str = Query(DEFAULT_LIBRARY)):
            stats = await self.documents.get_file_statistics(library)
            return {"success": True, "library": library, "statistics": stats}

        @self.app.get("/api/items/folder/{folder_path:path}", dependencies=protected)
        async def get_folder_files(folder_path: str, library: str = Query(DEFAULT_LIBRARY)):
            require(folder_path, "Folder path is required")
            if not folder_path.startswith("/"):
                folder_path = "/" + folder_path
            data = await self.documents.get_files_in_folder(folder_path, library)
            return collection(data, folderPath=folder_path)

    def _setup_item_routes(self, protected: List[Any]):

        @self.app.get("/api/items/{list_title}/items", dependencies=protected)
        async def get_items(
            list_title: str,
            filter: Optional[str] = Query(None),
            select: Optional[str] = Query(None),
            top: Optional[int] = Query(None, ge=0),
            skip: Optional[int] = Query(None, ge=0),
            orderby: Optional[str] = Query(None),
        ):
            data = await self.documents.get_list_items(
                list_title,
                filter=filter,
                select=select,
                top=top,
                skip=skip,
                orderby=orderby,
            )
            return collection(data)

        @self.app.get("/api/items/{list_title}/items/{item_id}", dependencies=protected)
        async def get_item_by_id(list_title: str, item_id: int):
            return entity(await self.documents.get_item_by_id(list_title, item_id))

        @self.app.post("/api/items/{list_title}/items", status_code=201, dependencies=protected)
        async def create_item(list_title: str, body: Optional[Dict[str, Any]] = Body(default=None)):
            if not body:
                raise ValidationError("Request body is empty")
            data = await self.documents.create_item(list_title, body)
            return {"success": True, "message": "Item created successfully", "data": data.get("d", data)}

        @self.app.api_route("/api/items/{list_title}/items/{item_id}", methods=["PUT", "PATCH"], dependencies=protected)
        async def update_item(list_title: str, item_id: int, body: Optional[Dict[str, Any]] = Body(default=None)):
            if not body:
                raise ValidationError("Request body is empty")
            await self.documents.update_item(list_title, item_id, body)
            return {"success": True, "message": "Item updated successfully"}

        @self.app.delete("/api/items/{list_title}/items/{item_id}", dependencies=protected)
        async def delete_item(list_title: str, item_id: int):
            await self.documents.delete_item(list_title, item_id)
            return {"success": True, "message": "Item deleted successfully"}

    def _setup_cache_routes(self, protected: List[Any]):

        @self.app.get("/api/cache/stats", dependencies=protected)
        async def cache_stats():
            return {
                "success": True,
                "data": {
                    "data": self.data_cache.stats(),
                    "token": {"expires_in": self.token_provider.expires_in()},
                },
            }

        @self.app.delete("/api/cache", dependencies=protected)
        async def clear_cache():
            self.token_provider.invalidate()
            self.data_cache.clear()
            self.logger.info("All caches cleared")
            return {"success": True, "message": "All caches cleared"}


def create_app(
    config: Optional[SharePointGatewayConfig] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    clock: Callable[[], float] = time.monotonic,
):
    """Create FastAPI application."""
    service = SharePointGatewayService(config, http_client=http_client, clock=clock)
    return service.app


if __name__ == "__main__":
    service = SharePointGatewayService()
    service.run()
