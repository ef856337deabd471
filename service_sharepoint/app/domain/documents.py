"""
Document library operations: list/item CRUD, file search templates,
statistics and smart search, with response caching.
"""

import calendar
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from shared.errors import ValidationError
from shared.logging import get_logger
from ..adapters.sharepoint_client import SharePointClient
from ..caching.response_cache import ResponseCache
from ..query import filter_builder as fb
from ..query.filter_builder import FilterCriteria, build_filter, literal
from ..query.intent import Intent, IntentClassifier, IntentType

DEFAULT_LIBRARY = "Documents"

DEFAULT_FILE_EXPAND = "File,Folder,Author,Editor"
DEFAULT_FILE_SELECT = (
    "Id,Title,FileLeafRef,FileRef,FileDirRef,File/Name,File/ServerRelativeUrl,"
    "File/TimeLastModified,File/Length,Author/Title,Editor/Title,Modified,Created"
)

NAME_SEARCH_LIMIT = 100
KEYWORD_SEARCH_LIMIT = 200
FILTER_SEARCH_LIMIT = 500
STATISTICS_LIMIT = 5000
DEFAULT_RECENT_COUNT = 10

GENERIC_LIST_TEMPLATE = 100


def list_endpoint(title: str) -> str:
    return f"/_api/web/lists/getbytitle({literal(title)})"


def item_endpoint(list_title: str, item_id: int) -> str:
    return f"{list_endpoint(list_title)}/items({int(item_id)})"


def query_signature(params: Dict[str, Any]) -> str:
    """Stable text form of OData query parameters, used in cache keys."""
    return "&".join(f"{key}={value}" for key, value in params.items())


def results_of(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """Extract ``d.results`` from an OData verbose collection payload."""
    if isinstance(payload, dict):
        body = payload.get("d")
        if isinstance(body, dict) and isinstance(body.get("results"), list):
            return body["results"]
    return None


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse ISO-8601 strings with Z or offset suffixes; ``None`` when unparseable."""
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def month_range(year: int, month: int) -> Tuple[str, str]:
    """First and last instant of a calendar month as UTC ISO strings."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    last_day = calendar.monthrange(year, month)[1]
    return (
        f"{year:04d}-{month:02d}-01T00:00:00Z",
        f"{year:04d}-{month:02d}-{last_day:02d}T23:59:59Z",
    )


class DocumentService:
    """Translates gateway operations into SharePoint REST calls."""

    def __init__(
        self,
        client: SharePointClient,
        cache: ResponseCache,
        classifier: Optional[IntentClassifier] = None,
    ):
        self.client = client
        self.cache = cache
        self.classifier = classifier or IntentClassifier()
        self.logger = get_logger("sharepoint_gateway.documents")

    # Lists

    async def get_lists(self) -> Dict[str, Any]:
        return await self.cache.get_or_load("lists", lambda: self.client.get("/_api/web/lists"))

    async def get_list_by_title(self, list_title: str) -> Dict[str, Any]:
        key = ResponseCache.make_key("list", list_title)
        return await self.cache.get_or_load(key, lambda: self.client.get(list_endpoint(list_title)))

    async def create_list(
        self,
        title: str,
        description: Optional[str] = None,
        base_template: int = GENERIC_LIST_TEMPLATE,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "__metadata": {"type": "SP.List"},
            "Title": title,
            "BaseTemplate": base_template,
            "AllowContentTypes": True,
            "ContentTypesEnabled": True,
        }
        if description is not None:
            body["Description"] = description

        result = await self.client.write("/_api/web/lists", body)
        self.cache.delete("lists")
        self.logger.info("List created", list_title=title)
        return result

    async def update_list(self, list_title: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        body = {"__metadata": {"type": "SP.List"}, **changes}
        result = await self.client.write(list_endpoint(list_title), body, http_method="MERGE", etag="*")
        self._invalidate_list(list_title)
        return result

    async def delete_list(self, list_title: str) -> Dict[str, Any]:
        result = await self.client.write(list_endpoint(list_title), http_method="DELETE", etag="*")
        self._invalidate_list(list_title)
        self.logger.info("List deleted", list_title=list_title)
        return result

    def _invalidate_list(self, list_title: str) -> None:
        self.cache.delete("lists")
        self.cache.delete(ResponseCache.make_key("list", list_title))

    # Folders

    async def get_folders(self, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        key = ResponseCache.make_key("folders", library)
        return await self.cache.get_or_load(key, lambda: self.client.get(f"{list_endpoint(library)}/folders"))

    async def get_folder_contents(self, folder_path: str) -> Dict[str, Any]:
        key = ResponseCache.make_key("folder_contents", folder_path)
        endpoint = f"/_api/web/GetFolderByServerRelativeUrl({literal(folder_path)})"
        return await self.cache.get_or_load(
            key, lambda: self.client.get(endpoint, params={"$expand": "Folders,Files"})
        )

    async def search_folders(self, term: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        folders = results_of(await self.get_folders(library)) or []
        needle = term.lower()
        matches = [folder for folder in folders if needle in str(folder.get("Name", "")).lower()]
        return {"d": {"results": matches}}

    # Files

    async def get_all_files(
        self,
        library: str = DEFAULT_LIBRARY,
        *,
        select: Optional[str] = None,
        expand: Optional[str] = None,
        filter: Optional[str] = None,
        top: Optional[int] = None,
        orderby: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "$expand": expand or DEFAULT_FILE_EXPAND,
            "$select": select or DEFAULT_FILE_SELECT,
        }
        if filter:
            params["$filter"] = filter
        if top:
            params["$top"] = top
        if orderby:
            params["$orderby"] = orderby

        endpoint = f"{list_endpoint(library)}/items"
        key = ResponseCache.make_key("files", library, query_signature(params))
        return await self.cache.get_or_load(key, lambda: self.client.get(endpoint, params=params))

    async def search_files_by_name(self, file_name: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(library, filter=fb.name_contains(file_name), top=NAME_SEARCH_LIMIT)

    async def search_files_by_type(self, extension: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(library, filter=fb.file_type(extension), top=FILTER_SEARCH_LIMIT)

    async def search_files_by_types(self, extensions: List[str], library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(library, filter=fb.file_types(extensions), top=FILTER_SEARCH_LIMIT)

    async def search_files_by_date_range(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        library: str = DEFAULT_LIBRARY,
    ) -> Dict[str, Any]:
        return await self.get_all_files(
            library,
            filter=fb.modified_between(start_date, end_date),
            top=FILTER_SEARCH_LIMIT,
            orderby=fb.DEFAULT_ORDER_BY,
        )

    async def search_files_by_month(self, year: int, month: int, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        start_date, end_date = month_range(year, month)
        return await self.search_files_by_date_range(start_date, end_date, library)

    async def search_files_by_author(self, author: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(
            library, filter=fb.author_is(author), top=FILTER_SEARCH_LIMIT, orderby=fb.DEFAULT_ORDER_BY
        )

    async def search_files_by_editor(self, editor: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(
            library, filter=fb.editor_is(editor), top=FILTER_SEARCH_LIMIT, orderby=fb.DEFAULT_ORDER_BY
        )

    async def search_by_keyword(self, keyword: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(
            library, filter=fb.keyword(keyword), top=KEYWORD_SEARCH_LIMIT, orderby=fb.DEFAULT_ORDER_BY
        )

    async def search_multi_criteria(self, criteria: FilterCriteria, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(
            library,
            filter=build_filter(criteria),
            top=FILTER_SEARCH_LIMIT,
            orderby=criteria.order_by or fb.DEFAULT_ORDER_BY,
        )

    async def get_files_in_folder(self, folder_path: str, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        return await self.get_all_files(
            library, filter=fb.folder_is(folder_path), top=FILTER_SEARCH_LIMIT, orderby="FileLeafRef asc"
        )

    async def get_recent_files(self, count: int = DEFAULT_RECENT_COUNT, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        if count < 1:
            raise ValidationError("Count must be a positive integer")
        return await self.get_all_files(library, top=count, orderby=fb.DEFAULT_ORDER_BY)

    async def get_file_statistics(self, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        items = results_of(await self.get_all_files(library, top=STATISTICS_LIMIT)) or []
        return summarize_files(items)

    # Smart search

    async def smart_search(self, query: str, library: str = DEFAULT_LIBRARY) -> Tuple[Intent, Dict[str, Any]]:
        """Classify free text and run the matching query template."""
        intent = self.classifier.classify(query)
        self.logger.info("Smart search intent detected", query=query, intent=intent.to_dict())
        return intent, await self.run_intent(intent, library)

    async def run_intent(self, intent: Intent, library: str = DEFAULT_LIBRARY) -> Dict[str, Any]:
        handlers: Dict[IntentType, Callable[[], Awaitable[Dict[str, Any]]]] = {
            IntentType.FILE_BY_NAME: lambda: self.search_files_by_name(intent.term or "", library),
            IntentType.FILE_BY_TYPE: lambda: self.search_files_by_type(intent.file_type or "", library),
            IntentType.FILE_BY_AUTHOR: lambda: self.search_files_by_author(intent.author or "", library),
            IntentType.FILE_BY_DATE: lambda: self._search_intent_dates(intent, library),
            IntentType.FOLDER_CONTENTS: lambda: self.get_files_in_folder(intent.folder_path or "", library),
            IntentType.RECENT_FILES: lambda: self.get_recent_files(intent.count or DEFAULT_RECENT_COUNT, library),
            IntentType.STATISTICS: lambda: self.get_file_statistics(library),
            IntentType.MULTI_CRITERIA: lambda: self.search_multi_criteria(
                FilterCriteria.model_validate(intent.criteria), library
            ),
        }
        handler = handlers.get(intent.type)
        if handler is None:
            return await self.search_by_keyword(intent.keyword or intent.term or "", library)
        return await handler()

    async def _search_intent_dates(self, intent: Intent, library: str) -> Dict[str, Any]:
        if intent.month and intent.year:
            return await self.search_files_by_month(intent.year, intent.month, library)
        return await self.search_files_by_date_range(intent.start_date, intent.end_date, library)

    # List items

    async def get_list_items(
        self,
        list_title: str,
        *,
        filter: Optional[str] = None,
        select: Optional[str] = None,
        top: Optional[int] = None,
        skip: Optional[int] = None,
        orderby: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if filter:
            params["$filter"] = filter
        if select:
            params["$select"] = select
        if top:
            params["$top"] = top
        if skip:
            params["$skip"] = skip
        if orderby:
            params["$orderby"] = orderby

        endpoint = f"{list_endpoint(list_title)}/items"
        key = ResponseCache.make_key("items", list_title, query_signature(params))
        return await self.cache.get_or_load(key, lambda: self.client.get(endpoint, params=params or None))

    async def get_item_by_id(self, list_title: str, item_id: int) -> Dict[str, Any]:
        key = ResponseCache.make_key("item", list_title, item_id)
        return await self.cache.get_or_load(key, lambda: self.client.get(item_endpoint(list_title, item_id)))

    async def _entity_type(self, list_title: str) -> str:
        list_info = await self.get_list_by_title(list_title)
        return list_info["d"]["ListItemEntityTypeFullName"]

    async def _current_etag(self, list_title: str, item_id: int) -> Optional[str]:
        # Read past the cache: a stale ETag would fail the IF-MATCH check.
        current = await self.client.get(item_endpoint(list_title, item_id))
        return current.get("d", {}).get("__metadata", {}).get("etag")

    async def create_item(self, list_title: str, item_data: Dict[str, Any]) -> Dict[str, Any]:
        body = {"__metadata": {"type": await self._entity_type(list_title)}, **item_data}
        result = await self.client.write(f"{list_endpoint(list_title)}/items", body)
        self._invalidate_items(list_title)
        self.logger.info("List item created", list_title=list_title)
        return result

    async def update_item(self, list_title: str, item_id: int, item_data: Dict[str, Any]) -> Dict[str, Any]:
        body = {"__metadata": {"type": await self._entity_type(list_title)}, **item_data}
        etag = await self._current_etag(list_title, item_id)
        result = await self.client.write(item_endpoint(list_title, item_id), body, http_method="MERGE", etag=etag)
        self._invalidate_items(list_title, item_id)
        self.logger.info("List item updated", list_title=list_title, item_id=item_id)
        return result

    async def delete_item(self, list_title: str, item_id: int) -> Dict[str, Any]:
        etag = await self._current_etag(list_title, item_id)
        result = await self.client.write(item_endpoint(list_title, item_id), http_method="DELETE", etag=etag)
        self._invalidate_items(list_title, item_id)
        self.logger.info("List item deleted", list_title=list_title, item_id=item_id)
        return result

    def _invalidate_items(self, list_title: str, item_id: Optional[int] = None) -> None:
        if item_id is not None:
            self.cache.delete(ResponseCache.make_key("item", list_title, item_id))
        self.cache.delete_prefix(ResponseCache.make_key("items", list_title, ""))
        self.cache.delete_prefix(ResponseCache.make_key("files", list_title, ""))

    # Platform search

    async def platform_search(
        self,
        query: str,
        *,
        row_limit: int = 50,
        start_row: int = 0,
        select_properties: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Run the site search API and flatten result rows to dictionaries."""
        params: Dict[str, Any] = {
            "querytext": literal(query),
            "rowlimit": row_limit,
            "startrow": start_row,
        }
        if select_properties:
            params["selectproperties"] = literal(select_properties)

        payload = await self.client.get("/_api/search/query", params=params)
        rows = (
            payload.get("d", {})
            .get("query", {})
            .get("PrimaryQueryResult", {})
            .get("RelevantResults", {})
            .get("Table", {})
            .get("Rows", {})
            .get("results", [])
        )
        return [
            {cell.get("Key"): cell.get("Value") for cell in row.get("Cells", {}).get("results", [])}
            for row in rows
        ]


def summarize_files(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Aggregate counts, sizes and date extremes over library items."""
    stats: Dict[str, Any] = {
        "totalFiles": len(items),
        "filesByType": {},
        "filesByAuthor": {},
        "filesByEditor": {},
        "filesByFolder": {},
        "totalSize": 0,
        "largestFile": None,
        "newestFile": None,
        "oldestFile": None,
    }
    newest: Optional[datetime] = None
    oldest: Optional[datetime] = None

    for item in items:
        file_info = item.get("File") or {}
        name = file_info.get("Name")
        if name:
            extension = name.rsplit(".", 1)[-1].lower()
            stats["filesByType"][extension] = stats["filesByType"].get(extension, 0) + 1

            size = _as_int(file_info.get("Length"))
            if size:
                stats["totalSize"] += size
                if stats["largestFile"] is None or size > stats["largestFile"]["size"]:
                    stats["largestFile"] = {
                        "name": name,
                        "size": size,
                        "url": file_info.get("ServerRelativeUrl"),
                    }

        author = (item.get("Author") or {}).get("Title")
        if author:
            stats["filesByAuthor"][author] = stats["filesByAuthor"].get(author, 0) + 1

        editor = (item.get("Editor") or {}).get("Title")
        if editor:
            stats["filesByEditor"][editor] = stats["filesByEditor"].get(editor, 0) + 1

        folder = item.get("FileDirRef")
        if folder:
            folder_name = folder.rstrip("/").split("/")[-1]
            stats["filesByFolder"][folder_name] = stats["filesByFolder"].get(folder_name, 0) + 1

        modified = parse_timestamp(item["Modified"]) if item.get("Modified") else None
        if modified is None:
            continue
        entry = {"name": item.get("FileLeafRef"), "date": item["Modified"], "url": item.get("FileRef")}
        if newest is None or modified > newest:
            newest = modified
            stats["newestFile"] = entry
        if oldest is None or modified < oldest:
            oldest = modified
            stats["oldestFile"] = entry

    return stats


def _as_int(value: Any) -> int:
    # File/Length arrives as a string in OData verbose payloads.
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
