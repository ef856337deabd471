"""
Shared fixtures for SharePoint Gateway tests.

``FakeSharePoint`` answers both the OAuth token endpoint and the site's
``/_api`` routes through ``httpx.MockTransport``, so every test runs the
real token provider and REST client against in-memory data.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from shared.config import SharePointGatewayConfig

SITE_URL = "https://contoso.sharepoint.com/sites/Team"
SITE_PATH = "/sites/Team"
TOKEN_HOST = "accounts.accesscontrol.windows.net"
TOKEN_ENDPOINT = f"https://{TOKEN_HOST}/tenant-123/tokens/OAuth/2"
API_KEY = "test-api-key-123"

LIST_PATH = re.compile(r"^/_api/web/lists/getbytitle\('(?P<title>(?:[^']|'')*)'\)(?P<rest>.*)$")
ITEM_PATH = re.compile(r"^/items\((?P<id>\d+)\)$")
FOLDER_PATH = re.compile(r"^/_api/web/GetFolderByServerRelativeUrl\('(?P<path>(?:[^']|'')*)'\)$")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_file(
    item_id: int,
    name: str,
    *,
    author: str = "Nicole Stirling",
    editor: Optional[str] = None,
    modified: str = "2024-03-05T10:00:00Z",
    folder: str = "/sites/Team/Documents/templates",
    size: int = 1024,
) -> Dict[str, Any]:
    return {
        "Id": item_id,
        "Title": name.rsplit(".", 1)[0],
        "FileLeafRef": name,
        "FileRef": f"{folder}/{name}",
        "FileDirRef": folder,
        "File": {"Name": name, "ServerRelativeUrl": f"{folder}/{name}", "Length": str(size)},
        "Author": {"Title": author},
        "Editor": {"Title": editor or author},
        "Modified": modified,
        "Created": modified,
    }


def json_response(status_code: int, payload: Any) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def list_not_found() -> httpx.Response:
    return json_response(
        404,
        {"error": {"code": "-2130575322, System.ArgumentException", "message": {"value": "List does not exist."}}},
    )


class FakeSharePoint:
    """In-memory SharePoint site plus token endpoint."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_count = 0
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.lists: Dict[str, List[Dict[str, Any]]] = {
            "Documents": [
                make_file(1, "Venue Research.docx", modified="2024-01-10T09:00:00Z", size=2048),
                make_file(2, "Budget.xlsx", modified="2024-03-05T10:00:00Z", size=4096),
                make_file(3, "Pitch.pptx", author="Christine Gooding", modified="2024-02-20T08:30:00Z", size=8192),
                make_file(4, "Contract.pdf", author="Sajjad", modified="2023-12-01T12:00:00Z",
                          folder="/sites/Team/Documents/clients", size=512),
            ],
            "Tasks": [
                {"Id": item_id, "Title": f"Task {item_id}", "Status": "Open"}
                for item_id in range(1, 9)
            ],
        }
        self.versions: Dict[Tuple[str, int], int] = {}

    # Inspection helpers

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        """Recorded site requests, optionally filtered by method and site-relative path prefix."""
        found = []
        for request in self.requests:
            if request.url.host == TOKEN_HOST:
                continue
            relative = request.url.path[len(SITE_PATH):]
            if method and request.method != method:
                continue
            if path and not relative.startswith(path):
                continue
            found.append(request)
        return found

    def token_requests(self) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.host == TOKEN_HOST]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    # Request handling

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == TOKEN_HOST:
            key = (request.method, "token")
        else:
            key = (request.method, request.url.path[len(SITE_PATH):])

        override = self.routes.get(key)
        if override is not None:
            return override(request)
        if key[1] == "token":
            return self._token()
        return self._site(request, key[1])

    def _token(self) -> httpx.Response:
        self.token_count += 1
        return json_response(
            200,
            {"token_type": "Bearer", "access_token": f"token-{self.token_count}", "expires_in": "3599"},
        )

    def _site(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "/_api/contextinfo" and request.method == "POST":
            return json_response(200, {"d": {"GetContextWebInformation": {"FormDigestValue": "digest-abc"}}})
        if path == "/_api/web" and request.method == "GET":
            return json_response(200, {"d": {"Title": "Team Site", "Url": SITE_URL}})
        if path == "/_api/web/lists":
            if request.method == "GET":
                return json_response(200, {"d": {"results": [{"Title": title} for title in self.lists]}})
            body = json.loads(request.content)
            self.lists[body["Title"]] = []
            return json_response(201, {"d": {"Title": body["Title"], "BaseTemplate": body["BaseTemplate"]}})
        if path == "/_api/search/query":
            return json_response(200, self._search_payload())

        folder_match = FOLDER_PATH.match(path)
        if folder_match:
            return json_response(200, {
                "d": {
                    "Name": folder_match.group("path").rsplit("/", 1)[-1],
                    "Folders": {"results": []},
                    "Files": {"results": [{"Name": "Checklist.docx"}]},
                }
            })

        list_match = LIST_PATH.match(path)
        if list_match:
            title = list_match.group("title").replace("''", "'")
            if title not in self.lists:
                return list_not_found()
            return self._list(request, title, list_match.group("rest"))

        return json_response(404, {"error": {"message": {"value": "Not found"}}})

    def _list(self, request: httpx.Request, title: str, rest: str) -> httpx.Response:
        tunneled = request.headers.get("X-HTTP-Method")
        items = self.lists[title]

        if rest == "":
            if tunneled == "DELETE":
                del self.lists[title]
                return httpx.Response(200)
            if tunneled == "MERGE":
                return httpx.Response(204)
            return json_response(200, {
                "d": {
                    "Title": title,
                    "ItemCount": len(items),
                    "ListItemEntityTypeFullName": f"SP.Data.{title}ListItem",
                }
            })

        if rest == "/folders":
            return json_response(200, {
                "d": {
                    "results": [
                        {"Name": "templates", "ServerRelativeUrl": f"{SITE_PATH}/{title}/templates"},
                        {"Name": "Marketing", "ServerRelativeUrl": f"{SITE_PATH}/{title}/Marketing"},
                        {"Name": "clients", "ServerRelativeUrl": f"{SITE_PATH}/{title}/clients"},
                    ]
                }
            })

        if rest == "/items":
            if request.method == "POST":
                body = json.loads(request.content)
                body.pop("__metadata", None)
                item = {"Id": max((i["Id"] for i in items), default=0) + 1, **body}
                items.append(item)
                return json_response(201, {"d": self._with_metadata(title, item)})
            top = request.url.params.get("$top")
            selected = items[: int(top)] if top else items
            return json_response(200, {"d": {"results": selected}})

        item_match = ITEM_PATH.match(rest)
        if item_match:
            item_id = int(item_match.group("id"))
            item = next((i for i in items if i["Id"] == item_id), None)
            if item is None:
                return json_response(404, {"error": {"message": {"value": "Item does not exist."}}})
            if tunneled == "DELETE":
                items.remove(item)
                return httpx.Response(200)
            if tunneled == "MERGE":
                body = json.loads(request.content)
                body.pop("__metadata", None)
                item.update(body)
                self.versions[(title, item_id)] = self.versions.get((title, item_id), 1) + 1
                return httpx.Response(204)
            return json_response(200, {"d": self._with_metadata(title, item)})

        return json_response(404, {"error": {"message": {"value": "Not found"}}})

    def _with_metadata(self, title: str, item: Dict[str, Any]) -> Dict[str, Any]:
        version = self.versions.get((title, item["Id"]), 1)
        return {"__metadata": {"etag": f'"{version}"', "type": f"SP.Data.{title}ListItem"}, **item}

    @staticmethod
    def _search_payload() -> Dict[str, Any]:
        def row(title: str, path: str) -> Dict[str, Any]:
            return {
                "Cells": {
                    "results": [
                        {"Key": "Title", "Value": title, "ValueType": "Edm.String"},
                        {"Key": "Path", "Value": path, "ValueType": "Edm.String"},
                    ]
                }
            }

        return {
            "d": {
                "query": {
                    "PrimaryQueryResult": {
                        "RelevantResults": {
                            "RowCount": 2,
                            "Table": {
                                "Rows": {
                                    "results": [
                                        row("Budget", f"{SITE_URL}/Documents/Budget.xlsx"),
                                        row("Pitch", f"{SITE_URL}/Documents/Pitch.pptx"),
                                    ]
                                }
                            },
                        }
                    }
                }
            }
        }


@pytest.fixture
def fake_sharepoint():
    """In-memory SharePoint site."""
    return FakeSharePoint()


@pytest.fixture
def clock():
    """Manually advanced clock shared by caches, token provider and limiter."""
    return FakeClock()


@pytest.fixture
def config():
    """Gateway configuration pointing at the fake site."""
    return SharePointGatewayConfig(
        api_key=API_KEY,
        sharepoint_tenant_id="tenant-123",
        sharepoint_client_id="client-abc",
        sharepoint_client_secret="secret-xyz",
        sharepoint_site_url=SITE_URL + "/",
        token_endpoint=TOKEN_ENDPOINT,
        environment="test",
        rate_limit_max_requests=1000,
    )
