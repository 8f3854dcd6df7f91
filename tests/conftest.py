from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import pytest

from jira_connector.client.jira_http import JiraClient
from jira_connector.session import SessionStore

BASE_URL = "https://example.atlassian.net"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class RoutingSession:
    """Stands in for ``requests.Session``; routes by HTTP method and URL path."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any], Any]] = []
        self.headers: Dict[str, str] = {}
        self.closed = False

    def route(self, method: str, path: str, handler: Any) -> None:
        self.routes[(method, path)] = handler

    def request(self, method: str, url: str, params=None, json=None, timeout=None, headers=None) -> FakeResponse:
        path = urlparse(url).path
        params = dict(params or {})
        self.calls.append((method, path, params, json))
        handler = self.routes.get((method, path))
        if handler is None:
            return FakeResponse(404, {"errorMessages": [f"no route for {method} {path}"]})
        result = handler(params, json) if callable(handler) else handler
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse(200, result)

    def get(self, url: str, headers=None, timeout=None) -> FakeResponse:
        return self.request("GET", url, headers=headers, timeout=timeout)

    def paths(self, method: str = "GET") -> List[str]:
        return [path for call_method, path, _, _ in self.calls if call_method == method]

    def close(self) -> None:
        self.closed = True


def paged(values: List[Any], key: Optional[str] = "values") -> Callable[[Dict[str, Any], Any], Any]:
    """Handler serving ``values`` in startAt/maxResults pages, wrapped under ``key`` with a total."""

    def handler(params: Dict[str, Any], _body: Any) -> Any:
        start = int(params.get("startAt", 0))
        size = int(params.get("maxResults", 50))
        page = values[start : start + size]
        if key is None:
            return page
        return {key: page, "total": len(values), "startAt": start, "maxResults": size}

    return handler


def make_users(count: int, prefix: str = "user") -> List[Dict[str, Any]]:
    return [
        {
            "accountId": f"{prefix}-{index}",
            "accountType": "atlassian",
            "displayName": f"User {index}",
            "emailAddress": f"{prefix}{index}@example.com",
            "active": True,
        }
        for index in range(count)
    ]


@pytest.fixture
def jira_session() -> RoutingSession:
    return RoutingSession()


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def jira_client(jira_session, session_store) -> JiraClient:
    return JiraClient(BASE_URL, jira_session, store=session_store, timeout=5)
