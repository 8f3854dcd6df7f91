from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests
from requests.auth import HTTPBasicAuth

from ..errors import DeadlineExceededError, UnavailableError, ValidationError, api_error
from ..session import PROJECT_PREFIX, ROLE_PREFIX, SessionStore, get_json, get_many_json, session_key, set_json, set_many_json

JIRA_HTTP_TIMEOUT_SECONDS = max(1.0, float(os.environ.get("JIRA_HTTP_TIMEOUT_SECONDS", "30")))
USER_PAGE_SIZE = 50

logger = logging.getLogger(__name__)


def build_jira_session(email: str, api_token: str) -> requests.Session:
    if not email or not api_token:
        raise ValidationError("Jira email and api token required for basic auth")
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    session.auth = HTTPBasicAuth(str(email), str(api_token))
    return session


class JiraClient:
    """Thin wrapper over the Jira Cloud REST API.

    Every call issues exactly one request and raises a classified ``ConnectorError``
    on failure; there is no retry at this layer.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        *,
        store: Optional[SessionStore] = None,
        timeout: float = JIRA_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.store = store
        self.timeout = timeout

    def rebase(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def close(self) -> None:
        self.session.close()

    # -- transport -----------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, params=params, json=json_body, timeout=self.timeout)
        except requests.Timeout as exc:
            raise DeadlineExceededError(f"Jira API call timed out: {method} {path}") from exc
        except requests.RequestException as exc:
            raise UnavailableError(f"Jira API call failed: {method} {path}: {exc}") from exc
        if response.status_code >= 400:
            snippet = response.text[:200]
            logger.warning(
                "jira_api_error",
                extra={"url": url, "method": method, "status": response.status_code},
            )
            raise api_error(
                response.status_code,
                f"Jira API call failed ({response.status_code}): {snippet}",
                body=snippet,
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, body: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("POST", path, params=params, json_body=body)

    def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._request("DELETE", path, params=params)

    # -- users ---------------------------------------------------------------------

    def myself(self) -> Dict[str, Any]:
        return self.get("/rest/api/3/myself") or {}

    def find_users(self, start_at: int, max_results: int) -> List[Dict[str, Any]]:
        payload = self.get("/rest/api/3/users/search", {"startAt": start_at, "maxResults": max_results})
        return list(payload or [])

    def iter_all_users(self, page_size: int = USER_PAGE_SIZE) -> Iterator[Dict[str, Any]]:
        start_at = 0
        while True:
            users = self.find_users(start_at, page_size)
            for user in users:
                yield user
            if len(users) < page_size:
                break
            start_at += len(users)

    def create_user(self, email: str, products: List[str]) -> Dict[str, Any]:
        return self.post("/rest/api/3/user", {"emailAddress": email, "products": products}) or {}

    # -- groups --------------------------------------------------------------------

    def bulk_groups(self, start_at: int, max_results: int) -> List[Dict[str, Any]]:
        payload = self.get("/rest/api/3/group/bulk", {"startAt": start_at, "maxResults": max_results}) or {}
        return list(payload.get("values") or [])

    def group_members(self, group_id: str, start_at: int, max_results: int) -> List[Dict[str, Any]]:
        payload = self.get(
            "/rest/api/3/group/member",
            {"groupId": group_id, "startAt": start_at, "maxResults": max_results},
        ) or {}
        return list(payload.get("values") or [])

    def add_user_to_group(self, group_id: str, account_id: str) -> None:
        self.post("/rest/api/3/group/user", {"accountId": account_id}, params={"groupId": group_id})

    def remove_user_from_group(self, group_id: str, account_id: str) -> None:
        self.delete("/rest/api/3/group/user", {"groupId": group_id, "accountId": account_id})

    # -- roles ---------------------------------------------------------------------

    def list_roles(self) -> List[Dict[str, Any]]:
        return list(self.get("/rest/api/3/role") or [])

    def get_role(self, role_id: int) -> Dict[str, Any]:
        key = session_key(ROLE_PREFIX, role_id)
        cached, found = get_json(self.store, key)
        if found:
            return cached
        role = self.get(f"/rest/api/3/role/{role_id}") or {}
        set_json(self.store, key, role)
        return role

    def get_project_role(self, project_id: str, role_id: int) -> Dict[str, Any]:
        return self.get(f"/rest/api/3/project/{project_id}/role/{role_id}") or {}

    def add_user_to_project_role(self, project_id: str, role_id: int, account_id: str) -> None:
        self.post(f"/rest/api/3/project/{project_id}/role/{role_id}", {"user": [account_id]})

    def remove_user_from_project_role(self, project_id: str, role_id: int, account_id: str) -> None:
        self.delete(f"/rest/api/3/project/{project_id}/role/{role_id}", {"user": account_id})

    # -- projects ------------------------------------------------------------------

    def find_projects(
        self,
        start_at: int,
        max_results: int,
        *,
        expand: Optional[str] = None,
        keys: Optional[List[str]] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        params: Dict[str, Any] = {"startAt": start_at, "maxResults": max_results}
        if expand:
            params["expand"] = expand
        if keys:
            params["keys"] = list(keys)
        payload = self.get("/rest/api/3/project/search", params) or {}
        values = list(payload.get("values") or [])
        total = int(payload.get("total") or len(values))
        return values, total

    def iter_all_projects(self, page_size: int = USER_PAGE_SIZE) -> Iterator[Dict[str, Any]]:
        start_at = 0
        while True:
            projects, _ = self.find_projects(start_at, page_size)
            for project in projects:
                yield project
            if len(projects) < page_size:
                break
            start_at += len(projects)

    def get_project(self, project_id_or_key: str) -> Dict[str, Any]:
        key = session_key(PROJECT_PREFIX, project_id_or_key)
        cached, found = get_json(self.store, key)
        if found:
            return cached
        project = self.get(f"/rest/api/3/project/{project_id_or_key}") or {}
        set_json(self.store, key, project)
        return project

    def get_projects(self, project_ids: List[str]) -> List[Dict[str, Any]]:
        keys = [session_key(PROJECT_PREFIX, project_id) for project_id in project_ids]
        cached = get_many_json(self.store, keys)
        projects: List[Dict[str, Any]] = []
        fetched: Dict[str, Any] = {}
        for project_id, key in zip(project_ids, keys):
            if key in cached:
                projects.append(cached[key])
                continue
            project = self.get(f"/rest/api/3/project/{project_id}") or {}
            projects.append(project)
            fetched[key] = project
        set_many_json(self.store, fetched)
        return projects

    # -- tickets -------------------------------------------------------------------

    def get_create_meta_fields(
        self,
        project_id: str,
        issue_type_id: str,
        start_at: int,
        max_results: int,
    ) -> Tuple[List[Dict[str, Any]], int]:
        payload = self.get(
            f"/rest/api/3/issue/createmeta/{project_id}/issuetypes/{issue_type_id}",
            {"startAt": start_at, "maxResults": max_results},
        ) or {}
        fields = list(payload.get("fields") or payload.get("values") or [])
        total = int(payload.get("total") or len(fields))
        return fields, total

    def search_statuses(
        self,
        project_id: str,
        start_at: int,
        max_results: int,
        status_category: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int, int]:
        params: Dict[str, Any] = {"projectId": project_id, "startAt": start_at, "maxResults": max_results}
        if status_category:
            params["statusCategory"] = status_category
        payload = self.get("/rest/api/3/statuses/search", params) or {}
        values = list(payload.get("values") or [])
        total = int(payload.get("total") or len(values))
        page_size = int(payload.get("maxResults") or max_results)
        return values, total, page_size

    def get_issue(self, issue_id_or_key: str) -> Dict[str, Any]:
        return self.get(f"/rest/api/2/issue/{issue_id_or_key}") or {}

    def create_issue(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.post("/rest/api/2/issue", payload) or {}

    # -- audit ---------------------------------------------------------------------

    def get_audit_records(self, *, filter_text: str, from_time: str, offset: int, limit: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"offset": offset, "limit": limit, "filter": filter_text}
        if from_time:
            params["from"] = from_time
        return self.get("/rest/api/3/auditing/record", params) or {}


__all__ = ["JIRA_HTTP_TIMEOUT_SECONDS", "JiraClient", "build_jira_session"]
