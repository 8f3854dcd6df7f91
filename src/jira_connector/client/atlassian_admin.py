from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..errors import DeadlineExceededError, UnavailableError, ValidationError, api_error
from .jira_http import JIRA_HTTP_TIMEOUT_SECONDS

ATLASSIAN_API_URL = "https://api.atlassian.com"
USERS_ENDPOINT = "/admin/v2/orgs/{org_id}/directories/-/users"
GROUPS_ENDPOINT = "/admin/v2/orgs/{org_id}/directories/-/groups"
WORKSPACES_ENDPOINT = "/admin/v2/orgs/{org_id}/workspaces"
MAX_ITEMS_PER_PAGE = 100

logger = logging.getLogger(__name__)


def clamp_page_size(page_size: int) -> int:
    return max(0, min(int(page_size), MAX_ITEMS_PER_PAGE))


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or "Error response empty"
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        return f"API error response detail: {errors[0].get('detail')}"
    return "Error response empty"


class AtlassianAdminClient:
    """Atlassian organization admin API (bearer token), used to enumerate site users and groups."""

    def __init__(
        self,
        org_id: str,
        access_token: str,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = ATLASSIAN_API_URL,
        timeout: float = JIRA_HTTP_TIMEOUT_SECONDS,
    ) -> None:
        if not org_id or not access_token:
            raise ValidationError("Atlassian organization id and access token are required")
        self.org_id = org_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Authorization": f"Bearer {access_token}",
            }
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, params=params, json=json_body, timeout=self.timeout)
        except requests.Timeout as exc:
            raise DeadlineExceededError(f"Atlassian admin API call timed out: {method} {path}") from exc
        except requests.RequestException as exc:
            raise UnavailableError(f"Atlassian admin API call failed: {method} {path}: {exc}") from exc
        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning(
                "atlassian_admin_api_error",
                extra={"url": url, "method": method, "status": response.status_code},
            )
            raise api_error(response.status_code, detail, body=response.text[:200])
        if not response.content:
            return {}
        return response.json()

    def _list_directory(
        self,
        endpoint: str,
        site_id: str,
        page_token: str,
        page_size: int,
    ) -> Tuple[List[Dict[str, Any]], str]:
        params: Dict[str, Any] = {"resourceIds": site_id, "limit": clamp_page_size(page_size)}
        if page_token:
            params["cursor"] = page_token
        payload = self._request("GET", endpoint.format(org_id=self.org_id), params=params)
        links = payload.get("links") or {}
        return list(payload.get("data") or []), str(links.get("next") or "")

    def list_users(
        self,
        site_id: str,
        page_token: str = "",
        page_size: int = MAX_ITEMS_PER_PAGE,
    ) -> Tuple[List[Dict[str, Any]], str]:
        return self._list_directory(USERS_ENDPOINT, site_id, page_token, page_size)

    def list_groups(
        self,
        site_id: str,
        page_token: str = "",
        page_size: int = MAX_ITEMS_PER_PAGE,
    ) -> Tuple[List[Dict[str, Any]], str]:
        return self._list_directory(GROUPS_ENDPOINT, site_id, page_token, page_size)

    def list_workspaces(self, page_token: str = "") -> Tuple[List[Dict[str, Any]], str]:
        # cursor and limit are mutually exclusive here; the cursor travels in the body
        body: Dict[str, Any] = {}
        if page_token:
            body["cursor"] = page_token
        payload = self._request("POST", WORKSPACES_ENDPOINT.format(org_id=self.org_id), json_body=body)
        links = payload.get("links") or {}
        return list(payload.get("data") or []), str(links.get("next") or "")

    def resolve_site_ids(self, site_url: str) -> List[str]:
        workspaces: List[Dict[str, Any]] = []
        page_token = ""
        while True:
            page, page_token = self.list_workspaces(page_token)
            workspaces.extend(page)
            if not page_token:
                break
        site_ids = [
            str(workspace.get("id"))
            for workspace in workspaces
            if (workspace.get("attributes") or {}).get("hostUrl") == site_url
        ]
        if not site_ids:
            raise ValidationError("site id not found")
        logger.info("atlassian_site_ids_resolved", extra={"siteUrl": site_url, "count": len(site_ids)})
        return site_ids


__all__ = ["AtlassianAdminClient", "MAX_ITEMS_PER_PAGE", "clamp_page_size"]
