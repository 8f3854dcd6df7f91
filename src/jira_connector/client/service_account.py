"""Scoped-token base URL resolution for Atlassian service accounts.

Service accounts authenticate against ``api.atlassian.com/ex/jira/{cloudId}``
instead of the site URL, so the cloud id has to be looked up first.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from ..errors import ConnectorError, ValidationError, wrap_error
from .jira_http import JIRA_HTTP_TIMEOUT_SECONDS

SERVICE_ACCOUNT_DOMAIN = "@serviceaccount.atlassian.com"
SCOPED_API_URL = "https://api.atlassian.com/ex/jira/{cloud_id}"

logger = logging.getLogger(__name__)


def is_service_account(email: str) -> bool:
    return bool(email) and email.endswith(SERVICE_ACCOUNT_DOMAIN)


def resolve_cloud_id(jira_url: str, session: Optional[requests.Session] = None) -> str:
    if not jira_url:
        raise ValidationError("jira URL cannot be empty")
    http = session or requests.Session()
    url = f"{jira_url.rstrip('/')}/_edge/tenant_info"
    try:
        response = http.get(url, headers={"Accept": "application/json"}, timeout=JIRA_HTTP_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        raise wrap_error(exc, "failed to fetch tenant_info") from exc
    if response.status_code != 200:
        raise ConnectorError(
            f"tenant_info endpoint returned status {response.status_code}",
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise ConnectorError(f"failed to decode tenant_info response: {exc}") from exc
    cloud_id = payload.get("cloudId") if isinstance(payload, dict) else None
    if not cloud_id:
        raise ConnectorError("cloudId field not found or empty in tenant_info response")
    return str(cloud_id)


def resolve_url(email: str, jira_url: str, session: Optional[requests.Session] = None) -> str:
    """Return the API base URL to use for ``email``: scoped for service accounts, the site URL otherwise."""
    if not email:
        raise ValidationError("email cannot be empty")
    if not jira_url:
        raise ValidationError("jira URL cannot be empty")
    if not is_service_account(email):
        return jira_url
    try:
        cloud_id = resolve_cloud_id(jira_url, session=session)
    except ConnectorError as exc:
        raise ConnectorError(f"failed to resolve cloud ID: {exc}", status_code=exc.status_code) from exc
    scoped_url = SCOPED_API_URL.format(cloud_id=cloud_id)
    logger.info("jira_service_account_url_resolved", extra={"jiraUrl": jira_url, "scopedUrl": scoped_url})
    return scoped_url


__all__ = ["is_service_account", "resolve_cloud_id", "resolve_url"]
