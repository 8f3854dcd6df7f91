from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ValidationError

ENV_PREFIX = "BATON_"
TRUE_VALUES = {"1", "true", "yes", "y", "on"}

# (parameter key, accepted aliases)
PARAMETER_ALIASES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("jira_url", ("jira-url", "jiraUrl", "base_url", "baseUrl")),
    ("jira_email", ("jira-email", "jiraEmail", "username")),
    ("jira_api_token", ("jira-api-token", "jiraApiToken", "api_token")),
    ("jira_project_keys", ("jira-project-keys", "projectKeys", "project_keys")),
    ("skip_project_participants", ("skip-project-participants", "skipProjectParticipants")),
    ("skip_customer_users", ("skip-customer-users", "skipCustomerUsers")),
    ("ticketing", ("ticketing-enabled", "ticketingEnabled")),
    ("atlassian_org_id", ("atlassian-org-id", "atlassianOrgId")),
    ("atlassian_api_token", ("atlassian-api-token", "atlassianApiToken")),
)


@dataclass(frozen=True)
class JiraConnectorConfig:
    jira_url: str
    jira_email: str
    jira_api_token: str
    project_keys: List[str] = field(default_factory=list)
    skip_project_participants: bool = False
    skip_customer_users: bool = False
    ticketing: bool = False
    atlassian_org_id: Optional[str] = None
    atlassian_api_token: Optional[str] = None

    @property
    def admin_api_enabled(self) -> bool:
        return bool(self.atlassian_org_id and self.atlassian_api_token)


def load_config(params: Optional[Mapping[str, Any]] = None, env: Optional[Mapping[str, str]] = None) -> JiraConnectorConfig:
    """Build the connector config from explicit parameters, falling back to ``BATON_*`` variables."""
    resolved = _normalize_parameters(params or {}, os.environ if env is None else env)
    missing = [key for key in ("jira_url", "jira_email", "jira_api_token") if not resolved.get(key)]
    if missing:
        raise ValidationError(f"jira-connector: missing required configuration: {', '.join(missing)}")
    org_id = _normalize_string(resolved.get("atlassian_org_id"))
    admin_token = _normalize_string(resolved.get("atlassian_api_token"))
    if org_id and not admin_token:
        raise ValidationError("jira-connector: atlassian_api_token is required when atlassian_org_id is set")
    return JiraConnectorConfig(
        jira_url=str(resolved["jira_url"]).strip(),
        jira_email=str(resolved["jira_email"]).strip(),
        jira_api_token=str(resolved["jira_api_token"]).strip(),
        project_keys=_normalize_project_keys(resolved.get("jira_project_keys")),
        skip_project_participants=_normalize_bool(resolved.get("skip_project_participants")),
        skip_customer_users=_normalize_bool(resolved.get("skip_customer_users")),
        ticketing=_normalize_bool(resolved.get("ticketing")),
        atlassian_org_id=org_id,
        atlassian_api_token=admin_token,
    )


def _normalize_parameters(params: Mapping[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    resolved: Dict[str, Any] = {}
    for key, aliases in PARAMETER_ALIASES:
        for candidate in (key, *aliases):
            value = params.get(candidate)
            if value not in (None, ""):
                resolved[key] = value
                break
        if key in resolved:
            continue
        env_value = env.get(_env_name(key))
        if env_value not in (None, ""):
            resolved[key] = env_value
    return resolved


def _env_name(key: str) -> str:
    return f"{ENV_PREFIX}{key.upper()}"


def _normalize_string(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def _normalize_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() in TRUE_VALUES


def _normalize_project_keys(raw: Any) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        raw_list = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        raw_list = list(raw)
    else:
        return []
    return [str(entry).strip() for entry in raw_list if str(entry).strip()]


__all__ = ["JiraConnectorConfig", "load_config"]
