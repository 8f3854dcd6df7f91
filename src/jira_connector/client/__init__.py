from .atlassian_admin import AtlassianAdminClient
from .jira_http import JiraClient, build_jira_session
from .service_account import is_service_account, resolve_cloud_id, resolve_url

__all__ = [
    "AtlassianAdminClient",
    "JiraClient",
    "build_jira_session",
    "is_service_account",
    "resolve_cloud_id",
    "resolve_url",
]
