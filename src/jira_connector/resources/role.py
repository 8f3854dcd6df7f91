from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from ..errors import ConnectorError, ValidationError, wrap_error
from ..models import Entitlement, Grant, Resource, ResourceId, new_entitlement, new_grant
from .base import APPOINTED_ENTITLEMENT, RESOURCE_TYPE_GROUP, RESOURCE_TYPE_ROLE, RESOURCE_TYPE_USER, ResourceBuilder
from .user import user_id

# project payloads only link roles, e.g. https://site.atlassian.net/rest/api/3/project/10001/role/10002
ROLE_LINK_PATTERN = re.compile(r"/(\d+)/?$")

logger = logging.getLogger(__name__)


def parse_role_id_from_role_link(role_link: str) -> int:
    match = ROLE_LINK_PATTERN.search(role_link or "")
    if not match:
        raise ValidationError(f"failed to parse role id from role link: role id not found in {role_link!r}")
    return int(match.group(1))


def role_links(project: Mapping[str, Any]) -> List[str]:
    roles = project.get("roles") or {}
    if isinstance(roles, dict):
        return [str(link) for link in roles.values()]
    return [str(link) for link in roles]


def role_resource(role: Mapping[str, Any], display_name: str = "") -> Resource:
    name = str(role.get("name") or "")
    return Resource(
        id=ResourceId(resource_type=RESOURCE_TYPE_ROLE.id, resource=str(role.get("id") or "")),
        display_name=display_name or name,
        profile={
            "name": name,
            "role_id": role.get("id"),
            "description": role.get("description") or "",
        },
        traits={"role": {}},
    )


def role_project_names(client: Any, projects: Iterable[Mapping[str, Any]]) -> Dict[str, List[str]]:
    names: Dict[str, List[str]] = {}
    for summary in projects:
        project = client.get_project(str(summary.get("id")))
        project_name = str(project.get("name") or summary.get("name") or "")
        for link in role_links(project):
            role_key = str(parse_role_id_from_role_link(link))
            bucket = names.setdefault(role_key, [])
            if project_name and project_name not in bucket:
                bucket.append(project_name)
    return names


class RoleBuilder(ResourceBuilder):
    RESOURCE_TYPE = RESOURCE_TYPE_ROLE

    def list(self, page_token: str = "") -> Tuple[List[Resource], str]:
        try:
            roles = self.client.list_roles()
        except Exception as exc:
            raise wrap_error(exc, "failed to get roles") from exc

        try:
            project_names = role_project_names(self.client, self.client.iter_all_projects())
        except ConnectorError as exc:
            logger.warning("jira_role_enrichment_failed", extra={"error": str(exc)})
            project_names = {}

        resources: List[Resource] = []
        for role in roles:
            name = str(role.get("name") or "")
            owners = project_names.get(str(role.get("id")))
            display_name = f"{', '.join(owners)} - {name}" if owners else name
            resources.append(role_resource(role, display_name))
        return resources, ""

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        display_name = f"{resource.display_name} role {APPOINTED_ENTITLEMENT}"
        return [
            new_entitlement(
                resource,
                APPOINTED_ENTITLEMENT,
                display_name=display_name,
                description=f"Appointed to {resource.display_name} role",
                grantable_to=(RESOURCE_TYPE_USER.id,),
            ),
            new_entitlement(
                resource,
                APPOINTED_ENTITLEMENT,
                display_name=display_name,
                description=f"Members appointed to {resource.display_name} role",
                grantable_to=(RESOURCE_TYPE_GROUP.id,),
            ),
        ]

    def grants(self, resource: Resource, page_token: str = "") -> Tuple[List[Grant], str]:
        try:
            role_id = int(resource.id.resource)
        except ValueError as exc:
            raise wrap_error(exc, "failed to convert role ID to integer") from exc
        try:
            role = self.client.get_role(role_id)
        except Exception as exc:
            raise wrap_error(exc, "failed to get roles") from exc

        grants: List[Grant] = []
        for actor in role.get("actors") or []:
            actor_user = actor.get("actorUser")
            if actor_user and actor_user.get("accountId"):
                grants.append(new_grant(resource, APPOINTED_ENTITLEMENT, user_id(actor_user["accountId"])))
        for actor in role.get("actors") or []:
            actor_group = actor.get("actorGroup") or {}
            group_key = actor_group.get("groupId") or actor_group.get("name")
            if group_key:
                # group resources are keyed by groupId; older payloads only carry the name
                group = ResourceId(resource_type=RESOURCE_TYPE_GROUP.id, resource=str(group_key))
                grants.append(new_grant(resource, APPOINTED_ENTITLEMENT, group))
        return grants, ""
