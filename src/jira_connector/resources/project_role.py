from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from ..errors import ConnectorError, NotFoundError, ValidationError, wrap_error
from ..models import Entitlement, Grant, Resource, ResourceId, entitlement_id, new_entitlement, new_grant
from ..pagination import RESOURCE_PAGE_SIZE, get_page_token_from_offset, is_last_page, parse_page_token
from .base import (
    ASSIGNED_ENTITLEMENT,
    MEMBER_ENTITLEMENT,
    RESOURCE_TYPE_GROUP,
    RESOURCE_TYPE_PROJECT_ROLE,
    RESOURCE_TYPE_USER,
    ResourceBuilder,
)
from .role import parse_role_id_from_role_link, role_links
from .user import user_id

USER_ROLE_ACTOR = "atlassian-user-role-actor"
GROUP_ROLE_ACTOR = "atlassian-group-role-actor"

logger = logging.getLogger(__name__)


def project_role_id(project_id: str, role_id: Any) -> str:
    return f"{project_id}:{role_id}"


def parse_project_role_id(resource_id: str) -> Tuple[str, int]:
    parts = resource_id.split(":")
    if len(parts) != 2 or not parts[0]:
        raise ValidationError(f"invalid project role id {resource_id!r}, expected 'projectID:roleID'")
    try:
        return parts[0], int(parts[1])
    except ValueError as exc:
        raise ValidationError(f"invalid role id in project role id {resource_id!r}") from exc


def project_role_resource(project: Mapping[str, Any], role: Mapping[str, Any]) -> Resource:
    project_id = str(project.get("id") or "")
    return Resource(
        id=ResourceId(resource_type=RESOURCE_TYPE_PROJECT_ROLE.id, resource=project_role_id(project_id, role.get("id"))),
        display_name=f"{project.get('name')} - {role.get('name')}",
        profile={
            "name": role.get("name"),
            "role_id": role.get("id"),
            "project_id": project_id,
            "description": role.get("description") or "",
        },
        traits={"role": {}},
    )


class ProjectRoleBuilder(ResourceBuilder):
    RESOURCE_TYPE = RESOURCE_TYPE_PROJECT_ROLE

    def list(self, page_token: str = "") -> Tuple[List[Resource], str]:
        bag, offset = parse_page_token(page_token, RESOURCE_TYPE_PROJECT_ROLE.id)
        try:
            page, _ = self.client.find_projects(offset, RESOURCE_PAGE_SIZE)
            # search results omit role links; full projects are memoized in the session store
            projects = self.client.get_projects([str(project.get("id")) for project in page])
        except Exception as exc:
            raise wrap_error(exc, "failed to get projects") from exc

        resources: List[Resource] = []
        for project in projects:
            for link in role_links(project):
                role_id = parse_role_id_from_role_link(link)
                try:
                    role = self.client.get_role(role_id)
                except Exception as exc:
                    raise wrap_error(exc, "failed to get role") from exc
                resources.append(project_role_resource(project, role))

        if is_last_page(len(page), RESOURCE_PAGE_SIZE):
            return resources, ""
        return resources, get_page_token_from_offset(bag, offset + RESOURCE_PAGE_SIZE)

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        project_id, role_id = parse_project_role_id(resource.id.resource)
        try:
            project = self.client.get_project(project_id)
            role = self.client.get_role(role_id)
        except Exception as exc:
            raise wrap_error(exc, "failed to get project role") from exc
        return [
            new_entitlement(
                resource,
                ASSIGNED_ENTITLEMENT,
                display_name=f"{resource.display_name} Assignment",
                description=f"Assigned to {role.get('name')} role on the {project.get('name')} project",
                grantable_to=(RESOURCE_TYPE_USER.id, RESOURCE_TYPE_GROUP.id),
            )
        ]

    def grants(self, resource: Resource, page_token: str = "") -> Tuple[List[Grant], str]:
        project_id, role_id = parse_project_role_id(resource.id.resource)
        try:
            project_role = self.client.get_project_role(project_id, role_id)
        except NotFoundError as exc:
            raise NotFoundError(f"failed to get role actors for project: {exc}", status_code=404) from exc
        except Exception as exc:
            raise wrap_error(exc, "failed to get role actors for project") from exc

        grants: List[Grant] = []
        for actor in project_role.get("actors") or []:
            actor_type = actor.get("type")
            if actor_type == USER_ROLE_ACTOR:
                account_id = (actor.get("actorUser") or {}).get("accountId") or ""
                grants.append(new_grant(resource, ASSIGNED_ENTITLEMENT, user_id(account_id)))
            elif actor_type == GROUP_ROLE_ACTOR:
                group_id = (actor.get("actorGroup") or {}).get("groupId") or ""
                principal = ResourceId(resource_type=RESOURCE_TYPE_GROUP.id, resource=group_id)
                expandable = {
                    "expandable": {
                        "entitlement_ids": [f"{RESOURCE_TYPE_GROUP.id}:{group_id}:{MEMBER_ENTITLEMENT}"],
                        "resource_type_ids": [RESOURCE_TYPE_USER.id],
                    }
                }
                grants.append(new_grant(resource, ASSIGNED_ENTITLEMENT, principal, expandable))
            else:
                logger.warning("jira_unknown_role_actor_type", extra={"type": actor_type})
        return grants, ""

    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        if principal.id.resource_type != RESOURCE_TYPE_USER.id:
            logger.warning(
                "jira_project_role_grant_rejected",
                extra={"principalType": principal.id.resource_type, "principalId": principal.id.resource},
            )
            raise ValidationError("jira-connector: only users can be granted to project roles")
        if entitlement.id != entitlement_id(entitlement.resource, ASSIGNED_ENTITLEMENT):
            logger.warning("jira_project_role_invalid_entitlement", extra={"entitlementId": entitlement.id})
            raise ValidationError("jira-connector: invalid entitlement ID")
        project_id, role_id = parse_project_role_id(entitlement.resource.id.resource)
        try:
            self.client.add_user_to_project_role(project_id, role_id, principal.id.resource)
        except ConnectorError as exc:
            if "already a member of the project role" in str(exc):
                logger.info(
                    "jira_project_role_grant_exists",
                    extra={"projectId": project_id, "roleId": role_id, "user": principal.id.resource},
                )
                return {}
            logger.error(
                "jira_project_role_grant_failed",
                extra={"projectId": project_id, "roleId": role_id, "user": principal.id.resource, "error": str(exc)},
            )
            raise
        return {}

    def revoke(self, grant: Grant) -> Dict[str, Any]:
        project_id, role_id = parse_project_role_id(grant.entitlement.resource.id.resource)
        try:
            self.client.remove_user_from_project_role(project_id, role_id, grant.principal.resource)
        except Exception as exc:
            raise wrap_error(exc, "failed to remove user from project role") from exc
        logger.info(
            "jira_project_role_revoked",
            extra={"projectId": project_id, "roleId": role_id, "user": grant.principal.resource},
        )
        return {}
