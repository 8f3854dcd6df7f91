from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from ..errors import wrap_error
from ..models import PURPOSE_PERMISSION, Entitlement, Grant, Resource, ResourceId, new_entitlement, new_grant
from ..pagination import RESOURCE_PAGE_SIZE, get_page_token_from_offset, is_last_page, parse_page_token
from .base import LEAD_ENTITLEMENT, PARTICIPATE_ENTITLEMENT, RESOURCE_TYPE_PROJECT, RESOURCE_TYPE_USER, ResourceBuilder
from .role import parse_role_id_from_role_link, role_links, role_resource
from .user import user_id, user_resource

logger = logging.getLogger(__name__)


def project_resource(project: Mapping[str, Any]) -> Resource:
    name = str(project.get("name") or "")
    category = (project.get("projectCategory") or {}).get("name") or ""
    return Resource(
        id=ResourceId(resource_type=RESOURCE_TYPE_PROJECT.id, resource=str(project.get("id") or "")),
        display_name=name,
        profile={
            "name": name,
            "project_id": project.get("id"),
            "category": category,
        },
        traits={"group": {}},
    )


class ProjectBuilder(ResourceBuilder):
    RESOURCE_TYPE = RESOURCE_TYPE_PROJECT

    def __init__(
        self,
        client: Any,
        *,
        skip_project_participants: bool = False,
        skip_customer_users: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(client, **kwargs)
        self.skip_project_participants = skip_project_participants
        self.skip_customer_users = skip_customer_users

    def list(self, page_token: str = "") -> Tuple[List[Resource], str]:
        bag, offset = parse_page_token(page_token, RESOURCE_TYPE_PROJECT.id)
        try:
            projects, _ = self.client.find_projects(offset, RESOURCE_PAGE_SIZE)
        except Exception as exc:
            raise wrap_error(exc, "failed to get projects") from exc
        resources = [project_resource(project) for project in projects]
        if is_last_page(len(projects), RESOURCE_PAGE_SIZE):
            return resources, ""
        return resources, get_page_token_from_offset(bag, offset + RESOURCE_PAGE_SIZE)

    def _roles_for_project(self, project: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return [self.client.get_role(parse_role_id_from_role_link(link)) for link in role_links(project)]

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        entitlements = [
            new_entitlement(
                resource,
                PARTICIPATE_ENTITLEMENT,
                display_name=f"{resource.display_name} project {PARTICIPATE_ENTITLEMENT}",
                description=f"Participating on {resource.display_name} project",
                grantable_to=(RESOURCE_TYPE_USER.id,),
            ),
            new_entitlement(
                resource,
                LEAD_ENTITLEMENT,
                display_name=f"{resource.display_name} project {LEAD_ENTITLEMENT}",
                description=f"Leading {resource.display_name} project",
                grantable_to=(RESOURCE_TYPE_USER.id,),
            ),
        ]
        try:
            project = self.client.get_project(resource.id.resource)
            roles = self._roles_for_project(project)
        except Exception as exc:
            raise wrap_error(exc, "failed to get roles for project") from exc
        for role in roles:
            role_name = str(role.get("name") or "")
            entitlements.append(
                new_entitlement(
                    resource,
                    role_name,
                    display_name=f"{resource.display_name} project {role_name}",
                    description=f"Role in {resource.display_name} project",
                    grantable_to=(RESOURCE_TYPE_USER.id,),
                    purpose=PURPOSE_PERMISSION,
                )
            )
        return entitlements

    def grants(self, resource: Resource, page_token: str = "") -> Tuple[List[Grant], str]:
        try:
            project = self.client.get_project(resource.id.resource)
        except Exception as exc:
            raise wrap_error(exc, "failed to get project") from exc

        grants: List[Grant] = []
        grants.extend(self._lead_grants(resource, project))
        try:
            grants.extend(self._public_project_grants(resource, project))
        except Exception as exc:
            raise wrap_error(exc, "failed to get participate grants") from exc
        try:
            roles = self._roles_for_project(project)
        except Exception as exc:
            raise wrap_error(exc, "failed to get roles for project") from exc
        grants.extend(new_grant(resource, PARTICIPATE_ENTITLEMENT, role_resource(role).id) for role in roles)
        try:
            grants.extend(self._role_actor_grants(resource, roles))
        except Exception as exc:
            raise wrap_error(exc, "failed to get user permission grants") from exc
        return grants, ""

    def _lead_grants(self, resource: Resource, project: Mapping[str, Any]) -> List[Grant]:
        lead = project.get("lead") or {}
        if not lead.get("accountId"):
            return []
        return [new_grant(resource, LEAD_ENTITLEMENT, user_resource(lead).id)]

    def _public_project_grants(self, resource: Resource, project: Mapping[str, Any]) -> List[Grant]:
        # one grant per user in the organization: a full user listing per public project
        if project.get("isPrivate") or self.skip_project_participants:
            return []
        grants = [
            new_grant(resource, PARTICIPATE_ENTITLEMENT, user_id(str(user.get("accountId"))))
            for user in self.client.iter_all_users()
            if user.get("accountId")
            and not (self.skip_customer_users and user.get("accountType") == "customer")
        ]
        logger.debug(
            "jira_project_public_participants",
            extra={"projectId": resource.id.resource, "grants": len(grants)},
        )
        return grants

    def _role_actor_grants(self, resource: Resource, roles: List[Dict[str, Any]]) -> List[Grant]:
        grants: List[Grant] = []
        for role in roles:
            project_role = self.client.get_project_role(resource.id.resource, int(role.get("id")))
            for actor in project_role.get("actors") or []:
                account_id = (actor.get("actorUser") or {}).get("accountId")
                if not account_id:
                    continue
                grants.append(new_grant(resource, str(role.get("name") or ""), user_id(account_id)))
        return grants
