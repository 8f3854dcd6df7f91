from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Tuple

from ..errors import ConnectorError, ValidationError, wrap_error
from ..models import Entitlement, Grant, Resource, ResourceId, new_entitlement, new_grant
from ..pagination import (
    RESOURCE_PAGE_SIZE,
    PageState,
    get_page_token_from_offset,
    get_token,
    is_last_page,
    parse_page_token,
)
from .base import MEMBER_ENTITLEMENT, RESOURCE_TYPE_GROUP, RESOURCE_TYPE_USER, ResourceBuilder
from .user import user_resource

logger = logging.getLogger(__name__)


def group_resource(group: Mapping[str, Any]) -> Resource:
    group_id = str(group.get("groupId") or group.get("id") or "")
    name = str(group.get("name") or "")
    return Resource(
        id=ResourceId(resource_type=RESOURCE_TYPE_GROUP.id, resource=group_id),
        display_name=name,
        profile={"id": group_id, "name": name},
        traits={"group": {}},
    )


class GroupBuilder(ResourceBuilder):
    RESOURCE_TYPE = RESOURCE_TYPE_GROUP

    def list(self, page_token: str = "") -> Tuple[List[Resource], str]:
        if self.admin_client is not None:
            return self._list_site_groups(page_token)
        bag, offset = parse_page_token(page_token, RESOURCE_TYPE_GROUP.id)
        try:
            groups = self.client.bulk_groups(offset, RESOURCE_PAGE_SIZE)
        except Exception as exc:
            raise wrap_error(exc, "failed to list groups") from exc
        resources = [group_resource(group) for group in groups]
        if is_last_page(len(groups), RESOURCE_PAGE_SIZE):
            return resources, ""
        return resources, get_page_token_from_offset(bag, offset + RESOURCE_PAGE_SIZE)

    def _list_site_groups(self, page_token: str) -> Tuple[List[Resource], str]:
        bag, cursor = get_token(page_token, RESOURCE_TYPE_GROUP.id)
        resources: List[Resource] = []
        site_id = bag.resource_type_id()
        if site_id == RESOURCE_TYPE_GROUP.id:
            bag.pop()
            for candidate in self.site_ids:
                bag.push(PageState(resource_type_id=candidate))
        else:
            try:
                groups, next_cursor = self.admin_client.list_groups(site_id, cursor)
            except Exception as exc:
                raise wrap_error(exc, "failed to list site groups") from exc
            resources = [group_resource(group) for group in groups]
            bag.next(next_cursor)
        return resources, bag.marshal()

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        return [
            new_entitlement(
                resource,
                MEMBER_ENTITLEMENT,
                display_name=f"{resource.display_name} group {MEMBER_ENTITLEMENT}",
                description=f"Member of {resource.display_name} group",
                grantable_to=(RESOURCE_TYPE_USER.id,),
            )
        ]

    def grants(self, resource: Resource, page_token: str = "") -> Tuple[List[Grant], str]:
        bag, offset = parse_page_token(page_token, RESOURCE_TYPE_GROUP.id)
        try:
            members = self.client.group_members(resource.id.resource, offset, RESOURCE_PAGE_SIZE)
        except Exception as exc:
            raise wrap_error(exc, "failed to get group members") from exc
        grants = [new_grant(resource, MEMBER_ENTITLEMENT, user_resource(member).id) for member in members]
        if is_last_page(len(members), RESOURCE_PAGE_SIZE):
            return grants, ""
        return grants, get_page_token_from_offset(bag, offset + RESOURCE_PAGE_SIZE)

    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        if principal.id.resource_type != RESOURCE_TYPE_USER.id:
            logger.warning(
                "jira_group_grant_rejected",
                extra={"principalType": principal.id.resource_type, "principalId": principal.id.resource},
            )
            raise ValidationError("jira-connector: only users can be granted to groups")
        group_id = entitlement.resource.id.resource
        try:
            self.client.add_user_to_group(group_id, principal.id.resource)
        except ConnectorError as exc:
            if "already a member of" in str(exc):
                return {"grant_already_exists": True}
            logger.error(
                "jira_group_grant_failed",
                extra={"group": group_id, "user": principal.id.resource, "error": str(exc)},
            )
            raise
        return {}

    def revoke(self, grant: Grant) -> Dict[str, Any]:
        principal = grant.principal
        if principal.resource_type != RESOURCE_TYPE_USER.id:
            logger.warning(
                "jira_group_revoke_rejected",
                extra={"principalType": principal.resource_type, "principalId": principal.resource},
            )
            raise ValidationError("jira-connector: only users can be revoked from groups")
        group_id = grant.entitlement.resource.id.resource
        try:
            self.client.remove_user_from_group(group_id, principal.resource)
        except ConnectorError as exc:
            if "not a member of" in str(exc):
                return {"grant_already_revoked": True}
            logger.error(
                "jira_group_revoke_failed",
                extra={"group": group_id, "user": principal.resource, "error": str(exc)},
            )
            raise
        return {}
