from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Optional, Tuple

from ..errors import UnimplementedError
from ..models import (
    TRAIT_GROUP,
    TRAIT_ROLE,
    TRAIT_USER,
    Entitlement,
    Grant,
    Resource,
    ResourceType,
)

MEMBER_ENTITLEMENT = "member"
APPOINTED_ENTITLEMENT = "appointed"
PARTICIPATE_ENTITLEMENT = "participate"
LEAD_ENTITLEMENT = "lead"
ASSIGNED_ENTITLEMENT = "assigned"

RESOURCE_TYPE_USER = ResourceType(
    id="user",
    display_name="User",
    traits=(TRAIT_USER,),
    skip_entitlements_and_grants=True,
)
RESOURCE_TYPE_GROUP = ResourceType(id="group", display_name="Group", traits=(TRAIT_GROUP,))
RESOURCE_TYPE_ROLE = ResourceType(id="role", display_name="Role", traits=(TRAIT_ROLE,))
RESOURCE_TYPE_PROJECT = ResourceType(id="project", display_name="Project", traits=(TRAIT_GROUP,))
RESOURCE_TYPE_PROJECT_ROLE = ResourceType(id="project-role", display_name="Project Role", traits=(TRAIT_ROLE,))

ALL_RESOURCE_TYPES: Tuple[ResourceType, ...] = (
    RESOURCE_TYPE_USER,
    RESOURCE_TYPE_GROUP,
    RESOURCE_TYPE_ROLE,
    RESOURCE_TYPE_PROJECT,
    RESOURCE_TYPE_PROJECT_ROLE,
)


class ResourceBuilder:
    """Lists one resource type and derives its entitlements and grants."""

    RESOURCE_TYPE: ClassVar[ResourceType]

    def __init__(self, client: Any, *, admin_client: Any = None, site_ids: Optional[List[str]] = None) -> None:
        self.client = client
        self.admin_client = admin_client
        self.site_ids = list(site_ids or [])

    @classmethod
    def resource_type(cls) -> ResourceType:
        return cls.RESOURCE_TYPE

    def list(self, page_token: str = "") -> Tuple[List[Resource], str]:
        raise NotImplementedError

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        return []

    def grants(self, resource: Resource, page_token: str = "") -> Tuple[List[Grant], str]:
        return [], ""

    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        raise UnimplementedError(f"jira-connector: grant is not supported for {self.RESOURCE_TYPE.id} resources")

    def revoke(self, grant: Grant) -> Dict[str, Any]:
        raise UnimplementedError(f"jira-connector: revoke is not supported for {self.RESOURCE_TYPE.id} resources")
