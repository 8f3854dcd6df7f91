from __future__ import annotations

from typing import Any, Dict, List, Optional, Type

from .base import ALL_RESOURCE_TYPES, ResourceBuilder
from .group import GroupBuilder
from .project import ProjectBuilder
from .project_role import ProjectRoleBuilder
from .role import RoleBuilder
from .user import UserBuilder

REGISTERED_BUILDERS: List[Type[ResourceBuilder]] = [
    UserBuilder,
    GroupBuilder,
    RoleBuilder,
    ProjectBuilder,
    ProjectRoleBuilder,
]

_CLASS_MAP: Dict[str, Type[ResourceBuilder]] = {builder.RESOURCE_TYPE.id: builder for builder in REGISTERED_BUILDERS}


def get_builder_class(resource_type_id: str) -> Optional[Type[ResourceBuilder]]:
    return _CLASS_MAP.get(resource_type_id)


def build_resource_builders(
    client: Any,
    *,
    admin_client: Any = None,
    site_ids: Optional[List[str]] = None,
    skip_customer_users: bool = False,
    skip_project_participants: bool = False,
) -> Dict[str, ResourceBuilder]:
    """Instantiate one builder per registered resource type, keyed by resource type id."""
    shared = {"admin_client": admin_client, "site_ids": site_ids}
    return {
        UserBuilder.RESOURCE_TYPE.id: UserBuilder(client, skip_customer_users=skip_customer_users, **shared),
        GroupBuilder.RESOURCE_TYPE.id: GroupBuilder(client, **shared),
        RoleBuilder.RESOURCE_TYPE.id: RoleBuilder(client),
        ProjectBuilder.RESOURCE_TYPE.id: ProjectBuilder(
            client,
            skip_project_participants=skip_project_participants,
            skip_customer_users=skip_customer_users,
        ),
        ProjectRoleBuilder.RESOURCE_TYPE.id: ProjectRoleBuilder(client),
    }


__all__ = [
    "ALL_RESOURCE_TYPES",
    "REGISTERED_BUILDERS",
    "GroupBuilder",
    "ProjectBuilder",
    "ProjectRoleBuilder",
    "ResourceBuilder",
    "RoleBuilder",
    "UserBuilder",
    "build_resource_builders",
    "get_builder_class",
]
