from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

TRAIT_USER = "user"
TRAIT_GROUP = "group"
TRAIT_ROLE = "role"

USER_STATUS_ENABLED = "enabled"
USER_STATUS_DISABLED = "disabled"
USER_STATUS_UNSPECIFIED = "unspecified"

ACCOUNT_TYPE_HUMAN = "human"
ACCOUNT_TYPE_SERVICE = "service"
ACCOUNT_TYPE_UNSPECIFIED = "unspecified"

PURPOSE_ASSIGNMENT = "assignment"
PURPOSE_PERMISSION = "permission"

FIELD_STRING = "string"
FIELD_STRINGS = "strings"
FIELD_BOOL = "bool"
FIELD_TIMESTAMP = "timestamp"
FIELD_PICK_STRING = "pick_string"
FIELD_PICK_MULTIPLE_STRINGS = "pick_multiple_strings"
FIELD_PICK_OBJECT = "pick_object"
FIELD_PICK_MULTIPLE_OBJECTS = "pick_multiple_objects"

FIELD_KINDS = (
    FIELD_STRING,
    FIELD_STRINGS,
    FIELD_BOOL,
    FIELD_TIMESTAMP,
    FIELD_PICK_STRING,
    FIELD_PICK_MULTIPLE_STRINGS,
    FIELD_PICK_OBJECT,
    FIELD_PICK_MULTIPLE_OBJECTS,
)


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return _serialize(asdict(self))


@dataclass(frozen=True)
class ResourceType(_Serializable):
    id: str
    display_name: str
    traits: Tuple[str, ...] = ()
    skip_entitlements_and_grants: bool = False


@dataclass(frozen=True)
class ResourceId(_Serializable):
    resource_type: str
    resource: str


@dataclass(frozen=True)
class Resource(_Serializable):
    id: ResourceId
    display_name: str
    profile: Dict[str, Any] = field(default_factory=dict)
    traits: Dict[str, Any] = field(default_factory=dict)
    annotations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Entitlement(_Serializable):
    id: str
    resource: Resource
    slug: str
    display_name: str
    description: str = ""
    purpose: str = PURPOSE_ASSIGNMENT
    grantable_to: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Grant(_Serializable):
    id: str
    entitlement: Entitlement
    principal: ResourceId
    annotations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TicketChoice(_Serializable):
    id: str
    display_name: str


@dataclass(frozen=True)
class TicketCustomField(_Serializable):
    id: str
    display_name: str
    kind: str
    required: bool = False
    allowed_values: Tuple[TicketChoice, ...] = ()
    value: Any = None
    annotations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TicketStatus(_Serializable):
    id: str
    display_name: str = ""


@dataclass(frozen=True)
class TicketType(_Serializable):
    id: str
    display_name: str = ""


@dataclass(frozen=True)
class TicketSchema(_Serializable):
    id: str
    display_name: str
    custom_fields: Dict[str, TicketCustomField] = field(default_factory=dict)
    statuses: Tuple[TicketStatus, ...] = ()
    types: Tuple[TicketType, ...] = ()
    annotations: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Ticket(_Serializable):
    id: str = ""
    display_name: str = ""
    description: str = ""
    type: Optional[TicketType] = None
    status: Optional[TicketStatus] = None
    labels: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    url: str = ""
    assignees: List[Resource] = field(default_factory=list)
    reporter: Optional[Resource] = None
    custom_fields: Dict[str, TicketCustomField] = field(default_factory=dict)


@dataclass(frozen=True)
class Event(_Serializable):
    id: str
    occurred_at: Optional[datetime]
    target_resource: Resource
    actor_resource: Resource
    metadata: Dict[str, Any] = field(default_factory=dict)


def entitlement_id(resource: Resource, slug: str) -> str:
    return f"{resource.id.resource_type}:{resource.id.resource}:{slug}"


def new_entitlement(
    resource: Resource,
    slug: str,
    *,
    display_name: str,
    description: str = "",
    grantable_to: Tuple[str, ...] = (),
    purpose: str = PURPOSE_ASSIGNMENT,
) -> Entitlement:
    return Entitlement(
        id=entitlement_id(resource, slug),
        resource=resource,
        slug=slug,
        display_name=display_name,
        description=description,
        purpose=purpose,
        grantable_to=grantable_to,
    )


def new_grant(
    resource: Resource,
    slug: str,
    principal: ResourceId,
    annotations: Optional[Dict[str, Any]] = None,
) -> Grant:
    entitlement = Entitlement(
        id=entitlement_id(resource, slug),
        resource=resource,
        slug=slug,
        display_name=slug,
    )
    return Grant(
        id=f"{entitlement.id}:{principal.resource_type}:{principal.resource}",
        entitlement=entitlement,
        principal=principal,
        annotations=dict(annotations or {}),
    )


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None or isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


def resource_id_from_dict(raw: Dict[str, Any]) -> ResourceId:
    return ResourceId(resource_type=str(raw.get("resource_type") or ""), resource=str(raw.get("resource") or ""))


def resource_from_dict(raw: Dict[str, Any]) -> Resource:
    return Resource(
        id=resource_id_from_dict(raw.get("id") or {}),
        display_name=str(raw.get("display_name") or ""),
        profile=dict(raw.get("profile") or {}),
        traits=dict(raw.get("traits") or {}),
        annotations=dict(raw.get("annotations") or {}),
    )


def entitlement_from_dict(raw: Dict[str, Any]) -> Entitlement:
    return Entitlement(
        id=str(raw.get("id") or ""),
        resource=resource_from_dict(raw.get("resource") or {}),
        slug=str(raw.get("slug") or ""),
        display_name=str(raw.get("display_name") or ""),
        description=str(raw.get("description") or ""),
        purpose=str(raw.get("purpose") or PURPOSE_ASSIGNMENT),
        grantable_to=tuple(raw.get("grantable_to") or ()),
    )


def grant_from_dict(raw: Dict[str, Any]) -> Grant:
    return Grant(
        id=str(raw.get("id") or ""),
        entitlement=entitlement_from_dict(raw.get("entitlement") or {}),
        principal=resource_id_from_dict(raw.get("principal") or {}),
        annotations=dict(raw.get("annotations") or {}),
    )


def custom_field_from_dict(field_id: str, raw: Dict[str, Any]) -> TicketCustomField:
    kind = str(raw.get("kind") or FIELD_STRING)
    value = raw.get("value")
    if kind == FIELD_TIMESTAMP:
        value = _parse_timestamp(value)
    return TicketCustomField(
        id=str(raw.get("id") or field_id),
        display_name=str(raw.get("display_name") or ""),
        kind=kind,
        required=bool(raw.get("required")),
        allowed_values=tuple(
            TicketChoice(id=str(choice.get("id") or ""), display_name=str(choice.get("display_name") or ""))
            for choice in raw.get("allowed_values") or ()
        ),
        value=value,
        annotations=dict(raw.get("annotations") or {}),
    )


def ticket_from_dict(raw: Dict[str, Any]) -> Ticket:
    """Rebuild a ticket request as sent by a host (the inverse of ``Ticket.to_dict``)."""
    status = raw.get("status")
    ticket_type = raw.get("type")
    return Ticket(
        id=str(raw.get("id") or ""),
        display_name=str(raw.get("display_name") or ""),
        description=str(raw.get("description") or ""),
        type=TicketType(id=str(ticket_type.get("id") or ""), display_name=str(ticket_type.get("display_name") or "")) if ticket_type else None,
        status=TicketStatus(id=str(status.get("id") or ""), display_name=str(status.get("display_name") or "")) if status else None,
        labels=[str(label) for label in raw.get("labels") or []],
        custom_fields={
            field_id: custom_field_from_dict(field_id, field)
            for field_id, field in (raw.get("custom_fields") or {}).items()
        },
    )
