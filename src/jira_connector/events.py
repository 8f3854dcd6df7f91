"""Audit log events.

Each configured audit filter is paged to exhaustion before moving to the next;
the cursor records which filter is active and the offset inside it.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import CursorDecodeError, wrap_error
from .models import Event, Resource, ResourceId
from .resources.base import (
    RESOURCE_TYPE_GROUP,
    RESOURCE_TYPE_PROJECT,
    RESOURCE_TYPE_PROJECT_ROLE,
    RESOURCE_TYPE_USER,
)
from .tickets.translator import format_rfc3339, parse_jira_time

DEFAULT_PAGE_SIZE = 100

AUDIT_FILTERS = (
    "Deleted Jira issue",
    "Field added to Screen",
    "Field updated in Screen",
    "Field removed from Screen",
    "Sprint created",
    "Issue type created",
    "Issue type updated",
    "Workflow created",
    "Workflow updated",
    "Project updated",
)

OBJECT_RESOURCE_TYPES = {
    "USER": RESOURCE_TYPE_USER.id,
    "GROUP": RESOURCE_TYPE_GROUP.id,
    "PROJECT": RESOURCE_TYPE_PROJECT.id,
    "PROJECT_ROLE": RESOURCE_TYPE_PROJECT_ROLE.id,
}

logger = logging.getLogger(__name__)


@dataclass
class AuditPageToken:
    filter_index: int = 0
    offset: int = 0

    def marshal(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def unmarshal(cls, token: str) -> "AuditPageToken":
        if not token:
            return cls()
        try:
            raw = json.loads(token)
            return cls(filter_index=int(raw.get("filter_index", 0)), offset=int(raw.get("offset", 0)))
        except (ValueError, TypeError, AttributeError) as exc:
            raise CursorDecodeError(f"failed to unmarshal page token: {exc}") from exc


def object_resource_type(type_name: str) -> str:
    return OBJECT_RESOURCE_TYPES.get(type_name, type_name)


def record_metadata(record: Mapping[str, Any]) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {
        "category": record.get("category") or "",
        "summary": record.get("summary") or "",
        "remote_address": record.get("remoteAddress") or "",
    }
    if record.get("changedValues"):
        metadata["changes"] = record["changedValues"]
    if record.get("associatedItems"):
        metadata["associated_items"] = record["associatedItems"]
    if record.get("description"):
        metadata["description"] = record["description"]
    return metadata


def record_to_event(record: Mapping[str, Any]) -> Event:
    item = record.get("objectItem") or {}
    target = Resource(
        id=ResourceId(
            resource_type=object_resource_type(str(item.get("typeName") or "")),
            resource=str(item.get("id") or ""),
        ),
        display_name=str(item.get("name") or ""),
    )
    actor = Resource(
        id=ResourceId(resource_type=RESOURCE_TYPE_USER.id, resource=str(record.get("authorAccountId"))),
        display_name="",
    )
    return Event(
        id=str(record.get("id")),
        occurred_at=parse_jira_time(record.get("created")),
        target_resource=target,
        actor_resource=actor,
        metadata=record_metadata(record),
    )


def list_events(
    client: Any,
    earliest: Optional[datetime] = None,
    page_token: str = "",
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Event], str, bool]:
    """Return one page of audit events plus the next cursor and whether more remain."""
    token = AuditPageToken.unmarshal(page_token)
    from_time = format_rfc3339(earliest) if earliest else ""
    events: List[Event] = []

    if token.filter_index < len(AUDIT_FILTERS):
        filter_text = AUDIT_FILTERS[token.filter_index]
        try:
            payload = client.get_audit_records(
                filter_text=filter_text,
                from_time=from_time,
                offset=token.offset,
                limit=page_size,
            )
        except Exception as exc:
            raise wrap_error(exc, f"failed to get audit records for filter {filter_text}") from exc

        records = payload.get("records") or []
        for record in records:
            if not record.get("authorAccountId"):
                continue
            events.append(record_to_event(record))
        token.offset += len(records)
        if token.offset >= int(payload.get("total") or 0):
            token.filter_index += 1
            token.offset = 0
        logger.debug(
            "jira_audit_page",
            extra={"filter": filter_text, "records": len(records), "events": len(events)},
        )

    has_more = token.filter_index < len(AUDIT_FILTERS)
    return events, token.marshal() if has_more else "", has_more


__all__ = ["AUDIT_FILTERS", "AuditPageToken", "DEFAULT_PAGE_SIZE", "list_events", "record_to_event"]
