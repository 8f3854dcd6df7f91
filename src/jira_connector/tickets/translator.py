from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import ConnectorError, ValidationError
from ..models import (
    FIELD_BOOL,
    FIELD_PICK_MULTIPLE_OBJECTS,
    FIELD_PICK_MULTIPLE_STRINGS,
    FIELD_PICK_OBJECT,
    FIELD_PICK_STRING,
    FIELD_STRING,
    FIELD_STRINGS,
    FIELD_TIMESTAMP,
    Ticket,
    TicketChoice,
    TicketCustomField,
    TicketSchema,
    TicketStatus,
    TicketType,
)
from ..resources.user import user_resource
from .schema import PROJECT_FIELD_ID, TYPE_GROUP, TYPE_NUMBER, TYPE_USER, parse_schema_id

COMPONENTS_FIELD_ID = "components"
ISSUE_TYPE_FIELD_ID = "issue_type"
DEFAULT_ISSUE_TYPE_NAME = "Task"
JIRA_TIME_FORMATS = ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z")

logger = logging.getLogger(__name__)


def _choice_id(value: Any) -> str:
    if isinstance(value, TicketChoice):
        return value.id
    if isinstance(value, Mapping):
        return str(value.get("id") or "")
    return str(value)


def format_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


def custom_field_to_remote(field: Optional[TicketCustomField]) -> Any:
    """Convert a ticket field value into the JSON Jira expects for it.

    ``None`` means the field is unset and must be left out of the payload.
    """
    if field is None or field.value is None:
        return None
    kind = field.kind
    value = field.value
    if kind == FIELD_STRING:
        text = str(value)
        if not text:
            return None
        remote_type = (field.annotations or {}).get("remote_type")
        if remote_type == TYPE_USER:
            return {"accountId": text}
        if remote_type == TYPE_GROUP:
            return {"name": text}
        if remote_type == TYPE_NUMBER:
            try:
                return int(text)
            except ValueError as exc:
                raise ValidationError(f"invalid number value for field {field.id}: {text!r}") from exc
        return text
    if kind in (FIELD_STRINGS, FIELD_PICK_MULTIPLE_STRINGS):
        return [str(item) for item in value]
    if kind == FIELD_BOOL:
        return bool(value)
    if kind == FIELD_TIMESTAMP:
        if not isinstance(value, datetime):
            raise ValidationError(f"timestamp field {field.id} requires a datetime value")
        return format_rfc3339(value)
    if kind == FIELD_PICK_STRING:
        return str(value)
    if kind == FIELD_PICK_OBJECT:
        return {"id": _choice_id(value)}
    if kind == FIELD_PICK_MULTIPLE_OBJECTS:
        return [{"id": _choice_id(item)} for item in value]
    raise ValidationError(f"unknown custom field type: {kind}")


def _is_empty(field: Optional[TicketCustomField]) -> bool:
    if field is None or field.value is None:
        return True
    if isinstance(field.value, (str, list, tuple)) and len(field.value) == 0:
        return True
    return False


def missing_required_fields(schema: TicketSchema, ticket: Ticket) -> List[str]:
    missing = []
    implied_project = "project" in (schema.annotations or {})
    for field_id, schema_field in schema.custom_fields.items():
        if not schema_field.required:
            continue
        if field_id == PROJECT_FIELD_ID and implied_project:
            continue
        if _is_empty(ticket.custom_fields.get(field_id)):
            missing.append(schema_field.display_name or field_id)
    return sorted(missing)


def validate_ticket(schema: TicketSchema, ticket: Ticket) -> None:
    missing = missing_required_fields(schema, ticket)
    if missing:
        raise ValidationError(
            f"unable to create ticket, ticket is invalid: missing required fields: {', '.join(missing)}"
        )


def new_issue(
    project_key: str,
    summary: str,
    *,
    issue_type_id: str = "",
    status_id: str = "",
    description: str = "",
    labels: Optional[List[str]] = None,
    component_ids: Optional[List[str]] = None,
    custom_fields: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"summary": summary, "project": {"key": project_key}}
    if status_id:
        fields["status"] = {"id": status_id}
    if description:
        fields["description"] = description
    if labels:
        fields["labels"] = [label.replace(" ", "_") for label in labels]
    if component_ids is not None:
        fields["components"] = [{"id": component_id} for component_id in component_ids]
    for field_id, value in (custom_fields or {}).items():
        fields[field_id] = value
    if issue_type_id:
        fields["issuetype"] = {"id": issue_type_id}
    else:
        fields["issuetype"] = {"name": DEFAULT_ISSUE_TYPE_NAME}
    return {"fields": fields}


def _schema_target(schema: TicketSchema) -> Tuple[str, str]:
    if "project" not in (schema.annotations or {}):
        # schemas keyed only by project key carry the issue type as a field
        return schema.id, ""
    return parse_schema_id(schema.id)


def build_issue_payload(ticket: Ticket, schema: TicketSchema) -> Dict[str, Any]:
    """Assemble the create-issue request body for ``ticket`` under ``schema``."""
    project_key, issue_type_id = _schema_target(schema)
    component_ids: Optional[List[str]] = None
    remote_fields: Dict[str, Any] = {}

    for field_id, schema_field in schema.custom_fields.items():
        value = ticket.custom_fields.get(field_id)
        if field_id == PROJECT_FIELD_ID:
            continue
        if field_id == COMPONENTS_FIELD_ID:
            if value is None or value.value is None:
                continue
            component_ids = [_choice_id(item) for item in value.value]
        elif field_id == ISSUE_TYPE_FIELD_ID:
            if not issue_type_id:
                if value is None or value.value is None:
                    raise ValidationError("unable to create ticket, issue type is required")
                issue_type_id = _choice_id(value.value)
        else:
            remote_value = custom_field_to_remote(value)
            if remote_value is None:
                continue
            remote_fields[schema_field.id] = remote_value

    if not issue_type_id:
        raise ValidationError("unable to create ticket, issue type is required")

    validate_ticket(schema, ticket)

    return new_issue(
        project_key,
        ticket.display_name,
        issue_type_id=issue_type_id,
        status_id=ticket.status.id if ticket.status else "",
        description=ticket.description,
        labels=list(ticket.labels),
        component_ids=component_ids,
        custom_fields=remote_fields,
    )


def parse_jira_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    for fmt in JIRA_TIME_FORMATS:
        try:
            return datetime.strptime(str(value), fmt)
        except ValueError:
            continue
    logger.debug("jira_unparsed_timestamp", extra={"value": value})
    return None


def issue_url(base_url: str, issue_key: str) -> str:
    return f"{base_url.rstrip('/')}/browse/{issue_key}"


def issue_to_ticket(issue: Mapping[str, Any], base_url: str) -> Ticket:
    fields = issue.get("fields")
    if not fields:
        raise ConnectorError("issue has no fields")
    issue_type = fields.get("issuetype") or {}
    status = fields.get("status") or {}
    assignee = fields.get("assignee")
    reporter = fields.get("reporter")
    return Ticket(
        id=str(issue.get("id") or ""),
        display_name=str(fields.get("summary") or ""),
        description=fields.get("description") if isinstance(fields.get("description"), str) else "",
        type=TicketType(id=str(issue_type.get("id") or ""), display_name=str(issue_type.get("name") or "")),
        status=TicketStatus(id=str(status.get("id") or ""), display_name=str(status.get("name") or "")),
        labels=list(fields.get("labels") or []),
        created_at=parse_jira_time(fields.get("created")),
        updated_at=parse_jira_time(fields.get("updated")),
        url=issue_url(base_url, str(issue.get("key") or "")),
        assignees=[user_resource(assignee)] if assignee and assignee.get("accountId") else [],
        reporter=user_resource(reporter) if reporter and reporter.get("accountId") else None,
    )


__all__ = [
    "build_issue_payload",
    "custom_field_to_remote",
    "format_rfc3339",
    "issue_to_ticket",
    "issue_url",
    "missing_required_fields",
    "new_issue",
    "parse_jira_time",
    "validate_ticket",
]
