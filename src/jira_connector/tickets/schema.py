from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from ..errors import ConnectorError, CursorDecodeError, NotFoundError, ValidationError, wrap_error
from ..models import (
    FIELD_PICK_MULTIPLE_OBJECTS,
    FIELD_PICK_OBJECT,
    FIELD_STRING,
    FIELD_STRINGS,
    FIELD_TIMESTAMP,
    TicketChoice,
    TicketCustomField,
    TicketSchema,
    TicketStatus,
    TicketType,
)
from ..pagination import is_last_page

TYPE_STRING = "string"
TYPE_ARRAY = "array"
TYPE_DATE = "date"
TYPE_DATETIME = "datetime"
TYPE_NUMBER = "number"
TYPE_OBJECT = "object"
TYPE_GROUP = "group"
TYPE_USER = "user"
TYPE_OPTION = "option"

# handled by fixed ticket attributes rather than custom fields
IGNORED_FIELD_KEYS = frozenset({"issuetype", "project", "assignee", "summary", "reporter"})
SKIPPED_ISSUE_TYPE_NAMES = frozenset({"Epic", "Bug"})
PROJECT_FIELD_ID = "project"
CREATE_META_PAGE_SIZE = 100
STATUS_PAGE_SIZE = 100
STATUS_CATEGORY = "DONE"
DEFAULT_SCHEMA_PAGE_SIZE = 50

logger = logging.getLogger(__name__)


class SchemaCache:
    """Ticket schemas keyed by schema id for the lifetime of the owning connector.

    Nothing is ever evicted; a new connector instance starts with an empty cache.
    """

    def __init__(self) -> None:
        self._schemas: Dict[str, TicketSchema] = {}

    def get(self, schema_id: str) -> Optional[TicketSchema]:
        return self._schemas.get(schema_id)

    def set(self, schema: TicketSchema) -> None:
        self._schemas[schema.id] = schema

    def __contains__(self, schema_id: object) -> bool:
        return schema_id in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)


def format_schema_id(project_key: str, issue_type_id: str) -> str:
    return f"{project_key}:{issue_type_id}"


def parse_schema_id(schema_id: str) -> Tuple[str, str]:
    parts = (schema_id or "").split(":")
    if len(parts) != 2:
        raise ValidationError("invalid schemaID format, expected 'projectKey:issueTypeID'")
    return parts[0], parts[1]


def _allowed_values(field: Mapping[str, Any]) -> Tuple[TicketChoice, ...]:
    choices = []
    for choice in field.get("allowedValues") or []:
        if not isinstance(choice, Mapping):
            continue
        display_name = choice.get("name") or choice.get("value") or ""
        choices.append(TicketChoice(id=str(choice.get("id") or ""), display_name=str(display_name)))
    return tuple(choices)


def classify_field(field: Mapping[str, Any]) -> Tuple[str, Tuple[TicketChoice, ...]]:
    """Map a create-meta field onto a custom field kind and its choices."""
    schema = field.get("schema") or {}
    remote_type = schema.get("type") or ""
    items = schema.get("items") or ""
    allowed = _allowed_values(field)
    if remote_type == TYPE_STRING:
        return FIELD_STRING, ()
    if remote_type == TYPE_ARRAY:
        if items and allowed:
            return FIELD_PICK_MULTIPLE_OBJECTS, allowed
        if items == "component":
            return FIELD_PICK_MULTIPLE_OBJECTS, ()
        if items:
            return FIELD_STRINGS, ()
        if allowed:
            return FIELD_PICK_OBJECT, allowed
        return FIELD_STRING, ()
    if remote_type in (TYPE_DATE, TYPE_DATETIME):
        return FIELD_TIMESTAMP, ()
    if remote_type == TYPE_NUMBER:
        return FIELD_STRING, ()
    if remote_type in (TYPE_OBJECT, TYPE_GROUP, TYPE_USER, TYPE_OPTION):
        if allowed:
            return FIELD_PICK_OBJECT, allowed
        return FIELD_STRING, ()
    return FIELD_STRING, ()


def convert_metadata_field(field: Mapping[str, Any]) -> TicketCustomField:
    kind, choices = classify_field(field)
    remote_type = (field.get("schema") or {}).get("type") or ""
    return TicketCustomField(
        id=str(field.get("key") or field.get("fieldId") or ""),
        display_name=str(field.get("name") or ""),
        kind=kind,
        required=bool(field.get("required")),
        allowed_values=choices,
        annotations={"remote_type": remote_type},
    )


def should_include_field(field: Mapping[str, Any]) -> bool:
    schema = field.get("schema") or {}
    if schema.get("custom"):
        return True
    key = field.get("key") or field.get("fieldId")
    return bool(field.get("required")) and key not in IGNORED_FIELD_KEYS


def project_field(project: Mapping[str, Any]) -> TicketCustomField:
    choice = TicketChoice(id=str(project.get("id") or ""), display_name=str(project.get("name") or ""))
    return TicketCustomField(
        id=PROJECT_FIELD_ID,
        display_name="Project",
        kind=FIELD_PICK_OBJECT,
        required=True,
        allowed_values=(choice,),
        annotations={"remote_type": TYPE_OBJECT},
    )


def status_in_project_scope(status: Mapping[str, Any], project_id: str) -> bool:
    scope = status.get("scope")
    if not scope or scope.get("type") == "GLOBAL":
        return True
    return str((scope.get("project") or {}).get("id") or "") == str(project_id)


def find_issue_type(project: Mapping[str, Any], issue_type_id: str) -> Optional[Mapping[str, Any]]:
    for issue_type in project.get("issueTypes") or []:
        if str(issue_type.get("id")) == str(issue_type_id):
            return issue_type
    return None


class TicketSchemaDeriver:
    def __init__(self, client: Any, cache: Optional[SchemaCache] = None, project_keys: Optional[List[str]] = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else SchemaCache()
        self.project_keys = list(project_keys or [])

    def issue_type_fields(self, project_id: str, issue_type_id: str) -> List[Dict[str, Any]]:
        collected: List[Dict[str, Any]] = []
        while True:
            fields, total = self.client.get_create_meta_fields(
                project_id, issue_type_id, len(collected), CREATE_META_PAGE_SIZE
            )
            collected.extend(fields)
            if not fields or len(collected) >= total:
                break
        return collected

    def custom_fields(self, project_id: str, issue_type_id: str) -> List[TicketCustomField]:
        return [
            convert_metadata_field(field)
            for field in self.issue_type_fields(project_id, issue_type_id)
            if should_include_field(field)
        ]

    def project_statuses(self, project_id: str) -> Tuple[TicketStatus, ...]:
        statuses: List[TicketStatus] = []
        offset = 0
        while True:
            page, total, page_size = self.client.search_statuses(project_id, offset, STATUS_PAGE_SIZE, STATUS_CATEGORY)
            for status in page:
                if status_in_project_scope(status, project_id):
                    statuses.append(TicketStatus(id=str(status.get("id") or ""), display_name=str(status.get("name") or "")))
            offset += page_size
            if offset >= total or not page:
                break
        return tuple(statuses)

    def schema_for_project_issue_type(
        self,
        project: Mapping[str, Any],
        issue_type: Mapping[str, Any],
        statuses: Tuple[TicketStatus, ...],
        include_project_in_name: bool = False,
    ) -> TicketSchema:
        project_key = str(project.get("key") or "")
        issue_type_id = str(issue_type.get("id") or "")
        schema_id = format_schema_id(project_key, issue_type_id)
        cached = self.cache.get(schema_id)
        if cached is not None:
            return cached

        custom_fields: Dict[str, TicketCustomField] = {PROJECT_FIELD_ID: project_field(project)}
        for field in self.custom_fields(str(project.get("id") or ""), issue_type_id):
            custom_fields[field.id] = field

        display_name = str(issue_type.get("name") or "")
        if include_project_in_name:
            display_name = f"{display_name} ({project_key})"

        schema = TicketSchema(
            id=schema_id,
            display_name=display_name,
            custom_fields=custom_fields,
            statuses=statuses,
            types=(TicketType(id=issue_type_id, display_name=str(issue_type.get("name") or "")),),
            annotations={
                "project": {
                    "project_id": str(project.get("id") or ""),
                    "project_name": str(project.get("name") or ""),
                    "project_key": project_key,
                }
            },
        )
        self.cache.set(schema)
        return schema

    def _creatable_issue_types(self, project: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
        for issue_type in project.get("issueTypes") or []:
            if issue_type.get("name") in SKIPPED_ISSUE_TYPE_NAMES or issue_type.get("subtask"):
                continue
            yield issue_type

    def list_ticket_schemas(self, page_token: str = "", page_size: int = DEFAULT_SCHEMA_PAGE_SIZE) -> Tuple[List[TicketSchema], str]:
        offset = 0
        if page_token:
            try:
                offset = int(page_token)
            except ValueError as exc:
                raise CursorDecodeError(f"malformed ticket schema page token: {page_token!r}") from exc
        try:
            projects, _ = self.client.find_projects(
                offset, page_size, expand="issueTypes", keys=self.project_keys or None
            )
        except Exception as exc:
            raise wrap_error(exc, "failed to get projects") from exc

        multiple_projects = len(projects) > 1
        schemas: List[TicketSchema] = []
        for project in projects:
            try:
                statuses = self.project_statuses(str(project.get("id") or ""))
            except ConnectorError as exc:
                logger.warning(
                    "jira_ticket_statuses_failed",
                    extra={"projectKey": project.get("key"), "error": str(exc)},
                )
                continue
            for issue_type in self._creatable_issue_types(project):
                try:
                    schemas.append(
                        self.schema_for_project_issue_type(project, issue_type, statuses, multiple_projects)
                    )
                except ConnectorError as exc:
                    logger.warning(
                        "jira_ticket_schema_failed",
                        extra={
                            "projectKey": project.get("key"),
                            "issueTypeId": issue_type.get("id"),
                            "error": str(exc),
                        },
                    )

        # project search may omit total; only a short page ends the listing
        if is_last_page(len(projects), page_size):
            return schemas, ""
        return schemas, str(offset + len(projects))

    def get_ticket_schema(self, schema_id: str) -> TicketSchema:
        project_key, issue_type_id = parse_schema_id(schema_id)
        cached = self.cache.get(schema_id)
        if cached is not None:
            return cached
        try:
            project = self.client.get_project(project_key)
        except Exception as exc:
            raise wrap_error(exc, "failed to get project") from exc
        issue_type = find_issue_type(project, issue_type_id)
        if issue_type is None:
            raise NotFoundError("issueType not found")
        statuses = self.project_statuses(str(project.get("id") or ""))
        return self.schema_for_project_issue_type(project, issue_type, statuses, False)


__all__ = [
    "SchemaCache",
    "TicketSchemaDeriver",
    "classify_field",
    "convert_metadata_field",
    "format_schema_id",
    "parse_schema_id",
    "project_field",
    "should_include_field",
]
