from __future__ import annotations

import pytest

from conftest import FakeResponse, paged
from jira_connector.errors import NotFoundError, ValidationError
from jira_connector.models import (
    FIELD_PICK_MULTIPLE_OBJECTS,
    FIELD_PICK_OBJECT,
    FIELD_STRING,
    FIELD_STRINGS,
    FIELD_TIMESTAMP,
    TicketChoice,
)
from jira_connector.tickets.schema import (
    SchemaCache,
    TicketSchemaDeriver,
    classify_field,
    convert_metadata_field,
    parse_schema_id,
    should_include_field,
)

ISSUE_TYPES = [
    {"id": "10001", "name": "Task", "subtask": False},
    {"id": "10002", "name": "Bug", "subtask": False},
    {"id": "10004", "name": "Epic", "subtask": False},
    {"id": "10003", "name": "Sub-task", "subtask": True},
]

FIELDS = [
    {"key": "summary", "name": "Summary", "required": True, "schema": {"type": "string"}},
    {"key": "issuetype", "name": "Issue Type", "required": True, "schema": {"type": "issuetype"}},
    {"key": "components", "name": "Components", "required": True, "schema": {"type": "array", "items": "component"}},
    {"key": "priority", "name": "Priority", "required": False, "schema": {"type": "priority"}},
    {
        "key": "customfield_1",
        "name": "Severity",
        "required": False,
        "schema": {"type": "option", "custom": "select"},
        "allowedValues": [{"id": "1", "value": "High"}, {"id": "2", "name": "Low"}],
    },
]

STATUSES = [
    {"id": "3", "name": "Done"},
    {"id": "4", "name": "Closed", "scope": {"type": "PROJECT", "project": {"id": "10010"}}},
    {"id": "5", "name": "Elsewhere", "scope": {"type": "PROJECT", "project": {"id": "99999"}}},
    {"id": "6", "name": "Resolved", "scope": {"type": "GLOBAL"}},
]


def _project(project_id="10010", key="ENG", name="Engineering"):
    return {"id": project_id, "key": key, "name": name, "issueTypes": ISSUE_TYPES}


def _route_ticket_metadata(jira_session, projects):
    jira_session.route("GET", "/rest/api/3/project/search", paged(projects))
    jira_session.route("GET", "/rest/api/3/statuses/search", paged(STATUSES))
    for project in projects:
        jira_session.route("GET", f"/rest/api/3/project/{project['key']}", project)
        for issue_type in ISSUE_TYPES:
            jira_session.route(
                "GET",
                f"/rest/api/3/issue/createmeta/{project['id']}/issuetypes/{issue_type['id']}",
                paged(FIELDS, key="fields"),
            )


@pytest.mark.parametrize(
    "schema, allowed, expected_kind",
    [
        ({"type": "string"}, False, FIELD_STRING),
        ({"type": "array", "items": "option"}, True, FIELD_PICK_MULTIPLE_OBJECTS),
        ({"type": "array", "items": "string"}, False, FIELD_STRINGS),
        ({"type": "array"}, True, FIELD_PICK_OBJECT),
        ({"type": "array"}, False, FIELD_STRING),
        ({"type": "date"}, False, FIELD_TIMESTAMP),
        ({"type": "datetime"}, False, FIELD_TIMESTAMP),
        ({"type": "number"}, False, FIELD_STRING),
        ({"type": "user"}, False, FIELD_STRING),
        ({"type": "option"}, True, FIELD_PICK_OBJECT),
        ({"type": "priority"}, True, FIELD_STRING),
    ],
)
def test_field_classification(schema, allowed, expected_kind):
    field = {"key": "f", "name": "F", "schema": schema}
    if allowed:
        field["allowedValues"] = [{"id": "1", "name": "One"}]
    kind, _ = classify_field(field)
    assert kind == expected_kind


def test_component_array_without_allowed_values_is_pick_multiple_with_no_choices():
    field = convert_metadata_field(FIELDS[2])
    assert field.kind == FIELD_PICK_MULTIPLE_OBJECTS
    assert field.allowed_values == ()
    assert field.required is True
    assert field.annotations == {"remote_type": "array"}


def test_choice_names_fall_back_to_value():
    field = convert_metadata_field(FIELDS[4])
    assert field.allowed_values == (TicketChoice("1", "High"), TicketChoice("2", "Low"))


def test_field_filter():
    assert [field["key"] for field in FIELDS if should_include_field(field)] == ["components", "customfield_1"]


def test_parse_schema_id():
    assert parse_schema_id("ENG:10001") == ("ENG", "10001")
    for bad in ("ENG", "ENG:1:2", ""):
        with pytest.raises(ValidationError, match="invalid schemaID format"):
            parse_schema_id(bad)


def test_list_schemas_skips_bug_epic_and_subtasks(jira_client, jira_session):
    _route_ticket_metadata(jira_session, [_project()])

    schemas, token = TicketSchemaDeriver(jira_client).list_ticket_schemas("")

    assert token == ""
    assert [schema.id for schema in schemas] == ["ENG:10001"]
    schema = schemas[0]
    assert schema.display_name == "Task"
    assert set(schema.custom_fields) == {"project", "components", "customfield_1"}
    project_field = schema.custom_fields["project"]
    assert project_field.required is True
    assert project_field.kind == FIELD_PICK_OBJECT
    assert project_field.allowed_values == (TicketChoice("10010", "Engineering"),)
    assert [status.id for status in schema.statuses] == ["3", "4", "6"]
    assert schema.annotations["project"] == {"project_id": "10010", "project_name": "Engineering", "project_key": "ENG"}


def test_multiple_projects_suffix_display_names(jira_client, jira_session):
    _route_ticket_metadata(jira_session, [_project(), _project("10011", "OPS", "Operations")])

    schemas, _ = TicketSchemaDeriver(jira_client).list_ticket_schemas("")

    assert [schema.display_name for schema in schemas] == ["Task (ENG)", "Task (OPS)"]


def test_full_page_of_projects_returns_offset_token(jira_client, jira_session):
    projects = [_project(str(20000 + index), f"P{index}", f"Project {index}") for index in range(3)]
    _route_ticket_metadata(jira_session, projects)

    _, token = TicketSchemaDeriver(jira_client).list_ticket_schemas("", page_size=2)
    _, final = TicketSchemaDeriver(jira_client).list_ticket_schemas(token, page_size=2)

    assert token == "2"
    assert final == ""


def test_schema_derivation_is_cached(jira_client, jira_session):
    _route_ticket_metadata(jira_session, [_project()])
    cache = SchemaCache()
    deriver = TicketSchemaDeriver(jira_client, cache)

    first = deriver.get_ticket_schema("ENG:10001")
    createmeta_calls = len([path for path in jira_session.paths() if "createmeta" in path])
    second = deriver.get_ticket_schema("ENG:10001")

    assert first is second
    assert "ENG:10001" in cache
    assert len([path for path in jira_session.paths() if "createmeta" in path]) == createmeta_calls == 1


def test_get_schema_unknown_issue_type(jira_client, jira_session):
    _route_ticket_metadata(jira_session, [_project()])

    with pytest.raises(NotFoundError, match="issueType not found"):
        TicketSchemaDeriver(jira_client).get_ticket_schema("ENG:424242")


def test_create_meta_fields_are_paged(jira_client, jira_session):
    many = [
        {"key": f"customfield_{index}", "name": f"F{index}", "schema": {"type": "string", "custom": "text"}}
        for index in range(130)
    ]
    jira_session.route("GET", "/rest/api/3/issue/createmeta/10010/issuetypes/10001", paged(many, key="fields"))

    fields = TicketSchemaDeriver(jira_client).custom_fields("10010", "10001")

    assert len(fields) == 130
    starts = [params["startAt"] for method, path, params, _ in jira_session.calls if "createmeta" in path]
    assert starts == [0, 100]


def test_statuses_are_paged(jira_client, jira_session):
    statuses = [{"id": str(index), "name": f"S{index}"} for index in range(150)]
    jira_session.route("GET", "/rest/api/3/statuses/search", paged(statuses))

    result = TicketSchemaDeriver(jira_client).project_statuses("10010")

    assert len(result) == 150
    calls = [params for method, path, params, _ in jira_session.calls if path.endswith("statuses/search")]
    assert [params["startAt"] for params in calls] == [0, 100]
    assert all(params["statusCategory"] == "DONE" for params in calls)


def test_full_page_without_total_keeps_paging(jira_client, jira_session):
    projects = [_project(str(20000 + index), f"P{index}", f"Project {index}") for index in range(4)]
    _route_ticket_metadata(jira_session, projects)

    def without_total(params, _body):
        start = int(params["startAt"])
        return {"values": projects[start : start + int(params["maxResults"])]}

    jira_session.route("GET", "/rest/api/3/project/search", without_total)
    deriver = TicketSchemaDeriver(jira_client)

    first, token = deriver.list_ticket_schemas("", page_size=2)
    second, final = deriver.list_ticket_schemas(token, page_size=2)
    third, last = deriver.list_ticket_schemas(final, page_size=2)

    assert token == "2"
    assert [schema.id for schema in first + second] == ["P0:10001", "P1:10001", "P2:10001", "P3:10001"]
    assert final == "4"
    assert third == []
    assert last == ""


def test_failing_issue_type_is_skipped(jira_client, jira_session):
    story = {"id": "10005", "name": "Story", "subtask": False}
    project = {"id": "10010", "key": "ENG", "name": "Engineering", "issueTypes": [ISSUE_TYPES[0], story]}
    _route_ticket_metadata(jira_session, [project])
    jira_session.route(
        "GET",
        "/rest/api/3/issue/createmeta/10010/issuetypes/10005",
        FakeResponse(500, {"errorMessages": ["boom"]}),
    )

    schemas, token = TicketSchemaDeriver(jira_client).list_ticket_schemas("")

    assert [schema.id for schema in schemas] == ["ENG:10001"]
    assert token == ""


def test_project_with_failing_statuses_is_skipped(jira_client, jira_session):
    projects = [_project(), _project("10011", "OPS", "Operations")]
    _route_ticket_metadata(jira_session, projects)

    def statuses(params, _body):
        if params["projectId"] == "10010":
            return FakeResponse(503, {"errorMessages": ["busy"]})
        return {"values": STATUSES, "total": len(STATUSES), "maxResults": 100}

    jira_session.route("GET", "/rest/api/3/statuses/search", statuses)

    schemas, _ = TicketSchemaDeriver(jira_client).list_ticket_schemas("")

    assert [schema.id for schema in schemas] == ["OPS:10001"]
