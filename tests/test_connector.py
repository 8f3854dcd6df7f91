from __future__ import annotations

import pytest

from conftest import BASE_URL, FakeResponse
from jira_connector import connector as connector_module
from jira_connector.config import load_config
from jira_connector.connector import JiraConnector
from jira_connector.errors import NotFoundError, UnauthenticatedError, UnimplementedError
from jira_connector.models import (
    FIELD_PICK_OBJECT,
    FIELD_STRING,
    Resource,
    ResourceId,
    Ticket,
    TicketCustomField,
    TicketSchema,
)

SCHEMA = TicketSchema(
    id="ENG:10001",
    display_name="Task",
    custom_fields={
        "project": TicketCustomField(id="project", display_name="Project", kind=FIELD_PICK_OBJECT, required=True),
        "customfield_1": TicketCustomField(
            id="customfield_1", display_name="Justification", kind=FIELD_STRING, required=True
        ),
    },
    annotations={"project": {"project_id": "10010", "project_name": "Engineering", "project_key": "ENG"}},
)


def _issue(issue_id, key):
    return {
        "id": issue_id,
        "key": key,
        "fields": {
            "summary": "Grant access",
            "issuetype": {"id": "10001", "name": "Task"},
            "status": {"id": "1", "name": "To Do"},
            "created": "2025-01-03T09:00:00.000+0000",
        },
    }


def _connector(jira_client, **params):
    config = load_config(
        {"jira_url": BASE_URL, "jira_email": "admin@example.com", "jira_api_token": "token", **params},
        env={},
    )
    return JiraConnector(config, jira_client)


def test_validate_returns_account(jira_client, jira_session):
    jira_session.route("GET", "/rest/api/3/myself", {"accountId": "me-1"})
    jira_session.route("GET", "/rest/api/3/group/bulk", {"values": []})

    assert _connector(jira_client).validate() == {"accountId": "me-1", "baseUrl": BASE_URL}


def test_validate_rebases_after_unauthenticated_group_probe(jira_client, jira_session, monkeypatch):
    scoped = "https://api.atlassian.com/ex/jira/cloud-1"
    monkeypatch.setattr(connector_module, "resolve_url", lambda email, url: scoped)
    jira_session.route("GET", "/rest/api/3/myself", {"accountId": "me-1"})
    jira_session.route("GET", "/rest/api/3/group/bulk", FakeResponse(401, {"errorMessages": ["nope"]}))
    jira_session.route("GET", "/ex/jira/cloud-1/rest/api/3/group/bulk", {"values": []})

    result = _connector(jira_client).validate()

    assert result["baseUrl"] == scoped
    assert jira_session.paths()[-1] == "/ex/jira/cloud-1/rest/api/3/group/bulk"


def test_validate_wraps_current_user_failure(jira_client, jira_session):
    jira_session.route("GET", "/rest/api/3/myself", FakeResponse(401, {"errorMessages": ["bad token"]}))

    with pytest.raises(UnauthenticatedError, match="jira-connector: failed to get current user"):
        _connector(jira_client).validate()


def test_unknown_resource_type(jira_client):
    resource = Resource(id=ResourceId("board", "1"), display_name="Board")

    with pytest.raises(NotFoundError, match="unknown resource type"):
        _connector(jira_client).list_entitlements(resource)


def test_ticket_operations_need_ticketing(jira_client):
    connector = _connector(jira_client)

    with pytest.raises(UnimplementedError):
        connector.list_ticket_schemas()
    with pytest.raises(UnimplementedError):
        connector.get_ticket("ENG-1")


def test_create_ticket_posts_and_reads_back(jira_client, jira_session):
    jira_session.route("POST", "/rest/api/2/issue", {"id": "30001", "key": "ENG-5"})
    jira_session.route("GET", "/rest/api/2/issue/30001", _issue("30001", "ENG-5"))
    ticket = Ticket(
        display_name="Grant access",
        custom_fields={
            "customfield_1": TicketCustomField(
                id="customfield_1", display_name="Justification", kind=FIELD_STRING, value="on call"
            )
        },
    )

    created = _connector(jira_client, ticketing=True).create_ticket(ticket, SCHEMA)

    assert created.id == "30001"
    assert created.url == f"{BASE_URL}/browse/ENG-5"
    body = jira_session.calls[0][3]
    assert body["fields"]["project"] == {"key": "ENG"}
    assert body["fields"]["issuetype"] == {"id": "10001"}
    assert body["fields"]["customfield_1"] == "on call"


def test_bulk_create_reports_invalid_tickets_per_item(jira_client, jira_session):
    jira_session.route("POST", "/rest/api/2/issue", {"id": "30001"})
    jira_session.route("GET", "/rest/api/2/issue/30001", _issue("30001", "ENG-5"))
    valid = Ticket(
        display_name="ok",
        custom_fields={"customfield_1": TicketCustomField(id="customfield_1", display_name="Justification", kind=FIELD_STRING, value="x")},
    )

    results = _connector(jira_client, ticketing=True).bulk_create_tickets([(Ticket(display_name="bad"), SCHEMA), (valid, SCHEMA)])

    assert results[0].ticket is None
    assert "missing required fields: Justification" in results[0].error
    assert results[1].ticket.id == "30001"
    assert jira_session.paths("POST") == ["/rest/api/2/issue"]


def test_bulk_get_captures_missing_issues(jira_client, jira_session):
    jira_session.route("GET", "/rest/api/2/issue/ENG-5", _issue("30001", "ENG-5"))

    results = _connector(jira_client, ticketing=True).bulk_get_tickets(["ENG-5", "ENG-404"])

    assert results[0].ticket.display_name == "Grant access"
    assert results[0].error == ""
    assert results[1].ticket is None
    assert "failed to get issue" in results[1].error
    assert results[1].to_dict() == {"ticket": None, "error": results[1].error}


def test_validate_does_not_repeat_probe_on_resolved_url(jira_client, jira_session):
    jira_session.route("GET", "/rest/api/3/myself", {"accountId": "me-1"})
    jira_session.route("GET", "/rest/api/3/group/bulk", FakeResponse(401, {"errorMessages": ["nope"]}))

    with pytest.raises(UnauthenticatedError, match="failed to list groups"):
        _connector(jira_client).validate()

    assert jira_session.paths().count("/rest/api/3/group/bulk") == 1
