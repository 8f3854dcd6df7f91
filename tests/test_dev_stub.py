from __future__ import annotations

import importlib.util
import threading
from http.server import HTTPServer
from pathlib import Path

import pytest

from jira_connector.config import load_config
from jira_connector.connector import JiraConnector
from jira_connector.models import FIELD_PICK_OBJECT, Ticket, TicketChoice, TicketCustomField

STUB_PATH = Path(__file__).resolve().parents[1] / "scripts" / "dev-jira-stub.py"


def _load_stub():
    spec = importlib.util.spec_from_file_location("dev_jira_stub", STUB_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def stub_url():
    stub = _load_stub()
    server = HTTPServer(("127.0.0.1", 0), stub.JiraStubHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def connector(stub_url):
    config = load_config(
        {"jira_url": stub_url, "jira_email": "admin@example.com", "jira_api_token": "token", "ticketing": True},
        env={},
    )
    instance = JiraConnector.from_config(config)
    yield instance
    instance.close()


def test_validate_against_stub(connector, stub_url):
    assert connector.validate() == {"accountId": "stub-account", "baseUrl": stub_url}


def test_group_membership_round_trip(connector):
    groups, _ = connector.list_resources("group")
    developers = next(group for group in groups if group.display_name == "developers")
    grants, _ = connector.list_grants(developers)
    assert sorted(grant.principal.resource for grant in grants) == ["user-ada", "user-bruno"]

    users, _ = connector.list_resources("user")
    carol = next(user for user in users if user.id.resource == "user-carol")
    member = connector.list_entitlements(developers)[0]

    assert connector.grant(carol, member) == {}
    assert connector.grant(carol, member) == {"grant_already_exists": True}


def test_ticket_flow_against_stub(connector, stub_url):
    schema = connector.get_ticket_schema("ENG:10001")
    assert set(schema.custom_fields) == {"project", "customfield_10100"}
    assert [status.id for status in schema.statuses] == ["3", "4"]

    ticket = Ticket(
        display_name="Grant repo access",
        description="Needed for on-call",
        labels=["access request"],
        custom_fields={
            "customfield_10100": TicketCustomField(
                id="customfield_10100", display_name="Severity", kind=FIELD_PICK_OBJECT, value=TicketChoice("1", "High")
            )
        },
    )

    created = connector.create_ticket(ticket, schema)

    assert created.url == f"{stub_url}/browse/ENG-1"
    assert created.labels == ["access_request"]
    assert created.type.display_name == "Task"
    fetched = connector.bulk_get_tickets([created.id])[0]
    assert fetched.ticket.display_name == "Grant repo access"


def test_events_against_stub(connector):
    token = ""
    seen = []
    while True:
        events, token, has_more = connector.list_events(None, token)
        seen.extend(events)
        if not has_more:
            break
    assert [event.id for event in seen] == ["501"]
