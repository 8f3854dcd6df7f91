from __future__ import annotations

import pytest

from conftest import FakeResponse, RoutingSession
from jira_connector.client.atlassian_admin import AtlassianAdminClient, clamp_page_size
from jira_connector.errors import PermissionDeniedError, ValidationError

ORG = "org-1"


@pytest.fixture
def admin_session():
    return RoutingSession()


@pytest.fixture
def admin_client(admin_session):
    return AtlassianAdminClient(ORG, "secret", session=admin_session)


def test_bearer_header(admin_client, admin_session):
    assert admin_session.headers["Authorization"] == "Bearer secret"


def test_list_groups_passes_site_limit_and_cursor(admin_client, admin_session):
    admin_session.route(
        "GET",
        f"/admin/v2/orgs/{ORG}/directories/-/groups",
        {"data": [{"id": "g-1", "name": "devs"}], "links": {"next": "cursor-2"}},
    )

    groups, next_cursor = admin_client.list_groups("site-1", "cursor-1", page_size=500)

    assert groups == [{"id": "g-1", "name": "devs"}]
    assert next_cursor == "cursor-2"
    assert admin_session.calls[0][2] == {"resourceIds": "site-1", "limit": 100, "cursor": "cursor-1"}


def test_resolve_site_ids_walks_workspace_pages(admin_client, admin_session):
    pages = {
        None: {"data": [{"id": "w-1", "attributes": {"hostUrl": "https://other.atlassian.net"}}], "links": {"next": "p2"}},
        "p2": {"data": [{"id": "w-2", "attributes": {"hostUrl": "https://example.atlassian.net"}}], "links": {}},
    }

    def workspaces(_params, body):
        return pages[(body or {}).get("cursor")]

    admin_session.route("POST", f"/admin/v2/orgs/{ORG}/workspaces", workspaces)

    assert admin_client.resolve_site_ids("https://example.atlassian.net") == ["w-2"]
    assert [call[3] for call in admin_session.calls] == [{}, {"cursor": "p2"}]


def test_resolve_site_ids_without_match(admin_client, admin_session):
    admin_session.route("POST", f"/admin/v2/orgs/{ORG}/workspaces", {"data": [], "links": {}})

    with pytest.raises(ValidationError, match="site id not found"):
        admin_client.resolve_site_ids("https://example.atlassian.net")


def test_error_detail_is_surfaced(admin_client, admin_session):
    admin_session.route(
        "GET",
        f"/admin/v2/orgs/{ORG}/directories/-/users",
        FakeResponse(403, {"errors": [{"detail": "token lacks scope"}]}),
    )

    with pytest.raises(PermissionDeniedError, match="API error response detail: token lacks scope"):
        admin_client.list_users("site-1")


def test_clamp_page_size():
    assert clamp_page_size(500) == 100
    assert clamp_page_size(-1) == 0
    assert clamp_page_size(25) == 25
