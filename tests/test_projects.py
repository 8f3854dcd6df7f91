from __future__ import annotations

from conftest import BASE_URL, make_users, paged
from jira_connector.resources import build_resource_builders
from jira_connector.resources.project import ProjectBuilder, project_resource

ADMIN_ROLE = {"id": 10002, "name": "Administrators"}


def _route_project(jira_session, project):
    jira_session.route("GET", f"/rest/api/3/project/{project['id']}", project)


def test_private_project_without_lead_or_roles_has_no_grants(jira_client, jira_session):
    project = {"id": "10001", "name": "Secret", "isPrivate": True, "roles": {}}
    _route_project(jira_session, project)

    grants, token = ProjectBuilder(jira_client).grants(project_resource(project), "")

    assert grants == []
    assert token == ""
    assert "/rest/api/3/users/search" not in jira_session.paths()


def test_public_project_grants_participation_to_every_user(jira_client, jira_session):
    project = {"id": "10001", "name": "Open", "isPrivate": False, "roles": {}}
    _route_project(jira_session, project)
    jira_session.route("GET", "/rest/api/3/users/search", paged(make_users(3), key=None))

    grants, _ = ProjectBuilder(jira_client).grants(project_resource(project), "")

    assert [grant.entitlement.slug for grant in grants] == ["participate"] * 3
    assert [grant.principal.resource for grant in grants] == ["user-0", "user-1", "user-2"]


def test_skip_participants_flag_suppresses_public_fallback(jira_client, jira_session):
    project = {"id": "10001", "name": "Open", "isPrivate": False, "roles": {}}
    _route_project(jira_session, project)

    grants, _ = ProjectBuilder(jira_client, skip_project_participants=True).grants(project_resource(project), "")

    assert grants == []


def test_lead_roles_and_role_actors(jira_client, jira_session):
    project = {
        "id": "10001",
        "name": "Engineering",
        "isPrivate": True,
        "lead": {"accountId": "lead-1", "displayName": "Lead Person"},
        "roles": {"Administrators": f"{BASE_URL}/rest/api/3/project/10001/role/10002"},
    }
    _route_project(jira_session, project)
    jira_session.route("GET", "/rest/api/3/role/10002", ADMIN_ROLE)
    jira_session.route(
        "GET",
        "/rest/api/3/project/10001/role/10002",
        {
            **ADMIN_ROLE,
            "actors": [
                {"type": "atlassian-user-role-actor", "actorUser": {"accountId": "user-9"}},
                {"type": "atlassian-group-role-actor", "actorGroup": {"groupId": "grp-1"}},
            ],
        },
    )

    grants, _ = ProjectBuilder(jira_client).grants(project_resource(project), "")

    assert [grant.id for grant in grants] == [
        "project:10001:lead:user:lead-1",
        "project:10001:participate:role:10002",
        "project:10001:Administrators:user:user-9",
    ]


def test_project_entitlements_include_one_per_role(jira_client, jira_session):
    project = {
        "id": "10001",
        "name": "Engineering",
        "roles": {"Administrators": f"{BASE_URL}/rest/api/3/project/10001/role/10002"},
    }
    _route_project(jira_session, project)
    jira_session.route("GET", "/rest/api/3/role/10002", ADMIN_ROLE)

    entitlements = ProjectBuilder(jira_client).entitlements(project_resource(project))

    assert [entitlement.slug for entitlement in entitlements] == ["participate", "lead", "Administrators"]
    assert entitlements[2].purpose == "permission"


def test_list_projects_pages_by_offset(jira_client, jira_session):
    projects = [{"id": str(10000 + index), "name": f"P{index}"} for index in range(55)]
    jira_session.route("GET", "/rest/api/3/project/search", paged(projects))
    builder = ProjectBuilder(jira_client)

    first, token = builder.list("")
    second, final = builder.list(token)

    assert len(first) == 50
    assert len(second) == 5
    assert final == ""
    assert first[0].profile == {"name": "P0", "project_id": "10000", "category": ""}


def test_public_project_skips_customer_accounts_when_configured(jira_client, jira_session):
    project = {"id": "10001", "name": "Open", "isPrivate": False, "roles": {}}
    _route_project(jira_session, project)
    users = make_users(3)
    users[1]["accountType"] = "customer"
    jira_session.route("GET", "/rest/api/3/users/search", paged(users, key=None))

    grants, _ = ProjectBuilder(jira_client, skip_customer_users=True).grants(project_resource(project), "")

    assert [grant.principal.resource for grant in grants] == ["user-0", "user-2"]


def test_registry_passes_customer_skip_to_projects(jira_client):
    builders = build_resource_builders(jira_client, skip_customer_users=True)

    assert builders["project"].skip_customer_users is True
