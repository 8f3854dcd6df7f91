#!/usr/bin/env python3
"""Simple Jira REST stub for local connector runs."""

from __future__ import annotations

import argparse
import json
import logging
import re
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse

LOGGER = logging.getLogger("jira_stub")

SITE_URL = "http://127.0.0.1:8800"

USERS = [
    {
        "accountId": "user-ada",
        "accountType": "atlassian",
        "displayName": "Ada Lovelace",
        "emailAddress": "ada@example.com",
        "active": True,
    },
    {
        "accountId": "user-bruno",
        "accountType": "atlassian",
        "displayName": "Bruno",
        "emailAddress": "bruno@example.com",
        "active": True,
    },
    {
        "accountId": "user-carol",
        "accountType": "customer",
        "displayName": "Carol Customer",
        "emailAddress": "carol@example.com",
        "active": False,
    },
]

GROUPS = [
    {"groupId": "grp-admins", "name": "jira-admins"},
    {"groupId": "grp-devs", "name": "developers"},
]

GROUP_MEMBERS = {
    "grp-admins": ["user-ada"],
    "grp-devs": ["user-ada", "user-bruno"],
}

ROLES = [
    {
        "id": 10002,
        "name": "Administrators",
        "description": "Project administrators",
        "actors": [
            {"type": "atlassian-user-role-actor", "actorUser": {"accountId": "user-ada"}},
            {"type": "atlassian-group-role-actor", "actorGroup": {"groupId": "grp-admins", "name": "jira-admins"}},
        ],
    },
    {
        "id": 10003,
        "name": "Developers",
        "description": "Project developers",
        "actors": [
            {"type": "atlassian-user-role-actor", "actorUser": {"accountId": "user-bruno"}},
        ],
    },
]

ISSUE_TYPES = [
    {"id": "10001", "name": "Task", "subtask": False},
    {"id": "10002", "name": "Bug", "subtask": False},
    {"id": "10003", "name": "Sub-task", "subtask": True},
]

PROJECTS = [
    {
        "id": "10010",
        "key": "ENG",
        "name": "Engineering",
        "isPrivate": False,
        "projectCategory": {"name": "R&D"},
        "lead": {"accountId": "user-ada", "displayName": "Ada Lovelace", "emailAddress": "ada@example.com"},
    },
    {
        "id": "10011",
        "key": "OPS",
        "name": "Operations",
        "isPrivate": True,
        "lead": {"accountId": "user-bruno", "displayName": "Bruno", "emailAddress": "bruno@example.com"},
    },
]

CREATE_META_FIELDS = [
    {"key": "summary", "fieldId": "summary", "name": "Summary", "required": True, "schema": {"type": "string"}},
    {"key": "issuetype", "fieldId": "issuetype", "name": "Issue Type", "required": True, "schema": {"type": "issuetype"}},
    {
        "key": "components",
        "fieldId": "components",
        "name": "Components",
        "required": False,
        "schema": {"type": "array", "items": "component"},
    },
    {
        "key": "customfield_10100",
        "fieldId": "customfield_10100",
        "name": "Severity",
        "required": True,
        "schema": {"type": "option", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:select"},
        "allowedValues": [{"id": "1", "value": "High"}, {"id": "2", "value": "Low"}],
    },
]

STATUSES = [
    {"id": "3", "name": "Done", "scope": {"type": "GLOBAL"}},
    {"id": "4", "name": "Closed", "scope": {"type": "PROJECT", "project": {"id": "10010"}}},
]

AUDIT_RECORDS = {
    "Project updated": [
        {
            "id": 501,
            "summary": "Project updated",
            "category": "projects",
            "remoteAddress": "10.0.0.1",
            "authorAccountId": "user-ada",
            "created": "2025-01-01T10:00:00.000+0000",
            "objectItem": {"id": "10010", "name": "Engineering", "typeName": "PROJECT"},
            "changedValues": [{"fieldName": "Name", "changedFrom": "Eng", "changedTo": "Engineering"}],
        }
    ]
}

ISSUES: Dict[str, Dict[str, Any]] = {}

ROLE_PATH = re.compile(r"^/rest/api/3/role/(\d+)$")
PROJECT_PATH = re.compile(r"^/rest/api/3/project/([^/]+)$")
PROJECT_ROLE_PATH = re.compile(r"^/rest/api/3/project/([^/]+)/role/(\d+)$")
CREATE_META_PATH = re.compile(r"^/rest/api/3/issue/createmeta/([^/]+)/issuetypes/([^/]+)$")
ISSUE_PATH = re.compile(r"^/rest/api/2/issue/([^/]+)$")


def _page(values: List[Any], params: Dict[str, List[str]], start_key: str = "startAt") -> List[Any]:
    start = int(params.get(start_key, ["0"])[0])
    size = int(params.get("maxResults", ["50"])[0])
    return values[start : start + size]


def _project_payload(project: Dict[str, Any], expand_issue_types: bool = True) -> Dict[str, Any]:
    payload = dict(project)
    payload["roles"] = {
        role["name"]: f"{SITE_URL}/rest/api/3/project/{project['id']}/role/{role['id']}" for role in ROLES
    }
    if expand_issue_types:
        payload["issueTypes"] = ISSUE_TYPES
    return payload


def _find_project(id_or_key: str) -> Optional[Dict[str, Any]]:
    for project in PROJECTS:
        if id_or_key in (project["id"], project["key"]):
            return project
    return None


class JiraStubHandler(BaseHTTPRequestHandler):
    server_version = "JiraStub/1.0"

    def _set_headers(self, status: int = 200, *, content_type: str = "application/json") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.end_headers()

    def _write_json(self, payload: Any, status: int = 200) -> None:
        body = json.dumps(payload).encode("utf-8")
        self._set_headers(status)
        self.wfile.write(body)

    def _not_found(self, path: str) -> None:
        self._write_json({"errorMessages": ["Not found"], "path": path}, status=404)

    def _read_json(self) -> Any:
        length = int(self.headers.get("Content-Length") or 0)
        if not length:
            return None
        return json.loads(self.rfile.read(length).decode("utf-8"))

    def log_message(self, fmt: str, *args: Any) -> None:  # noqa: D401
        LOGGER.info("%s - %s", self.address_string(), fmt % args)

    def do_GET(self) -> None:  # noqa: D401
        parsed = urlparse(self.path)
        params = parse_qs(parsed.query)
        path = parsed.path
        LOGGER.debug("GET %s", path)
        if path == "/rest/api/3/myself":
            self._write_json({"accountId": "stub-account", "displayName": "Jira Stub"})
            return
        if path == "/_edge/tenant_info":
            self._write_json({"cloudId": "stub-cloud-id"})
            return
        if path == "/rest/api/3/users/search":
            self._write_json(_page(USERS, params))
            return
        if path == "/rest/api/3/group/bulk":
            self._write_json({"values": _page(GROUPS, params), "total": len(GROUPS)})
            return
        if path == "/rest/api/3/group/member":
            group_id = params.get("groupId", [""])[0]
            members = [user for user in USERS if user["accountId"] in GROUP_MEMBERS.get(group_id, [])]
            self._write_json({"values": _page(members, params), "total": len(members)})
            return
        if path == "/rest/api/3/role":
            self._write_json(ROLES)
            return
        if path == "/rest/api/3/project/search":
            self._handle_project_search(params)
            return
        if path == "/rest/api/3/statuses/search":
            self._write_json({"values": STATUSES, "total": len(STATUSES), "maxResults": 100, "startAt": 0})
            return
        if path == "/rest/api/3/auditing/record":
            records = AUDIT_RECORDS.get(params.get("filter", [""])[0], [])
            subset = _page(records, {"startAt": params.get("offset", ["0"]), "maxResults": params.get("limit", ["100"])})
            self._write_json({"records": subset, "total": len(records), "offset": 0, "limit": 100})
            return
        match = ROLE_PATH.match(path)
        if match:
            self._handle_role(int(match.group(1)))
            return
        match = PROJECT_ROLE_PATH.match(path)
        if match:
            self._handle_project_role(match.group(1), int(match.group(2)))
            return
        match = PROJECT_PATH.match(path)
        if match:
            project = _find_project(match.group(1))
            if project is None:
                self._not_found(path)
                return
            self._write_json(_project_payload(project))
            return
        match = CREATE_META_PATH.match(path)
        if match:
            fields = _page(CREATE_META_FIELDS, params)
            self._write_json({"fields": fields, "total": len(CREATE_META_FIELDS)})
            return
        match = ISSUE_PATH.match(path)
        if match and match.group(1) in ISSUES:
            self._write_json(ISSUES[match.group(1)])
            return
        self._not_found(path)

    def do_POST(self) -> None:  # noqa: D401
        parsed = urlparse(self.path)
        body = self._read_json() or {}
        LOGGER.debug("POST %s", parsed.path)
        if parsed.path == "/rest/api/2/issue":
            self._handle_issue_create(body)
            return
        if parsed.path == "/rest/api/3/user":
            user = {
                "accountId": f"user-{len(USERS) + 1}",
                "accountType": "atlassian",
                "displayName": body.get("emailAddress", ""),
                "emailAddress": body.get("emailAddress", ""),
                "active": True,
            }
            USERS.append(user)
            self._write_json(user, status=201)
            return
        if parsed.path == "/rest/api/3/group/user":
            group_id = parse_qs(parsed.query).get("groupId", [""])[0]
            members = GROUP_MEMBERS.setdefault(group_id, [])
            account_id = body.get("accountId")
            if account_id in members:
                self._write_json({"errorMessages": [f"Cannot add user. {account_id} is already a member of {group_id}"]}, status=400)
                return
            members.append(account_id)
            self._write_json({"groupId": group_id}, status=201)
            return
        self._not_found(parsed.path)

    def do_DELETE(self) -> None:  # noqa: D401
        parsed = urlparse(self.path)
        params = parse_qs(parsed.query)
        if parsed.path == "/rest/api/3/group/user":
            members = GROUP_MEMBERS.get(params.get("groupId", [""])[0], [])
            account_id = params.get("accountId", [""])[0]
            if account_id not in members:
                self._write_json({"errorMessages": [f"{account_id} is not a member of the group"]}, status=400)
                return
            members.remove(account_id)
            self._set_headers(204)
            return
        self._not_found(parsed.path)

    def _handle_project_search(self, params: Dict[str, List[str]]) -> None:
        keys = params.get("keys") or []
        projects = [project for project in PROJECTS if not keys or project["key"] in keys]
        expand = "issueTypes" in (params.get("expand", [""])[0])
        values = [
            {key: value for key, value in _project_payload(project, expand).items() if key != "roles"}
            for project in _page(projects, params)
        ]
        self._write_json({"values": values, "isLast": True, "maxResults": 50, "total": len(projects)})

    def _handle_role(self, role_id: int) -> None:
        for role in ROLES:
            if role["id"] == role_id:
                self._write_json(role)
                return
        self._not_found(f"/rest/api/3/role/{role_id}")

    def _handle_project_role(self, project_id: str, role_id: int) -> None:
        if _find_project(project_id) is None:
            self._not_found(f"/rest/api/3/project/{project_id}")
            return
        self._handle_role(role_id)

    def _handle_issue_create(self, body: Dict[str, Any]) -> None:
        fields = dict(body.get("fields") or {})
        project = _find_project((fields.get("project") or {}).get("key", ""))
        if project is None:
            self._write_json({"errors": {"project": "valid project is required"}}, status=400)
            return
        issue_id = str(30000 + len(ISSUES))
        key = f"{project['key']}-{len(ISSUES) + 1}"
        issue_type = fields.get("issuetype") or {}
        fields["issuetype"] = next(
            (item for item in ISSUE_TYPES if item["id"] == issue_type.get("id") or item["name"] == issue_type.get("name")),
            ISSUE_TYPES[0],
        )
        fields["status"] = {"id": "1", "name": "To Do"}
        fields["created"] = "2025-01-03T09:00:00.000+0000"
        fields["updated"] = "2025-01-03T09:00:00.000+0000"
        fields["reporter"] = USERS[0]
        ISSUES[issue_id] = {"id": issue_id, "key": key, "fields": fields}
        ISSUES[key] = ISSUES[issue_id]
        self._write_json({"id": issue_id, "key": key, "self": f"{SITE_URL}/rest/api/2/issue/{issue_id}"}, status=201)


def main() -> None:
    parser = argparse.ArgumentParser(description="Start a simple Jira REST stub server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8800, help="Port to bind (default: 8800)")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    server = HTTPServer((args.host, args.port), JiraStubHandler)
    LOGGER.info("Jira stub listening at http://%s:%s", args.host, args.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        LOGGER.info("Jira stub shutting down")
        server.server_close()


if __name__ == "__main__":
    main()
