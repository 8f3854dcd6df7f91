from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import load_config
from .connector import JiraConnector
from .models import resource_from_dict


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Jira connector CLI")
    parser.add_argument("--parameters", default="", help="JSON string of connector parameters (falls back to BATON_* env)")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("validate", help="Check credentials and group access")
    subparsers.add_parser("resource-types", help="List resource types")

    list_parser = subparsers.add_parser("list", help="List one page of resources")
    list_parser.add_argument("--type", dest="resource_type", required=True, help="Resource type id")
    list_parser.add_argument("--page-token", default="", help="Cursor returned by the previous page")

    entitlements_parser = subparsers.add_parser("entitlements", help="List entitlements of a resource")
    entitlements_parser.add_argument("--resource", required=True, help="JSON resource as printed by 'list'")

    grants_parser = subparsers.add_parser("grants", help="List one page of grants of a resource")
    grants_parser.add_argument("--resource", required=True, help="JSON resource as printed by 'list'")
    grants_parser.add_argument("--page-token", default="", help="Cursor returned by the previous page")

    schemas_parser = subparsers.add_parser("schemas", help="List one page of ticket schemas")
    schemas_parser.add_argument("--page-token", default="", help="Cursor returned by the previous page")

    schema_parser = subparsers.add_parser("schema", help="Get one ticket schema")
    schema_parser.add_argument("--id", dest="schema_id", required=True, help="projectKey:issueTypeId")

    ticket_parser = subparsers.add_parser("ticket", help="Get tickets by id or key")
    ticket_parser.add_argument("ids", nargs="+", help="Issue ids or keys")

    events_parser = subparsers.add_parser("events", help="List one page of audit events")
    events_parser.add_argument("--earliest", default="", help="RFC3339 timestamp lower bound")
    events_parser.add_argument("--page-token", default="", help="Cursor returned by the previous page")
    return parser


def parse_json_arg(payload: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(payload) if payload else {}
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(parsed, dict):
        raise SystemExit("JSON payload must be an object")
    return parsed


def serialize_page(items: List[Any], next_token: str) -> Dict[str, Any]:
    return {"items": [item.to_dict() for item in items], "nextPageToken": next_token}


def run_command(connector: JiraConnector, args: argparse.Namespace) -> Any:
    if args.command == "validate":
        return connector.validate()
    if args.command == "resource-types":
        return [resource_type.to_dict() for resource_type in connector.resource_types()]
    if args.command == "list":
        return serialize_page(*connector.list_resources(args.resource_type, args.page_token))
    if args.command == "entitlements":
        resource = resource_from_dict(parse_json_arg(args.resource))
        return [entitlement.to_dict() for entitlement in connector.list_entitlements(resource)]
    if args.command == "grants":
        resource = resource_from_dict(parse_json_arg(args.resource))
        return serialize_page(*connector.list_grants(resource, args.page_token))
    if args.command == "schemas":
        return serialize_page(*connector.list_ticket_schemas(args.page_token))
    if args.command == "schema":
        return connector.get_ticket_schema(args.schema_id).to_dict()
    if args.command == "ticket":
        return [result.to_dict() for result in connector.bulk_get_tickets(args.ids)]
    if args.command == "events":
        earliest: Optional[datetime] = None
        if args.earliest:
            earliest = datetime.fromisoformat(args.earliest.replace("Z", "+00:00"))
        events, next_token, has_more = connector.list_events(earliest, args.page_token)
        page = serialize_page(events, next_token)
        page["hasMore"] = has_more
        return page
    raise SystemExit(f"Unsupported command: {args.command}")


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="[%(levelname)s] %(message)s")
    try:
        connector = JiraConnector.from_config(load_config(parse_json_arg(args.parameters)))
        try:
            result = run_command(connector, args)
        finally:
            connector.close()
    except Exception as error:
        print(json.dumps({"error": str(error), "type": type(error).__name__}), file=sys.stderr)
        raise
    print(json.dumps(result, default=str))


if __name__ == "__main__":
    main()
