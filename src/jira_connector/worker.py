"""Temporal worker that exposes the Jira connector as activities."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from temporalio import activity, client, worker
from temporalio.exceptions import ApplicationError

from .config import load_config
from .connector import JiraConnector
from .errors import ConnectorError
from .models import entitlement_from_dict, grant_from_dict, resource_from_dict, ticket_from_dict

TEMPORAL_ADDRESS = os.getenv("TEMPORAL_ADDRESS", "127.0.0.1:7233")
TEMPORAL_NAMESPACE = os.getenv("TEMPORAL_NAMESPACE", "default")
TASK_QUEUE = os.getenv("JIRA_CONNECTOR_TASK_QUEUE", "jira-connector")


@dataclass
class ConnectorRequest:
    config: Optional[Dict[str, Any]] = None


@dataclass
class ListResourcesRequest:
    resourceTypeId: str
    pageToken: str = ""
    config: Optional[Dict[str, Any]] = None


@dataclass
class ResourceRequest:
    resource: Dict[str, Any]
    pageToken: str = ""
    config: Optional[Dict[str, Any]] = None


@dataclass
class GrantRequest:
    principal: Dict[str, Any]
    entitlement: Dict[str, Any]
    config: Optional[Dict[str, Any]] = None


@dataclass
class RevokeRequest:
    grant: Dict[str, Any]
    config: Optional[Dict[str, Any]] = None


@dataclass
class CreateAccountRequest:
    login: str
    profile: Optional[Dict[str, Any]] = None
    config: Optional[Dict[str, Any]] = None


@dataclass
class TicketSchemasRequest:
    pageToken: str = ""
    schemaId: Optional[str] = None
    config: Optional[Dict[str, Any]] = None


@dataclass
class TicketRequest:
    ticketIds: List[str]
    config: Optional[Dict[str, Any]] = None


@dataclass
class CreateTicketRequest:
    tickets: List[Dict[str, Any]]
    schemaId: str
    config: Optional[Dict[str, Any]] = None


@dataclass
class ListEventsRequest:
    earliest: Optional[str] = None
    pageToken: str = ""
    config: Optional[Dict[str, Any]] = None


@dataclass
class ConnectorResult:
    payload: Any
    nextPageToken: str
    logs: List[Dict[str, Any]]


class ActivityLogger:
    """Per-call log entries for one connector operation.

    Every entry carries the operation name and the call context (resource type,
    ids) so the host can correlate them; entries are mirrored to ``activity.logger``
    and returned in the activity result.
    """

    def __init__(self, operation: str, **context: Any) -> None:
        self.operation = operation
        self.context = context
        self.entries: List[Dict[str, Any]] = []

    def _log(self, level: str, stage: str, **fields: Any) -> None:
        entry = {"level": level, "event": f"{self.operation}_{stage}", "operation": self.operation}
        entry.update(self.context)
        entry.update(fields)
        self.entries.append(entry)
        getattr(activity.logger, level.lower())(entry)

    def started(self) -> None:
        self._log("INFO", "start")

    def completed(self, payload: Any, next_token: str) -> None:
        fields: Dict[str, Any] = {"has_next_page": bool(next_token)}
        if isinstance(payload, list):
            fields["items"] = len(payload)
        self._log("INFO", "complete", **fields)

    def failed(self, exc: BaseException) -> None:
        fields: Dict[str, Any] = {"error": str(exc), "error_type": type(exc).__name__}
        if isinstance(exc, ConnectorError):
            fields["code"] = exc.code
            fields["retryable"] = exc.retryable
        self._log("ERROR", "failed", **fields)


def _run_connector_call(
    config: Optional[Dict[str, Any]],
    event: str,
    call: Callable[[JiraConnector], Any],
    **fields: Any,
) -> Dict[str, Any]:
    """Build a connector for one call and map its failures onto Temporal errors."""
    logger = ActivityLogger(event, **fields)
    logger.started()
    connector: Optional[JiraConnector] = None
    try:
        connector = JiraConnector.from_config(load_config(config))
        payload, next_token = call(connector)
    except ConnectorError as exc:
        logger.failed(exc)
        raise ApplicationError(str(exc), type=type(exc).__name__, non_retryable=not exc.retryable) from exc
    except Exception as exc:
        logger.failed(exc)
        raise ApplicationError(str(exc), type="ConnectorExecutionFailed", non_retryable=True) from exc
    finally:
        if connector is not None:
            connector.close()
    logger.completed(payload, next_token)
    return ConnectorResult(payload=payload, nextPageToken=next_token, logs=logger.entries).__dict__


def _page(items: List[Any], next_token: str):
    return [item.to_dict() for item in items], next_token


def _validate_sync(request: ConnectorRequest) -> Dict[str, Any]:
    return _run_connector_call(request.config, "jira_validate", lambda connector: (connector.validate(), ""))


def _list_resource_types_sync(request: ConnectorRequest) -> Dict[str, Any]:
    return _run_connector_call(
        request.config,
        "jira_list_resource_types",
        lambda connector: _page(list(connector.resource_types()), ""),
    )


def _list_resources_sync(request: ListResourcesRequest) -> Dict[str, Any]:
    return _run_connector_call(
        request.config,
        "jira_list_resources",
        lambda connector: _page(*connector.list_resources(request.resourceTypeId, request.pageToken)),
        resource_type=request.resourceTypeId,
    )


def _list_entitlements_sync(request: ResourceRequest) -> Dict[str, Any]:
    resource = resource_from_dict(request.resource)
    return _run_connector_call(
        request.config,
        "jira_list_entitlements",
        lambda connector: _page(connector.list_entitlements(resource), ""),
        resource_type=resource.id.resource_type,
        resource_id=resource.id.resource,
    )


def _list_grants_sync(request: ResourceRequest) -> Dict[str, Any]:
    resource = resource_from_dict(request.resource)
    return _run_connector_call(
        request.config,
        "jira_list_grants",
        lambda connector: _page(*connector.list_grants(resource, request.pageToken)),
        resource_type=resource.id.resource_type,
        resource_id=resource.id.resource,
    )


def _grant_sync(request: GrantRequest) -> Dict[str, Any]:
    principal = resource_from_dict(request.principal)
    entitlement = entitlement_from_dict(request.entitlement)
    return _run_connector_call(
        request.config,
        "jira_grant",
        lambda connector: (connector.grant(principal, entitlement), ""),
        entitlement_id=entitlement.id,
        principal_id=principal.id.resource,
    )


def _revoke_sync(request: RevokeRequest) -> Dict[str, Any]:
    grant = grant_from_dict(request.grant)
    return _run_connector_call(
        request.config,
        "jira_revoke",
        lambda connector: (connector.revoke(grant), ""),
        grant_id=grant.id,
    )


def _create_account_sync(request: CreateAccountRequest) -> Dict[str, Any]:
    return _run_connector_call(
        request.config,
        "jira_create_account",
        lambda connector: (connector.create_account(request.login, request.profile).to_dict(), ""),
    )


def _ticket_schemas_sync(request: TicketSchemasRequest) -> Dict[str, Any]:
    if request.schemaId:
        return _run_connector_call(
            request.config,
            "jira_get_ticket_schema",
            lambda connector: (connector.get_ticket_schema(request.schemaId).to_dict(), ""),
            schema_id=request.schemaId,
        )
    return _run_connector_call(
        request.config,
        "jira_list_ticket_schemas",
        lambda connector: _page(*connector.list_ticket_schemas(request.pageToken)),
    )


def _get_tickets_sync(request: TicketRequest) -> Dict[str, Any]:
    return _run_connector_call(
        request.config,
        "jira_get_tickets",
        lambda connector: _page(connector.bulk_get_tickets(request.ticketIds), ""),
        tickets=len(request.ticketIds),
    )


def _create_tickets_sync(request: CreateTicketRequest) -> Dict[str, Any]:
    tickets = [ticket_from_dict(raw) for raw in request.tickets]

    def _create(connector: JiraConnector):
        schema = connector.get_ticket_schema(request.schemaId)
        return _page(connector.bulk_create_tickets([(ticket, schema) for ticket in tickets]), "")

    return _run_connector_call(
        request.config,
        "jira_create_tickets",
        _create,
        schema_id=request.schemaId,
        tickets=len(tickets),
    )


def _list_events_sync(request: ListEventsRequest) -> Dict[str, Any]:
    earliest = datetime.fromisoformat(request.earliest.replace("Z", "+00:00")) if request.earliest else None

    def _events(connector: JiraConnector):
        events, next_token, _ = connector.list_events(earliest, request.pageToken)
        return _page(events, next_token)

    return _run_connector_call(request.config, "jira_list_events", _events)


@activity.defn(name="jiraValidate")
async def validate(request: ConnectorRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_validate_sync, request)


@activity.defn(name="jiraListResourceTypes")
async def list_resource_types(request: ConnectorRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_list_resource_types_sync, request)


@activity.defn(name="jiraListResources")
async def list_resources(request: ListResourcesRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_list_resources_sync, request)


@activity.defn(name="jiraListEntitlements")
async def list_entitlements(request: ResourceRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_list_entitlements_sync, request)


@activity.defn(name="jiraListGrants")
async def list_grants(request: ResourceRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_list_grants_sync, request)


@activity.defn(name="jiraGrant")
async def grant(request: GrantRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_grant_sync, request)


@activity.defn(name="jiraRevoke")
async def revoke(request: RevokeRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_revoke_sync, request)


@activity.defn(name="jiraCreateAccount")
async def create_account(request: CreateAccountRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_create_account_sync, request)


@activity.defn(name="jiraTicketSchemas")
async def ticket_schemas(request: TicketSchemasRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_ticket_schemas_sync, request)


@activity.defn(name="jiraGetTickets")
async def get_tickets(request: TicketRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_get_tickets_sync, request)


@activity.defn(name="jiraCreateTickets")
async def create_tickets(request: CreateTicketRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_create_tickets_sync, request)


@activity.defn(name="jiraListEvents")
async def list_events(request: ListEventsRequest) -> Dict[str, Any]:
    return await asyncio.to_thread(_list_events_sync, request)


ACTIVITIES = [
    validate,
    list_resource_types,
    list_resources,
    list_entitlements,
    list_grants,
    grant,
    revoke,
    create_account,
    ticket_schemas,
    get_tickets,
    create_tickets,
    list_events,
]


async def main() -> None:
    temporal_client = await client.Client.connect(TEMPORAL_ADDRESS, namespace=TEMPORAL_NAMESPACE)
    worker_instance = worker.Worker(
        temporal_client,
        task_queue=TASK_QUEUE,
        activities=ACTIVITIES,
    )
    await worker_instance.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
