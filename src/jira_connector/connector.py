from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .client import AtlassianAdminClient, JiraClient, build_jira_session, resolve_url
from .config import JiraConnectorConfig
from .errors import ConnectorError, NotFoundError, UnauthenticatedError, UnimplementedError, ValidationError, wrap_error
from .events import list_events
from .models import Entitlement, Event, Grant, Resource, ResourceType, Ticket, TicketSchema
from .resources import ALL_RESOURCE_TYPES, ResourceBuilder, build_resource_builders
from .session import SessionStore
from .tickets import SchemaCache, TicketSchemaDeriver, build_issue_payload, issue_to_ticket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketResult:
    ticket: Optional[Ticket] = None
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"ticket": self.ticket.to_dict() if self.ticket else None, "error": self.error}


class JiraConnector:
    """Entry point used by the worker and the CLI.

    One instance serves one sync or one provisioning call; its schema cache and
    session store live exactly as long as the instance.
    """

    def __init__(
        self,
        config: JiraConnectorConfig,
        client: JiraClient,
        *,
        admin_client: Optional[AtlassianAdminClient] = None,
        site_ids: Optional[List[str]] = None,
        schema_cache: Optional[SchemaCache] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.admin_client = admin_client
        self.site_ids = list(site_ids or [])
        self.builders: Dict[str, ResourceBuilder] = build_resource_builders(
            client,
            admin_client=admin_client,
            site_ids=self.site_ids,
            skip_customer_users=config.skip_customer_users,
            skip_project_participants=config.skip_project_participants,
        )
        self.schemas = TicketSchemaDeriver(client, schema_cache or SchemaCache(), config.project_keys)

    @classmethod
    def from_config(
        cls,
        config: JiraConnectorConfig,
        *,
        session: Optional[requests.Session] = None,
        store: Optional[SessionStore] = None,
    ) -> "JiraConnector":
        base_url = resolve_url(config.jira_email, config.jira_url)
        client = JiraClient(
            base_url,
            session or build_jira_session(config.jira_email, config.jira_api_token),
            store=store if store is not None else SessionStore(),
        )
        admin_client = None
        site_ids: List[str] = []
        if config.admin_api_enabled:
            admin_client = AtlassianAdminClient(config.atlassian_org_id, config.atlassian_api_token)
            site_ids = admin_client.resolve_site_ids(config.jira_url)
        logger.info(
            "jira_connector_initialized",
            extra={"baseUrl": base_url, "adminApi": admin_client is not None, "ticketing": config.ticketing},
        )
        return cls(config, client, admin_client=admin_client, site_ids=site_ids)

    def close(self) -> None:
        self.client.close()

    # -- identity ------------------------------------------------------------------

    def resource_types(self) -> Tuple[ResourceType, ...]:
        return ALL_RESOURCE_TYPES

    def _builder(self, resource_type_id: str) -> ResourceBuilder:
        builder = self.builders.get(resource_type_id)
        if builder is None:
            raise NotFoundError(f"jira-connector: unknown resource type {resource_type_id!r}")
        return builder

    def list_resources(self, resource_type_id: str, page_token: str = "") -> Tuple[List[Resource], str]:
        return self._builder(resource_type_id).list(page_token)

    def list_entitlements(self, resource: Resource) -> List[Entitlement]:
        return self._builder(resource.id.resource_type).entitlements(resource)

    def list_grants(self, resource: Resource, page_token: str = "") -> Tuple[List[Grant], str]:
        return self._builder(resource.id.resource_type).grants(resource, page_token)

    def grant(self, principal: Resource, entitlement: Entitlement) -> Dict[str, Any]:
        return self._builder(entitlement.resource.id.resource_type).grant(principal, entitlement)

    def revoke(self, grant: Grant) -> Dict[str, Any]:
        return self._builder(grant.entitlement.resource.id.resource_type).revoke(grant)

    def create_account(self, login: str, profile: Optional[Dict[str, Any]] = None) -> Resource:
        return self.builders["user"].create_account(login, profile)

    def validate(self) -> Dict[str, Any]:
        """Check the credentials and that the account can read groups.

        The base URL is resolved when the connector is built. A 401 on the group probe
        re-resolves it once; the probe is retried only when that yields a different URL
        (for example a client built on the site URL for a service account).
        """
        try:
            me = self.client.myself()
        except Exception as exc:
            raise wrap_error(exc, "failed to get current user") from exc
        try:
            self.client.bulk_groups(0, 1)
        except UnauthenticatedError as exc:
            logger.warning("jira_group_probe_unauthenticated", extra={"baseUrl": self.client.base_url})
            try:
                resolved = resolve_url(self.config.jira_email, self.config.jira_url).rstrip("/")
            except Exception as resolve_exc:
                raise wrap_error(resolve_exc, "failed to resolve base URL") from resolve_exc
            if resolved == self.client.base_url:
                raise wrap_error(exc, "failed to list groups") from exc
            self.client.rebase(resolved)
            try:
                self.client.bulk_groups(0, 1)
            except Exception as retry_exc:
                raise wrap_error(retry_exc, "failed to list groups") from retry_exc
        except Exception as exc:
            raise wrap_error(exc, "failed to list groups") from exc
        return {"accountId": me.get("accountId"), "baseUrl": self.client.base_url}

    # -- tickets -------------------------------------------------------------------

    def _require_ticketing(self) -> None:
        if not self.config.ticketing:
            raise UnimplementedError("jira-connector: ticketing is not enabled")

    def list_ticket_schemas(self, page_token: str = "", page_size: int = 50) -> Tuple[List[TicketSchema], str]:
        self._require_ticketing()
        return self.schemas.list_ticket_schemas(page_token, page_size)

    def get_ticket_schema(self, schema_id: str) -> TicketSchema:
        self._require_ticketing()
        return self.schemas.get_ticket_schema(schema_id)

    def _fetch_ticket(self, ticket_id: str) -> Ticket:
        try:
            issue = self.client.get_issue(ticket_id)
        except Exception as exc:
            raise wrap_error(exc, "failed to get issue") from exc
        if not issue:
            raise NotFoundError("issue not found")
        return issue_to_ticket(issue, self.config.jira_url)

    def get_ticket(self, ticket_id: str) -> Ticket:
        self._require_ticketing()
        return self._fetch_ticket(ticket_id)

    def create_ticket(self, ticket: Ticket, schema: TicketSchema) -> Ticket:
        self._require_ticketing()
        payload = build_issue_payload(ticket, schema)
        logger.info(
            "jira_issue_create",
            extra={"project": payload["fields"]["project"], "issueType": payload["fields"]["issuetype"]},
        )
        try:
            created = self.client.create_issue(payload)
        except ConnectorError as exc:
            logger.error("jira_issue_create_failed", extra={"error": str(exc)})
            raise wrap_error(exc, "failed to create issue") from exc
        created_id = str(created.get("id") or created.get("key") or "")
        if not created_id:
            raise ValidationError("jira-connector: create issue response has no id")
        return self._fetch_ticket(created_id)

    def bulk_create_tickets(self, requests_: Sequence[Tuple[Ticket, TicketSchema]]) -> List[TicketResult]:
        self._require_ticketing()
        results: List[TicketResult] = []
        for ticket, schema in requests_:
            try:
                results.append(TicketResult(ticket=self.create_ticket(ticket, schema)))
            except ConnectorError as exc:
                results.append(TicketResult(error=str(exc)))
        return results

    def bulk_get_tickets(self, ticket_ids: Sequence[str]) -> List[TicketResult]:
        self._require_ticketing()
        results: List[TicketResult] = []
        for ticket_id in ticket_ids:
            try:
                results.append(TicketResult(ticket=self._fetch_ticket(ticket_id)))
            except ConnectorError as exc:
                results.append(TicketResult(error=str(exc)))
        return results

    # -- events --------------------------------------------------------------------

    def list_events(self, earliest: Optional[datetime] = None, page_token: str = "") -> Tuple[List[Event], str, bool]:
        return list_events(self.client, earliest, page_token)


__all__ = ["JiraConnector", "TicketResult"]
