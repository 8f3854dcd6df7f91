from .schema import SchemaCache, TicketSchemaDeriver, parse_schema_id
from .translator import build_issue_payload, custom_field_to_remote, issue_to_ticket

__all__ = [
    "SchemaCache",
    "TicketSchemaDeriver",
    "build_issue_payload",
    "custom_field_to_remote",
    "issue_to_ticket",
    "parse_schema_id",
]
