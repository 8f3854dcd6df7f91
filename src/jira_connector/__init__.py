"""Jira Cloud identity, ticketing and audit connector."""

from .config import JiraConnectorConfig, load_config
from .connector import JiraConnector, TicketResult

__version__ = "0.1.0"

__all__ = ["JiraConnector", "JiraConnectorConfig", "TicketResult", "__version__", "load_config"]
