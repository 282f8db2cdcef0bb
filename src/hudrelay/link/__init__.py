"""Client side of the relay: WebSocket link, retry policy and config bootstrap."""

from hudrelay.link.bootstrap import LinkConfigStore, fetch_relay_config, merge_link_config
from hudrelay.link.manager import ConnectionStatus, LinkManager, resolve_ws_url
from hudrelay.link.retry import RetryPolicy

__all__ = [
    "ConnectionStatus",
    "LinkConfigStore",
    "LinkManager",
    "RetryPolicy",
    "fetch_relay_config",
    "merge_link_config",
    "resolve_ws_url",
]
