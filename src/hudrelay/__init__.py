"""hudrelay - MQTT to WebSocket telemetry relay for vehicle heads-up displays."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hudrelay")
except PackageNotFoundError:
    __version__ = "0+local"
from hudrelay._cache import CacheEntry, TopicCache
from hudrelay.config import LinkConfig, RelayConfig
from hudrelay.demo import DemoPlayer
from hudrelay.exceptions import (
    HudConfigError,
    HudError,
    HudLinkError,
    HudPayloadError,
    HudTransportError,
)
from hudrelay.link import ConnectionStatus, LinkConfigStore, LinkManager, RetryPolicy
from hudrelay.models import (
    ActiveRoute,
    RelayEnvelope,
    RouteLocation,
    StatusEnvelope,
    VehicleState,
    decode_envelope,
    encode_envelope,
)
from hudrelay.relay import BroadcastFanout, Relay, create_app, run_relay
from hudrelay.state import StateReducer

__all__ = [
    "__version__",
    "ActiveRoute",
    "BroadcastFanout",
    "CacheEntry",
    "ConnectionStatus",
    "DemoPlayer",
    "HudConfigError",
    "HudError",
    "HudLinkError",
    "HudPayloadError",
    "HudTransportError",
    "LinkConfig",
    "LinkConfigStore",
    "LinkManager",
    "RelayConfig",
    "RelayEnvelope",
    "Relay",
    "RetryPolicy",
    "RouteLocation",
    "StateReducer",
    "StatusEnvelope",
    "TopicCache",
    "VehicleState",
    "create_app",
    "decode_envelope",
    "encode_envelope",
    "run_relay",
]
