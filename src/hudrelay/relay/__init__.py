"""Server side of the relay: topic cache fan-out over WebSockets."""

from hudrelay.relay.fanout import BroadcastFanout, ClientSocket
from hudrelay.relay.server import RELAY_KEY, Relay, create_app, run_relay

__all__ = ["RELAY_KEY", "BroadcastFanout", "ClientSocket", "Relay", "create_app", "run_relay"]
