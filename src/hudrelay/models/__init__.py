"""Data models for relay envelopes and the reconstructed vehicle state."""

from hudrelay.models.envelope import (
    Envelope,
    RelayEnvelope,
    StatusEnvelope,
    decode_envelope,
    encode_envelope,
)
from hudrelay.models.vehicle import ActiveRoute, RouteLocation, VehicleState

__all__ = [
    "ActiveRoute",
    "Envelope",
    "RelayEnvelope",
    "RouteLocation",
    "StatusEnvelope",
    "VehicleState",
    "decode_envelope",
    "encode_envelope",
]
