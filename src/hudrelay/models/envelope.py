"""Relay envelopes exchanged over the WebSocket link.

Two shapes travel on the wire as JSON text frames::

    {"topic": "teslamate/cars/1/speed", "data": "42", "timestamp": 1760781600000}
    {"type": "status", "msg": "Linked to HUD relay"}

Live relay, cache replay and periodic re-broadcast all use the telemetry
shape; a client cannot tell them apart except by when they arrive.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from hudrelay._cache import CacheEntry
from hudrelay.exceptions import HudPayloadError


class RelayEnvelope(BaseModel):
    """One telemetry update: raw payload text for a fully qualified topic."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    topic: str
    data: str
    timestamp: int

    @classmethod
    def from_cache_entry(cls, entry: CacheEntry) -> RelayEnvelope:
        return cls(topic=entry.topic, data=entry.payload, timestamp=entry.received_at_ms)


class StatusEnvelope(BaseModel):
    """Control message sent once to every newly attached client."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Literal["status"] = "status"
    msg: str = ""


Envelope = RelayEnvelope | StatusEnvelope


def encode_envelope(envelope: Envelope) -> str:
    """Serialize an envelope to a compact JSON text frame."""
    return envelope.model_dump_json()


def decode_envelope(text: str | bytes) -> Envelope:
    """Parse a JSON text frame into a relay or status envelope.

    Raises
    ------
    HudPayloadError
        If the frame is not JSON, not an object, or matches neither shape.
    """
    try:
        parsed: Any = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise HudPayloadError(f"Relay frame is not JSON: {str(text)[:64]!r}") from exc
    if not isinstance(parsed, dict):
        raise HudPayloadError("Relay frame is not a JSON object")

    try:
        if parsed.get("type") == "status":
            return StatusEnvelope.model_validate(parsed)
        return RelayEnvelope.model_validate(parsed)
    except ValidationError as exc:
        raise HudPayloadError(f"Relay frame has an unexpected shape: {exc.error_count()} error(s)") from exc
