from __future__ import annotations

import json

import pytest

from hudrelay._cache import CacheEntry
from hudrelay.exceptions import HudPayloadError
from hudrelay.models.envelope import (
    RelayEnvelope,
    StatusEnvelope,
    decode_envelope,
    encode_envelope,
)


def test_relay_envelope_wire_shape() -> None:
    entry = CacheEntry(topic="teslamate/cars/1/speed", payload="42", received_at_ms=1760781600000)

    frame = encode_envelope(RelayEnvelope.from_cache_entry(entry))

    assert json.loads(frame) == {
        "topic": "teslamate/cars/1/speed",
        "data": "42",
        "timestamp": 1760781600000,
    }


def test_status_envelope_wire_shape() -> None:
    frame = encode_envelope(StatusEnvelope(msg="Linked to HUD relay"))

    assert json.loads(frame) == {"type": "status", "msg": "Linked to HUD relay"}


def test_decode_distinguishes_status_from_telemetry() -> None:
    status = decode_envelope('{"type": "status", "msg": "hello"}')
    telemetry = decode_envelope('{"topic": "t", "data": "{\\"a\\": 1}", "timestamp": 5, "extra": true}')

    assert isinstance(status, StatusEnvelope)
    assert status.msg == "hello"
    assert isinstance(telemetry, RelayEnvelope)
    assert telemetry.data == '{"a": 1}'
    assert telemetry.timestamp == 5


@pytest.mark.parametrize(
    "frame",
    [
        "not json",
        "[1, 2, 3]",
        '"just a string"',
        '{"topic": "t", "timestamp": 1}',
        '{"data": "x"}',
    ],
)
def test_decode_rejects_unknown_frames(frame: str) -> None:
    with pytest.raises(HudPayloadError):
        decode_envelope(frame)
