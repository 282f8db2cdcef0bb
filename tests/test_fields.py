from __future__ import annotations

import math
from datetime import UTC, datetime

import pytest

from hudrelay.state.fields import (
    FIELD_TABLE,
    FieldKind,
    estimate_arrival,
    parse_float,
    parse_int,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("42", 42.0),
        ("  3.5km", 3.5),
        ("-7", -7.0),
        (".5", 0.5),
        ("1e3", 1000.0),
        ("12.", 12.0),
        ("1e", 1.0),
        ("+2.25 bar", 2.25),
    ],
)
def test_parse_float_reads_leading_number(text: str, expected: float) -> None:
    assert parse_float(text) == pytest.approx(expected)


@pytest.mark.parametrize("text", ["", "abc", "NaN-ish", "-", "."])
def test_parse_float_yields_nan_without_number(text: str) -> None:
    assert math.isnan(parse_float(text))


def test_parse_float_infinity() -> None:
    assert parse_float("Infinity") == math.inf
    assert parse_float("-Infinity") == -math.inf


def test_parse_int_truncates_at_first_non_digit() -> None:
    assert parse_int("88") == 88
    assert parse_int("12.7") == 12
    assert parse_int(" -3x") == -3
    assert math.isnan(parse_int("x12"))


def test_estimate_arrival_adds_minutes_to_now() -> None:
    assert estimate_arrival(NOW, 15) == "2026-10-18T12:15:00.000Z"
    assert estimate_arrival(NOW, 0.5) == "2026-10-18T12:00:30.000Z"


@pytest.mark.parametrize("minutes", [math.nan, math.inf, 1e30])
def test_estimate_arrival_unrepresentable_minutes(minutes: float) -> None:
    assert estimate_arrival(NOW, minutes) is None


def test_speed_falls_back_to_zero() -> None:
    assert FIELD_TABLE["speed"].patch("NaN-ish", NOW) == {"speed": 0.0}
    assert FIELD_TABLE["speed"].patch("61.5", NOW) == {"speed": 61.5}


def test_other_numeric_fields_keep_nan() -> None:
    patch = FIELD_TABLE["power"].patch("n/a", NOW)
    assert math.isnan(patch["power"])


def test_boolean_and_state_fields_compare_literally() -> None:
    assert FIELD_TABLE["locked"].patch("true", NOW) == {"is_locked": True}
    assert FIELD_TABLE["locked"].patch("True", NOW) == {"is_locked": False}
    assert FIELD_TABLE["state"].patch("charging", NOW) == {"state": "charging", "is_charging": True}
    assert FIELD_TABLE["state"].patch("online", NOW) == {"state": "online", "is_charging": False}


def test_minutes_to_arrival_derives_eta_only_when_positive() -> None:
    handler = FIELD_TABLE["active_route_minutes_to_arrival"]

    assert handler.patch("15", NOW) == {
        "time_to_arrival": 15.0,
        "est_arrival_time": "2026-10-18T12:15:00.000Z",
    }
    assert handler.patch("0", NOW) == {"time_to_arrival": 0.0}


def test_active_route_error_clears_navigation() -> None:
    patch = FIELD_TABLE["active_route"].patch('{"error": "no_route"}', NOW)

    assert patch == {
        "active_route": None,
        "destination": "",
        "time_to_arrival": 0.0,
        "est_arrival_time": "",
    }


def test_active_route_boolean_error_counts_as_error() -> None:
    patch = FIELD_TABLE["active_route"].patch('{"destination": "X", "error": true}', NOW)
    assert patch["active_route"] is None


def test_active_route_error_wins_over_invalid_route_fields() -> None:
    payload = '{"error": "No active route available", "location": {"latitude": null, "longitude": null}}'

    patch = FIELD_TABLE["active_route"].patch(payload, NOW)

    assert patch["time_to_arrival"] == 0.0
    assert patch["est_arrival_time"] == ""
    assert patch["active_route"] is None


@pytest.mark.parametrize("payload", ["{not json", "[1, 2]", '{"location": {"latitude": "north"}}'])
def test_active_route_malformed_payload_clears_route(payload: str) -> None:
    assert FIELD_TABLE["active_route"].patch(payload, NOW) == {"active_route": None, "destination": ""}


def test_field_kinds() -> None:
    assert FIELD_TABLE["active_route"].kind is FieldKind.STRUCTURED
    assert FIELD_TABLE["locked"].kind is FieldKind.BOOLEAN
    assert FIELD_TABLE["battery_level"].kind is FieldKind.INTEGER
    assert FIELD_TABLE["shift_state"].kind is FieldKind.STRING
    assert FIELD_TABLE["speed"].kind is FieldKind.NUMERIC
