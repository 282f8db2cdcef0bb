"""Topic suffix → vehicle-state field mapping.

Each known suffix maps to one typed handler. A handler turns the raw payload
string into a patch (field name → value) for :class:`VehicleState`. Handlers
never raise on payload content: malformed numbers become ``NaN`` (or ``0``
where a zero fallback is declared) and malformed structured payloads clear
the affected fields.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import ValidationError

from hudrelay.models.vehicle import ActiveRoute

# Longest numeric prefix, the way browsers parse text with parseFloat/parseInt.
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def parse_float(text: str) -> float:
    """Parse the leading decimal number of *text*; ``NaN`` when there is none."""
    match = _FLOAT_PREFIX.match(text)
    if match is None:
        return math.nan
    return float(match.group(1).replace("Infinity", "inf"))


def parse_int(text: str) -> float:
    """Parse the leading integer of *text*; ``NaN`` when there is none."""
    match = _INT_PREFIX.match(text)
    if match is None:
        return math.nan
    return int(match.group(1))


def estimate_arrival(now: datetime, minutes: float) -> str | None:
    """Wall-clock arrival time ``now + minutes`` as ISO-8601 UTC text."""
    if not math.isfinite(minutes):
        return None
    try:
        arrival = now.astimezone(UTC) + timedelta(milliseconds=minutes * 60000)
    except OverflowError:
        return None
    return arrival.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FieldKind(StrEnum):
    NUMERIC = "numeric"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    STRING = "string"
    STRUCTURED = "structured"


@dataclass(frozen=True, slots=True)
class TopicField:
    """Base for suffix handlers."""

    kind: ClassVar[FieldKind]

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class NumericField(TopicField):
    target: str
    zero_fallback: bool = False

    kind: ClassVar[FieldKind] = FieldKind.NUMERIC

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        value = parse_float(payload)
        if self.zero_fallback and (math.isnan(value) or value == 0):
            value = 0.0
        return {self.target: value}


@dataclass(frozen=True, slots=True)
class IntegerField(TopicField):
    target: str

    kind: ClassVar[FieldKind] = FieldKind.INTEGER

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        return {self.target: parse_int(payload)}


@dataclass(frozen=True, slots=True)
class BooleanField(TopicField):
    target: str
    true_literal: str = "true"

    kind: ClassVar[FieldKind] = FieldKind.BOOLEAN

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        return {self.target: payload == self.true_literal}


@dataclass(frozen=True, slots=True)
class StringField(TopicField):
    target: str

    kind: ClassVar[FieldKind] = FieldKind.STRING

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        return {self.target: payload}


@dataclass(frozen=True, slots=True)
class VehicleStateField(TopicField):
    """Raw vehicle state text plus the derived charging flag."""

    kind: ClassVar[FieldKind] = FieldKind.STRING

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        return {"state": payload, "is_charging": payload == "charging"}


@dataclass(frozen=True, slots=True)
class MinutesToArrivalField(TopicField):
    """Remaining minutes; the arrival clock is derived from the current time."""

    kind: ClassVar[FieldKind] = FieldKind.NUMERIC

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        minutes = parse_float(payload)
        updates: dict[str, Any] = {"time_to_arrival": minutes}
        if minutes > 0:
            eta = estimate_arrival(now, minutes)
            if eta is not None:
                updates["est_arrival_time"] = eta
        return updates


@dataclass(frozen=True, slots=True)
class ActiveRouteField(TopicField):
    """Rich JSON navigation payload.

    An error indicator in the payload means "no active route" and actively
    clears destination and arrival fields. A payload that is not a JSON object, or
    does not fit the route schema, clears the route sub-record and the
    destination.
    """

    kind: ClassVar[FieldKind] = FieldKind.STRUCTURED

    def patch(self, payload: str, now: datetime) -> dict[str, Any]:
        malformed = {"active_route": None, "destination": ""}
        try:
            raw = json.loads(payload)
        except ValueError:
            return malformed
        if not isinstance(raw, dict):
            return malformed

        if raw.get("error"):
            return {
                "active_route": None,
                "destination": "",
                "time_to_arrival": 0.0,
                "est_arrival_time": "",
            }

        try:
            route = ActiveRoute.model_validate(raw)
        except ValidationError:
            return malformed

        updates: dict[str, Any] = {"active_route": route}
        if route.destination:
            updates["destination"] = route.destination
        if route.minutes_to_arrival:
            minutes = float(route.minutes_to_arrival)
            updates["time_to_arrival"] = minutes
            eta = estimate_arrival(now, minutes)
            if eta is not None:
                updates["est_arrival_time"] = eta
        return updates


FIELD_TABLE: dict[str, TopicField] = {
    # Core telemetry
    "speed": NumericField("speed", zero_fallback=True),
    "battery_level": IntegerField("battery_level"),
    "power": NumericField("power"),
    "shift_state": StringField("gear"),
    "ideal_battery_range_km": NumericField("range"),
    "outside_temp": NumericField("outside_temp"),
    "inside_temp": NumericField("inside_temp"),
    "odometer": NumericField("odometer"),
    "heading": NumericField("heading"),
    "elevation": NumericField("elevation"),
    "geofence": StringField("geofence"),
    "state": VehicleStateField(),
    "locked": BooleanField("is_locked"),
    # Tire pressures
    "tpms_pressure_fl": NumericField("tpms_front_left"),
    "tpms_pressure_fr": NumericField("tpms_front_right"),
    "tpms_pressure_rl": NumericField("tpms_rear_left"),
    "tpms_pressure_rr": NumericField("tpms_rear_right"),
    # Charging
    "charger_power": NumericField("charger_power"),
    "time_to_full_charge": NumericField("time_to_full_charge"),
    "charge_limit_soc": IntegerField("charge_limit_soc"),
    # Navigation, legacy flat topics
    "destination": StringField("destination"),
    "est_arrival_time": StringField("est_arrival_time"),
    "time_to_arrival": NumericField("time_to_arrival"),
    # Navigation, active_route flat topics
    "active_route_destination": StringField("destination"),
    "active_route_minutes_to_arrival": MinutesToArrivalField(),
    # Navigation, rich active_route payload
    "active_route": ActiveRouteField(),
}
"""Closed set of known suffixes. Any other suffix yields no update."""
