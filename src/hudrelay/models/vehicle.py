"""Vehicle state record reconstructed from the relayed topic stream."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class RouteLocation(BaseModel):
    """Last known position reported with an active route."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    latitude: float
    longitude: float


class ActiveRoute(BaseModel):
    """Rich navigation payload published on the ``active_route`` topic.

    Parameters
    ----------
    destination : str or None
        Destination name.
    energy_at_arrival : float or None
        Battery percentage expected at arrival.
    miles_to_arrival : float or None
        Remaining distance.
    minutes_to_arrival : float or None
        Remaining driving time in minutes.
    traffic_minutes_delay : float or None
        Delay caused by traffic in minutes.
    location : RouteLocation or None
        Last known position.
    error : str or None
        Set when the vehicle has no active route (e.g. ``"no_route"``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    destination: str | None = None
    energy_at_arrival: float | None = None
    miles_to_arrival: float | None = None
    minutes_to_arrival: float | None = None
    traffic_minutes_delay: float | None = None
    location: RouteLocation | None = None
    error: str | None = None

    @field_validator("error", mode="before")
    @classmethod
    def _coerce_error(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value) if value else None


class VehicleState(BaseModel):
    """Merged vehicle-state record consumed by rendering.

    Built by successive partial merges: every update supplies zero or more
    fields and all other fields keep their previous value. The defaults are
    the idle record shown before any data has arrived.

    Numeric fields may hold ``NaN`` after malformed input.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    speed: float = 0
    battery_level: float = 0
    power: float = 0
    gear: str = "P"
    range: float = 0
    outside_temp: float = 0
    inside_temp: float = 0
    odometer: float = 0
    state: str = "asleep"
    is_locked: bool = True
    is_charging: bool = False
    heading: float = 0
    elevation: float = 0
    geofence: str = ""
    tpms_front_left: float = 0
    tpms_front_right: float = 0
    tpms_rear_left: float = 0
    tpms_rear_right: float = 0
    # Charging
    charger_power: float = 0
    time_to_full_charge: float = 0
    charge_limit_soc: float = 0
    # Navigation (flat topics)
    destination: str = ""
    est_arrival_time: str = ""
    time_to_arrival: float = 0
    # Navigation (rich active_route payload)
    active_route: ActiveRoute | None = None

    def merged(self, patch: dict[str, Any]) -> VehicleState:
        """Return a copy with *patch* applied.

        Patch keys are field names. Values are trusted to already have the
        field's type; unknown keys raise ``KeyError``.
        """
        unknown = set(patch) - set(type(self).model_fields)
        if unknown:
            raise KeyError(f"Unknown vehicle state field(s): {sorted(unknown)}")
        return self.model_copy(update=patch)

    @property
    def est_arrival_datetime(self) -> datetime | None:
        """``est_arrival_time`` parsed as a datetime, when it is ISO-8601 text."""
        if not self.est_arrival_time:
            return None
        try:
            return datetime.fromisoformat(self.est_arrival_time)
        except ValueError:
            return None
