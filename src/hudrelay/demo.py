"""Scripted demo drive.

Produces synthetic partial vehicle-state records by interpolating between
keyframes and feeds them through :meth:`StateReducer.merge`, the same entry
point live telemetry uses.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from hudrelay.models.vehicle import ActiveRoute, RouteLocation
from hudrelay.state.fields import estimate_arrival
from hudrelay.state.reducer import StateReducer

_logger = logging.getLogger(__name__)

DEMO_DURATION = 30.0
DEMO_TICK = 0.1


class DemoKeyframe(BaseModel):
    """Target partial state at ``t`` seconds into the demo."""

    model_config = ConfigDict(frozen=True)

    t: float
    label: str
    data: dict[str, Any] = Field(default_factory=dict)


def _route(
    miles: float,
    minutes: float,
    energy: float,
    delay: float,
) -> ActiveRoute:
    return ActiveRoute(
        destination="Amsterdam Centraal",
        energy_at_arrival=energy,
        miles_to_arrival=miles,
        minutes_to_arrival=minutes,
        traffic_minutes_delay=delay,
        location=RouteLocation(latitude=52.3791, longitude=4.8997),
        error=None,
    )


_PARKED: dict[str, Any] = {"destination": "", "time_to_arrival": 0, "est_arrival_time": "", "active_route": None}

DEMO_KEYFRAMES: tuple[DemoKeyframe, ...] = (
    DemoKeyframe(
        t=0,
        label="Parked - full battery",
        data={
            "speed": 0, "power": 0, "gear": "P", "battery_level": 88, "range": 410,
            "outside_temp": 4, "inside_temp": 19, "heading": 0, "state": "online", **_PARKED,
        },
    ),
    DemoKeyframe(
        t=5,
        label="City driving",
        data={
            "speed": 0, "power": 0, "gear": "D", "battery_level": 88, "range": 410,
            "outside_temp": 4, "heading": 42, **_PARKED,
        },
    ),
    DemoKeyframe(
        t=8,
        label="City driving - accelerating",
        data={
            "speed": 52, "power": 45, "gear": "D", "battery_level": 87, "range": 408,
            "outside_temp": 4, "heading": 42, **_PARKED,
        },
    ),
    DemoKeyframe(
        t=12,
        label="Navigation - highway",
        data={
            "speed": 122, "power": 28, "gear": "D", "battery_level": 85, "range": 395,
            "outside_temp": 5, "heading": 87,
            "active_route": _route(24.85, 28.5, 62, 7),
        },
    ),
    DemoKeyframe(
        t=17,
        label="Navigation - cruising",
        data={
            "speed": 130, "power": 22, "gear": "D", "battery_level": 80, "range": 370,
            "outside_temp": 5, "heading": 91, "active_route": _route(12.4, 14.2, 62, 7),
        },
    ),
    DemoKeyframe(
        t=22,
        label="Regen braking",
        data={
            "speed": 30, "power": -38, "gear": "D", "battery_level": 79, "range": 366,
            "outside_temp": 5, "heading": 105, "active_route": _route(3.1, 5.5, 63, 0),
        },
    ),
    DemoKeyframe(
        t=26,
        label="Low battery",
        data={
            "speed": 0, "power": 0, "gear": "P", "battery_level": 18, "range": 62,
            "outside_temp": 7, "heading": 0, **_PARKED,
        },
    ),
    DemoKeyframe(
        t=28,
        label="Reversing",
        data={
            "speed": 8, "power": 12, "gear": "R", "battery_level": 18, "range": 62,
            "outside_temp": 7, "heading": 270, **_PARKED,
        },
    ),
    DemoKeyframe(
        t=30,
        label="Parked",
        data={
            "speed": 0, "power": 0, "gear": "P", "battery_level": 18, "range": 62,
            "outside_temp": 7, "heading": 0, **_PARKED,
        },
    ),
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _interpolate(a: Any, b: Any, fraction: float) -> Any:
    if _is_number(a) and _is_number(b):
        # Round half up, matching the display's integer readouts.
        return math.floor(a + (b - a) * fraction + 0.5)
    return a if fraction < 0.5 else b


def demo_state(
    elapsed: float,
    keyframes: tuple[DemoKeyframe, ...] = DEMO_KEYFRAMES,
) -> dict[str, Any]:
    """Interpolated partial state *elapsed* seconds into the demo.

    Numbers are interpolated linearly between the two bracketing keyframes;
    everything else switches at the midpoint. Keys present in only one of the
    two frames are passed through unchanged.
    """
    if elapsed <= keyframes[0].t:
        return dict(keyframes[0].data)
    if elapsed >= keyframes[-1].t:
        return dict(keyframes[-1].data)

    prev, nxt = keyframes[0], keyframes[1]
    for index in range(1, len(keyframes)):
        if keyframes[index].t >= elapsed:
            prev, nxt = keyframes[index - 1], keyframes[index]
            break

    span = nxt.t - prev.t
    fraction = 1.0 if span == 0 else (elapsed - prev.t) / span

    result: dict[str, Any] = {}
    for key in prev.data.keys() | nxt.data.keys():
        if key not in prev.data:
            result[key] = nxt.data[key]
        elif key not in nxt.data:
            result[key] = prev.data[key]
        else:
            result[key] = _interpolate(prev.data[key], nxt.data[key], fraction)
    return result


def demo_label(elapsed: float, keyframes: tuple[DemoKeyframe, ...] = DEMO_KEYFRAMES) -> str:
    """Label of the last keyframe whose time has been reached."""
    label = keyframes[0].label
    for frame in keyframes:
        if elapsed < frame.t:
            break
        label = frame.label
    return label


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DemoPlayer:
    """Play the demo drive into a reducer on a fixed tick."""

    def __init__(
        self,
        reducer: StateReducer,
        *,
        tick: float = DEMO_TICK,
        duration: float = DEMO_DURATION,
        speed: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
        on_scene: Callable[[str], None] | None = None,
    ) -> None:
        self._reducer = reducer
        self._tick = tick
        self._duration = duration
        if speed <= 0:
            raise ValueError(f"demo speed must be > 0, got {speed}")
        self._speed = speed
        self._clock = clock
        self._on_scene = on_scene
        self._elapsed = 0.0
        self._label: str | None = None

    @property
    def elapsed(self) -> float:
        return self._elapsed

    def frame(self, elapsed: float) -> dict[str, Any]:
        """Demo patch at *elapsed* with a derived arrival estimate."""
        patch = demo_state(elapsed)
        route = patch.get("active_route")
        minutes = None
        if isinstance(route, ActiveRoute):
            minutes = route.minutes_to_arrival
            if route.destination:
                patch["destination"] = route.destination
        if minutes is None:
            minutes = patch.get("time_to_arrival")
        if minutes and not patch.get("est_arrival_time"):
            minutes = float(minutes)
            patch["time_to_arrival"] = minutes
            eta = estimate_arrival(self._clock(), minutes)
            if eta is not None:
                patch["est_arrival_time"] = eta
        return patch

    def step(self) -> bool:
        """Advance one tick; returns False once the demo has finished."""
        self._elapsed = min(self._elapsed + self._tick, self._duration)
        self._apply(self._elapsed)
        return self._elapsed < self._duration

    def _apply(self, elapsed: float) -> None:
        self._reducer.merge(self.frame(elapsed))
        label = demo_label(elapsed)
        if label != self._label:
            self._label = label
            _logger.info("Demo scene: %s", label)
            if self._on_scene is not None:
                self._on_scene(label)

    async def play(self) -> None:
        """Run the whole demo, one tick at a time."""
        self._elapsed = 0.0
        self._label = None
        self._apply(0.0)
        while self.step():
            await asyncio.sleep(self._tick / self._speed)
