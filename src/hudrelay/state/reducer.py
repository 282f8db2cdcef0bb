"""Client-side state reducer.

Turns the relayed ``(topic, payload)`` stream into a single
:class:`~hudrelay.models.vehicle.VehicleState` record.

Merging is last-write-wins per field. Three topic families describe
navigation (legacy flat topics, ``active_route_*`` flat topics and the rich
``active_route`` JSON payload) and they are deliberately not ranked against
each other: whichever message arrives last sets the fields it maps to.
Replay and periodic re-broadcast may deliver values the reducer has already
seen; applying them again is harmless.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from hudrelay._constants import DEFAULT_CAR_ID, DEFAULT_TOPIC_PREFIX
from hudrelay.config import topic_root
from hudrelay.models.vehicle import VehicleState
from hudrelay.state.fields import FIELD_TABLE, TopicField

_logger = logging.getLogger(__name__)

StateListener = Callable[[VehicleState, dict[str, Any]], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StateReducer:
    """Owns the vehicle-state record for one page/session.

    Given the same sequence of messages and the same clock readings it always
    produces the same record.
    """

    def __init__(
        self,
        *,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
        car_id: int | str = DEFAULT_CAR_ID,
        clock: Callable[[], datetime] = _utcnow,
        initial: VehicleState | None = None,
        fields: dict[str, TopicField] | None = None,
    ) -> None:
        self._clock = clock
        self._fields = FIELD_TABLE if fields is None else fields
        self._initial = initial if initial is not None else VehicleState()
        self._state = self._initial
        self._listeners: list[StateListener] = []
        self._root = topic_root(topic_prefix, car_id)

    @property
    def state(self) -> VehicleState:
        return self._state

    @property
    def topic_root(self) -> str:
        return self._root

    def reconfigure(self, topic_prefix: str, car_id: int | str) -> None:
        """Switch to another topic namespace; the current record is kept."""
        self._root = topic_root(topic_prefix, car_id)

    def reset(self) -> None:
        """Return to the idle default record."""
        self._state = self._initial

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener(state, patch)``; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def compute(self, topic: str, payload: str) -> dict[str, Any]:
        """Field updates implied by one message, without applying them."""
        prefix = f"{self._root}/"
        if not topic.startswith(prefix):
            return {}
        handler = self._fields.get(topic[len(prefix) :])
        if handler is None:
            return {}
        return handler.patch(payload, self._clock())

    def apply(self, topic: str, payload: str) -> dict[str, Any]:
        """Compute and merge the updates for one message; returns the patch."""
        patch = self.compute(topic, payload)
        if patch:
            self.merge(patch)
        return patch

    def merge(self, patch: dict[str, Any]) -> VehicleState:
        """Merge a partial record; fields absent from *patch* keep their value.

        Live telemetry and synthetic (demo) records both enter here.
        """
        if not patch:
            return self._state
        self._state = self._state.merged(patch)
        _logger.debug("State merged fields=%s", sorted(patch))
        for listener in list(self._listeners):
            listener(self._state, patch)
        return self._state
