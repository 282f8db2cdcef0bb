"""Fixed-interval retry timer with an explicit cancel handle."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from hudrelay._constants import LINK_RETRY_INTERVAL


class RetryPolicy:
    """Schedule one pending retry at a time on the event loop.

    Scheduling again replaces the pending retry. :meth:`cancel` guarantees the
    callback will not run afterwards.
    """

    def __init__(
        self,
        interval: float = LINK_RETRY_INTERVAL,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if interval < 0:
            raise ValueError(f"retry interval must be >= 0, got {interval}")
        self._interval = interval
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None
        self._attempts = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def attempts(self) -> int:
        """Number of retries that have fired so far."""
        return self._attempts

    def schedule(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        self.cancel()
        loop = self._loop or asyncio.get_running_loop()

        def _fire() -> None:
            self._handle = None
            self._attempts += 1
            callback()

        self._handle = loop.call_later(self._interval, _fire)
        return self._handle

    def cancel(self) -> None:
        handle = self._handle
        self._handle = None
        if handle is not None:
            handle.cancel()
