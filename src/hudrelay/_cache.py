"""Last-known-value cache keyed by MQTT topic."""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """Most recent raw payload seen on a topic."""

    topic: str
    payload: str
    received_at_ms: int


class TopicCache:
    """Map each topic to its latest payload.

    Later writes overwrite earlier ones; there is never more than one entry
    per topic and no history is kept. Iteration order is not part of the
    contract.
    """

    def __init__(self, *, clock_ms: Callable[[], int] = _now_ms) -> None:
        self._clock_ms = clock_ms
        self._entries: dict[str, CacheEntry] = {}

    def put(self, topic: str, payload: str, *, received_at_ms: int | None = None) -> CacheEntry:
        entry = CacheEntry(
            topic=topic,
            payload=payload,
            received_at_ms=self._clock_ms() if received_at_ms is None else received_at_ms,
        )
        self._entries[topic] = entry
        return entry

    def get(self, topic: str) -> CacheEntry | None:
        return self._entries.get(topic)

    def entries(self) -> list[CacheEntry]:
        """Snapshot of all entries, safe to iterate while the cache changes."""
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, topic: object) -> bool:
        return topic in self._entries

    def __iter__(self) -> Iterator[CacheEntry]:
        return iter(self.entries())
