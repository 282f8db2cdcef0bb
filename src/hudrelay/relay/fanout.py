"""Broadcast fan-out of relay envelopes to connected WebSocket clients."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from typing import Protocol

from hudrelay._cache import CacheEntry, TopicCache
from hudrelay._constants import REBROADCAST_INTERVAL, STATUS_MESSAGE
from hudrelay.models.envelope import RelayEnvelope, StatusEnvelope, encode_envelope

_logger = logging.getLogger(__name__)


class ClientSocket(Protocol):
    """Structural socket interface; ``aiohttp.web.WebSocketResponse`` satisfies it."""

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...


class BroadcastFanout:
    """Relay every cached and live topic value to all open client sockets.

    Delivery is best effort and most-recent-value wins: sockets that are not
    open are skipped, nothing is queued and nothing is deduplicated. The
    periodic re-broadcast eventually resynchronizes a client that missed a
    message.
    """

    def __init__(
        self,
        cache: TopicCache,
        *,
        rebroadcast_interval: float = REBROADCAST_INTERVAL,
        status_message: str = STATUS_MESSAGE,
    ) -> None:
        self._cache = cache
        self._rebroadcast_interval = rebroadcast_interval
        self._status_frame = encode_envelope(StatusEnvelope(msg=status_message))
        self._clients: set[ClientSocket] = set()
        self._rebroadcast_task: asyncio.Task[None] | None = None

    @property
    def cache(self) -> TopicCache:
        return self._cache

    @property
    def client_count(self) -> int:
        return len(self._clients)

    @property
    def clients(self) -> frozenset[ClientSocket]:
        return frozenset(self._clients)

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    async def attach(self, ws: ClientSocket) -> None:
        """Register a client, acknowledge it and replay the whole cache to it."""
        self._clients.add(ws)
        _logger.info("Client attached (%d total)", len(self._clients))
        if not await self._send(ws, self._status_frame):
            return
        for entry in self._cache.entries():
            if not await self._send(ws, self._frame(entry)):
                return

    def detach(self, ws: ClientSocket) -> None:
        if ws in self._clients:
            self._clients.discard(ws)
            _logger.info("Client detached (%d remaining)", len(self._clients))

    async def close_all(self) -> None:
        """Close every attached socket that supports ``close()``."""
        clients = list(self._clients)
        self._clients.clear()
        for ws in clients:
            close = getattr(ws, "close", None)
            if close is None:
                continue
            with contextlib.suppress(ConnectionError, RuntimeError):
                await close()

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    async def broadcast(self, entry: CacheEntry) -> int:
        """Send one entry to every open client; returns the number of deliveries."""
        return await self._send_all(self._frame(entry), self._clients)

    async def rebroadcast(self) -> int:
        """Send the full cache to every open client."""
        entries = self._cache.entries()
        if not entries or not self._clients:
            return 0
        _logger.debug("Re-broadcasting %d topic(s) to %d client(s)", len(entries), len(self._clients))
        sent = 0
        for entry in entries:
            sent += await self._send_all(self._frame(entry), self._clients)
        return sent

    # ------------------------------------------------------------------
    # Periodic re-broadcast
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic full-cache re-broadcast on the running loop."""
        if self._rebroadcast_task is not None and not self._rebroadcast_task.done():
            return
        self._rebroadcast_task = asyncio.get_running_loop().create_task(self._rebroadcast_loop())

    async def stop(self) -> None:
        task = self._rebroadcast_task
        self._rebroadcast_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def is_rebroadcasting(self) -> bool:
        return self._rebroadcast_task is not None and not self._rebroadcast_task.done()

    async def _rebroadcast_loop(self) -> None:
        while True:
            await asyncio.sleep(self._rebroadcast_interval)
            await self.rebroadcast()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _frame(entry: CacheEntry) -> str:
        return encode_envelope(RelayEnvelope.from_cache_entry(entry))

    async def _send_all(self, frame: str, clients: Iterable[ClientSocket]) -> int:
        targets = [ws for ws in list(clients) if not ws.closed]
        if not targets:
            return 0
        results = await asyncio.gather(*(self._send(ws, frame) for ws in targets))
        return sum(1 for ok in results if ok)

    async def _send(self, ws: ClientSocket, frame: str) -> bool:
        if ws.closed:
            return False
        try:
            await ws.send_str(frame)
        except (ConnectionError, RuntimeError):
            _logger.debug("Dropping client after failed send", exc_info=True)
            self.detach(ws)
            return False
        return True
