"""Client-side WebSocket link to the relay.

The link runs a permanent background reconnection loop::

    disconnected -> connecting -> connected -> disconnected -> (retry interval) -> connecting -> ...

There is no retry limit. Every status transition is reported to the status
callback and every notable event is appended to a bounded rolling log.
Closing the manager cancels the pending retry and the running attempt; no
further attempts happen after that.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Callable
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit

import aiohttp

from hudrelay._constants import LINK_LOG_SIZE, WS_PATH
from hudrelay._redact import redact_url
from hudrelay.config import LinkConfig
from hudrelay.exceptions import HudLinkError, HudPayloadError
from hudrelay.link.retry import RetryPolicy
from hudrelay.models.envelope import StatusEnvelope, decode_envelope
from hudrelay.state.reducer import StateReducer

_logger = logging.getLogger(__name__)


class ConnectionStatus(StrEnum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


def resolve_ws_url(proxy_url: str, page_url: str) -> str:
    """Resolve the relay WebSocket address.

    An explicit ``ws://``/``wss://`` URL is used as-is. A value without a
    scheme gets one matching the page (secure page means secure socket); a
    value starting with ``/`` is a path on the page host. Without any value
    the page host plus ``/ws`` is used.
    """
    page = urlsplit(page_url)
    scheme = "wss" if page.scheme == "https" else "ws"
    host = page.netloc

    url = proxy_url.strip()
    if not url:
        return f"{scheme}://{host}{WS_PATH}"
    if url.startswith(("ws://", "wss://")):
        return url
    if url.startswith("http://"):
        return "ws://" + url[len("http://") :]
    if url.startswith("https://"):
        return "wss://" + url[len("https://") :]
    if url.startswith("/"):
        return f"{scheme}://{host}{url}"
    return f"{scheme}://{url}"


class LinkManager:
    """Own one WebSocket connection to the relay and feed a :class:`StateReducer`.

    Usage::

        reducer = StateReducer()
        async with LinkManager(reducer, page_url="http://hud.local") as link:
            link.connect(LinkConfig())
            ...
    """

    def __init__(
        self,
        reducer: StateReducer,
        *,
        page_url: str,
        session: aiohttp.ClientSession | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
        on_log: Callable[[str], None] | None = None,
        retry: RetryPolicy | None = None,
        log_size: int = LINK_LOG_SIZE,
    ) -> None:
        self._reducer = reducer
        self._page_url = page_url
        self._external_session = session is not None
        self._session = session
        self._on_status = on_status
        self._on_log = on_log
        self._retry = retry if retry is not None else RetryPolicy()
        self._log_entries: deque[str] = deque(maxlen=log_size)
        self._status = ConnectionStatus.DISCONNECTED
        self._config: LinkConfig | None = None
        self._task: asyncio.Task[None] | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._closed = True

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LinkManager:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def logs(self) -> list[str]:
        """Rolling log, oldest first."""
        return list(self._log_entries)

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    @property
    def reducer(self) -> StateReducer:
        return self._reducer

    @property
    def url(self) -> str | None:
        if self._config is None:
            return None
        return resolve_ws_url(self._config.proxy_url, self._page_url)

    def connect(self, config: LinkConfig) -> None:
        """Start (or restart) the connection loop with *config*."""
        try:
            asyncio.get_running_loop()
        except RuntimeError as exc:
            raise HudLinkError("LinkManager.connect() requires a running event loop") from exc

        self._teardown()
        self._config = config
        self._closed = False
        self._reducer.reconfigure(config.topic_prefix, config.car_id)
        self._start_attempt()

    async def close(self) -> None:
        """Stop reconnecting and close the socket."""
        if not self._closed:
            self._log("Disconnecting from relay")
        self._closed = True
        task = self._teardown()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if not self._external_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._set_status(ConnectionStatus.DISCONNECTED)

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    def _teardown(self) -> asyncio.Task[None] | None:
        self._retry.cancel()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            return task
        return None

    def _start_attempt(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run_attempt())

    def _session_for_attempt(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._external_session = False
        return self._session

    async def _run_attempt(self) -> None:
        config = self._config
        if config is None:
            return
        url = resolve_ws_url(config.proxy_url, self._page_url)
        self._log(f"Attempting connection: {redact_url(url)}")
        self._set_status(ConnectionStatus.CONNECTING)

        session = self._session_for_attempt()
        try:
            ws = await session.ws_connect(url)
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            self._log(f"Connection error: {exc}")
            _logger.debug("WebSocket connect failed", exc_info=True)
        else:
            self._ws = ws
            self._log("Linked to HUD relay")
            self._set_status(ConnectionStatus.CONNECTED)
            try:
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self._handle_frame(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        self._log(f"WebSocket error: {ws.exception()}")
            finally:
                self._ws = None
                await ws.close()
            self._log(f"Relay disconnected (code: {ws.close_code}). Retrying in {self._retry.interval:g}s...")

        if self._closed:
            return
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._retry.schedule(self._start_attempt)

    def _handle_frame(self, text: str) -> None:
        try:
            envelope = decode_envelope(text)
        except HudPayloadError as exc:
            _logger.debug("Relay parse error: %s", exc)
            return
        if isinstance(envelope, StatusEnvelope):
            self._log(f"Status: {envelope.msg}")
            return
        try:
            self._reducer.apply(envelope.topic, envelope.data)
        except Exception as exc:
            _logger.exception("State update failed for %s", envelope.topic)
            self._log(f"State update error: {exc}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        _logger.debug("Link status %s", status)
        if self._on_status is not None:
            self._on_status(status)

    def _log(self, message: str) -> None:
        entry = f"[{time.strftime('%H:%M:%S')}] {message}"
        _logger.info("%s", message)
        self._log_entries.append(entry)
        if self._on_log is not None:
            self._on_log(entry)
