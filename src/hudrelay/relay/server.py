"""aiohttp application wiring broker link, topic cache and fan-out together.

Everything here runs on one event loop. The broker callback, every client
socket lifecycle event and the periodic re-broadcast are scheduled on that
loop, so the topic cache needs no locking: it is written only by
:meth:`Relay.handle_broker_message` and read only when replaying.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

import aiohttp
from aiohttp import web

from hudrelay._cache import TopicCache
from hudrelay._constants import CONFIG_PATH, HEALTH_PATH, WS_PATH
from hudrelay._mqtt import BrokerLink, MessageHandler
from hudrelay._redact import redact_config
from hudrelay.config import RelayConfig
from hudrelay.relay.fanout import BroadcastFanout

_logger = logging.getLogger(__name__)

BrokerFactory = Callable[[RelayConfig, asyncio.AbstractEventLoop, MessageHandler], BrokerLink]


def _default_broker_factory(
    config: RelayConfig,
    loop: asyncio.AbstractEventLoop,
    on_message: MessageHandler,
) -> BrokerLink:
    return BrokerLink(config, loop=loop, on_message=on_message)


class Relay:
    """Owns the topic cache, the fan-out and the broker link of one relay process."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        cache: TopicCache | None = None,
        broker_factory: BrokerFactory = _default_broker_factory,
    ) -> None:
        self._config = config
        self._cache = cache if cache is not None else TopicCache()
        self._fanout = BroadcastFanout(self._cache, rebroadcast_interval=config.rebroadcast_interval)
        self._broker_factory = broker_factory
        self._broker: BrokerLink | None = None
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def config(self) -> RelayConfig:
        return self._config

    @property
    def cache(self) -> TopicCache:
        return self._cache

    @property
    def fanout(self) -> BroadcastFanout:
        return self._fanout

    @property
    def broker(self) -> BrokerLink | None:
        return self._broker

    def handle_broker_message(self, topic: str, payload: str) -> None:
        """Cache a broker message and schedule its relay to every client.

        The cache write happens before this returns so any replay scheduled
        afterwards already sees the new value.
        """
        entry = self._cache.put(topic, payload)
        self._spawn(self._fanout.broadcast(entry))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        _logger.debug("Relay configuration %s", redact_config(self._config))
        broker = self._broker_factory(self._config, loop, self.handle_broker_message)
        await loop.run_in_executor(None, broker.start)
        self._broker = broker
        self._fanout.start()

    async def stop(self) -> None:
        await self._fanout.stop()
        broker = self._broker
        self._broker = None
        if broker is not None:
            try:
                await asyncio.get_running_loop().run_in_executor(None, broker.stop)
            except Exception:
                _logger.warning("MQTT runtime stop failed", exc_info=True)
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._fanout.close_all()


RELAY_KEY = web.AppKey("relay", Relay)


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    """Attach a WebSocket client to the fan-out until it goes away."""
    relay = request.app[RELAY_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)
    _logger.info("Client connected from %s", request.remote)

    await relay.fanout.attach(ws)
    try:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.ERROR:
                _logger.debug("Client socket error: %s", ws.exception())
    finally:
        relay.fanout.detach(ws)
    return ws


async def handle_config(request: web.Request) -> web.Response:
    """Connection parameters for client bootstrap."""
    relay = request.app[RELAY_KEY]
    return web.json_response(relay.config.client_config().model_dump(by_alias=True))


async def handle_health(request: web.Request) -> web.Response:
    relay = request.app[RELAY_KEY]
    broker = relay.broker
    return web.json_response(
        {
            "status": "ok",
            "broker": broker is not None and broker.is_connected,
            "clients": relay.fanout.client_count,
            "topics": len(relay.cache),
        }
    )


async def _on_startup(app: web.Application) -> None:
    await app[RELAY_KEY].start()


async def _on_shutdown(app: web.Application) -> None:
    await app[RELAY_KEY].stop()


def create_app(config: RelayConfig, *, relay: Relay | None = None) -> web.Application:
    """Build the relay web application."""
    app = web.Application()
    app[RELAY_KEY] = relay if relay is not None else Relay(config)
    app.router.add_get(WS_PATH, handle_ws)
    app.router.add_get(CONFIG_PATH, handle_config)
    app.router.add_get(HEALTH_PATH, handle_health)
    app.on_startup.append(_on_startup)
    app.on_shutdown.append(_on_shutdown)
    return app


def run_relay(config: RelayConfig) -> None:
    """Serve the relay until interrupted."""
    _logger.info("HUD relay listening on http://%s:%s", config.http_host, config.http_port)
    _logger.info("MQTT broker %s, subscription %s", config.broker_url, config.subscription_topic)
    web.run_app(
        create_app(config),
        host=config.http_host,
        port=config.http_port,
        print=None,
    )
