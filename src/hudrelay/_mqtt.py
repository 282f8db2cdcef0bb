"""Broker link: threaded paho-mqtt runtime that hands messages to an asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import paho.mqtt.client as mqtt

from hudrelay.config import RelayConfig

MessageHandler = Callable[[str, str], None]


class BrokerLink:
    """Persistent subscription to ``{prefix}/cars/{carId}/#`` on one broker.

    paho runs its network loop on a background thread. Every inbound message
    is decoded to text and scheduled onto *loop*, so ``on_message`` always
    runs on the event loop and never concurrently with other handlers.

    Connection loss is handled by paho itself: it retries on a fixed period
    with a bounded connect timeout and we re-subscribe after every successful
    CONNACK. Nothing is synthesized while the broker is unreachable.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        loop: asyncio.AbstractEventLoop,
        on_message: MessageHandler,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._loop = loop
        self._on_message = on_message
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self._connected = False

    @property
    def is_running(self) -> bool:
        """Whether the network loop has been started and not stopped."""
        return self._running

    @property
    def is_connected(self) -> bool:
        """Whether the broker has acknowledged the current connection."""
        return self._connected

    @property
    def topic(self) -> str:
        return self._config.subscription_topic

    def _build_client(self) -> mqtt.Client:
        config = self._config
        transport = "websockets" if config.mqtt_protocol in {"ws", "wss"} else "tcp"
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            transport=transport,
        )
        client.enable_logger(self._logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_protocol in {"mqtts", "wss"}:
            client.tls_set()
        delay = max(1, int(config.reconnect_period))
        client.reconnect_delay_set(min_delay=delay, max_delay=delay)
        client.connect_timeout = config.connect_timeout

        client.on_connect = self._handle_connect
        client.on_connect_fail = self._handle_connect_fail
        client.on_disconnect = self._handle_disconnect
        client.on_message = self._handle_message
        return client

    def _handle_connect(
        self,
        client: mqtt.Client,
        _userdata: Any,
        _flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        if reason_code.is_failure:
            self._logger.warning("MQTT connect failed: %s", reason_code)
            return
        self._connected = True
        self._logger.info("MQTT connected to %s", self._config.broker_url)
        client.subscribe(self.topic, qos=0)
        self._logger.info("MQTT subscribed to %s", self.topic)

    def _handle_connect_fail(self, _client: mqtt.Client, _userdata: Any) -> None:
        self._logger.warning(
            "MQTT connection to %s failed; retrying every %ss",
            self._config.broker_url,
            self._config.reconnect_period,
        )

    def _handle_disconnect(
        self,
        _client: mqtt.Client,
        _userdata: Any,
        _disconnect_flags: Any,
        reason_code: Any,
        _properties: Any,
    ) -> None:
        self._connected = False
        if self._running:
            self._logger.warning(
                "MQTT disconnected: %s; retrying every %ss",
                reason_code,
                self._config.reconnect_period,
            )

    def _handle_message(self, _client: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
        payload = msg.payload.decode("utf-8", errors="replace")
        self._logger.debug("Received PUBLISH topic=%s bytes=%d", msg.topic, len(msg.payload))
        try:
            self._loop.call_soon_threadsafe(self._on_message, msg.topic, payload)
        except RuntimeError:
            # Event loop already closed during shutdown.
            self._logger.debug("Dropped MQTT message after loop shutdown topic=%s", msg.topic)

    def start(self) -> None:
        """Connect in the background and keep retrying until :meth:`stop`."""
        self.stop()
        config = self._config
        self._logger.info("MQTT connecting to %s", config.broker_url)

        client = self._build_client()
        client.connect_async(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False
        self._connected = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
