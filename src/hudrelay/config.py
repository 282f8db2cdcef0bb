"""Relay and client link configuration for hudrelay."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from hudrelay._constants import (
    BROKER_CONNECT_TIMEOUT,
    BROKER_KEEPALIVE,
    BROKER_RECONNECT_PERIOD,
    DEFAULT_CAR_ID,
    DEFAULT_TOPIC_PREFIX,
    MQTT_PROTOCOLS,
    REBROADCAST_INTERVAL,
)
from hudrelay.exceptions import HudConfigError


def _env_int(env_key: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise HudConfigError(f"{env_key} must be an integer, got {value!r}") from exc


def topic_root(topic_prefix: str, car_id: int | str) -> str:
    """Return the per-vehicle topic root ``{prefix}/cars/{carId}``."""
    return f"{topic_prefix}/cars/{car_id}"


@dataclasses.dataclass(frozen=True)
class RelayConfig:
    """Relay process configuration.

    Parameters
    ----------
    mqtt_host : str
        Broker host name or address.
    mqtt_port : int
        Broker port.
    mqtt_protocol : str
        One of ``mqtt``, ``mqtts``, ``ws`` or ``wss``.
    mqtt_username, mqtt_password : str or None
        Optional broker credentials.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    topic_prefix : str
        Topic namespace, e.g. ``"teslamate"``.
    car_id : int
        Vehicle identifier inside the namespace.
    public_url : str
        Externally advertised WebSocket URL handed to clients through the
        config read-back endpoint. Empty means "derive from the page".
    http_host, http_port
        Listen address of the relay's HTTP/WebSocket server.
    reconnect_period : float
        Fixed broker reconnect period in seconds.
    connect_timeout : float
        Broker connect timeout in seconds.
    rebroadcast_interval : float
        Period of the full-cache re-broadcast in seconds.
    """

    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_protocol: str = "mqtt"
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_keepalive: int = BROKER_KEEPALIVE
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    car_id: int = DEFAULT_CAR_ID
    public_url: str = ""
    http_host: str = "0.0.0.0"  # noqa: S104
    http_port: int = 80
    reconnect_period: float = BROKER_RECONNECT_PERIOD
    connect_timeout: float = BROKER_CONNECT_TIMEOUT
    rebroadcast_interval: float = REBROADCAST_INTERVAL

    def __post_init__(self) -> None:
        if self.mqtt_protocol not in MQTT_PROTOCOLS:
            raise HudConfigError(
                f"Unsupported MQTT protocol {self.mqtt_protocol!r}; expected one of {sorted(MQTT_PROTOCOLS)}"
            )
        if not self.topic_prefix:
            raise HudConfigError("topic_prefix must be non-empty")
        for name in ("mqtt_port", "http_port"):
            port = getattr(self, name)
            if not 0 < port < 65536:
                raise HudConfigError(f"{name} must be between 1 and 65535, got {port}")

    @property
    def broker_url(self) -> str:
        return f"{self.mqtt_protocol}://{self.mqtt_host}:{self.mqtt_port}"

    @property
    def topic_root(self) -> str:
        return topic_root(self.topic_prefix, self.car_id)

    @property
    def subscription_topic(self) -> str:
        """Wildcard subscription covering every field of the configured vehicle."""
        return f"{self.topic_root}/#"

    def client_config(self) -> LinkConfig:
        """Connection parameters advertised to clients via the read-back endpoint."""
        return LinkConfig(proxy_url=self.public_url, topic_prefix=self.topic_prefix, car_id=self.car_id)

    @classmethod
    def from_env(cls, **overrides: Any) -> RelayConfig:
        """Create configuration from environment variables.

        Reads ``MQTT_HOST``, ``MQTT_PORT``, ``MQTT_PROTOCOL``,
        ``MQTT_TOPIC_PREFIX``, ``MQTT_CAR_ID``, ``MQTT_USERNAME``,
        ``MQTT_PASSWORD``, ``MQTT_KEEPALIVE``, ``PUBLIC_URL``, ``HOST`` and
        ``PORT``. Explicit keyword arguments override environment values.

        Raises
        ------
        HudConfigError
            When a numeric variable cannot be parsed or a value is invalid.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "MQTT_HOST": "mqtt_host",
            "MQTT_PROTOCOL": "mqtt_protocol",
            "MQTT_TOPIC_PREFIX": "topic_prefix",
            "MQTT_USERNAME": "mqtt_username",
            "MQTT_PASSWORD": "mqtt_password",
            "PUBLIC_URL": "public_url",
            "HOST": "http_host",
        }
        _ENV_INT_MAP = {
            "MQTT_PORT": "mqtt_port",
            "MQTT_CAR_ID": "car_id",
            "MQTT_KEEPALIVE": "mqtt_keepalive",
            "PORT": "http_port",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = val.strip()

        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val and field_name not in overrides:
                config_kwargs[field_name] = _env_int(env_key, val)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


class LinkConfig(BaseModel):
    """Client-side connection parameters.

    This is both the record served by the relay's config read-back endpoint
    and the locally persisted override record. On the wire keys are
    camelCase (``proxyUrl``, ``topicPrefix``, ``carId``).
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    proxy_url: str = ""
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    car_id: int = Field(default=DEFAULT_CAR_ID)

    @field_validator("proxy_url", "topic_prefix", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def topic_root(self) -> str:
        return topic_root(self.topic_prefix, self.car_id)
