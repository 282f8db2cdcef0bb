"""Internal constants shared across the library."""

WS_PATH = "/ws"
CONFIG_PATH = "/api/config"
HEALTH_PATH = "/health"

STATUS_MESSAGE = "Linked to HUD relay"

# ------------------------------------------------------------------
# Broker link timing (seconds)
# ------------------------------------------------------------------

BROKER_RECONNECT_PERIOD = 5.0
BROKER_CONNECT_TIMEOUT = 30.0
BROKER_KEEPALIVE = 60

# ------------------------------------------------------------------
# Fan-out / client link timing (seconds)
# ------------------------------------------------------------------

REBROADCAST_INTERVAL = 60.0
LINK_RETRY_INTERVAL = 5.0

# Rolling link log size shown on the display.
LINK_LOG_SIZE = 20

DEFAULT_TOPIC_PREFIX = "teslamate"
DEFAULT_CAR_ID = 1

MQTT_PROTOCOLS: frozenset[str] = frozenset({"mqtt", "mqtts", "ws", "wss"})
