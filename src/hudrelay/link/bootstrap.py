"""Client configuration bootstrap.

A client starts from a locally persisted override record and then asks the
relay for its advertised parameters; non-empty values from the relay win.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiohttp
from pydantic import ValidationError

from hudrelay._constants import CONFIG_PATH
from hudrelay.config import LinkConfig
from hudrelay.exceptions import HudTransportError

_logger = logging.getLogger(__name__)


async def fetch_relay_config(session: aiohttp.ClientSession, base_url: str) -> LinkConfig:
    """Read the relay's advertised connection parameters.

    Raises
    ------
    HudTransportError
        On network failure, non-200 status, or a body that is not a valid
        config record.
    """
    url = f"{base_url.rstrip('/')}{CONFIG_PATH}"
    _logger.debug("GET %s", url)
    try:
        async with session.get(url) as resp:
            text = await resp.text()
            if resp.status != 200:
                raise HudTransportError(
                    f"HTTP {resp.status} from {CONFIG_PATH}: {text[:200]}",
                    status_code=resp.status,
                    endpoint=CONFIG_PATH,
                )
    except HudTransportError:
        raise
    except aiohttp.ClientError as exc:
        raise HudTransportError(f"Request to {CONFIG_PATH} failed: {exc}", endpoint=CONFIG_PATH) from exc

    try:
        return LinkConfig.model_validate_json(text)
    except ValidationError as exc:
        raise HudTransportError(f"Invalid config from {CONFIG_PATH}: {text[:200]}", endpoint=CONFIG_PATH) from exc


def merge_link_config(local: LinkConfig, server: LinkConfig | None) -> LinkConfig:
    """Overlay the relay's advertised values on the local override record.

    Only values the relay actually sets (non-empty text) replace local ones.
    """
    if server is None:
        return local
    updates = {
        name: value
        for name, value in server.model_dump(exclude_unset=True).items()
        if value is not None and value != ""
    }
    return local.model_copy(update=updates)


class LinkConfigStore:
    """JSON file holding the locally persisted override record."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LinkConfig:
        """Return the stored record, or defaults when missing or unreadable."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return LinkConfig()
        except OSError:
            _logger.warning("Could not read link config %s; using defaults", self._path, exc_info=True)
            return LinkConfig()
        try:
            return LinkConfig.model_validate_json(text)
        except ValidationError:
            _logger.warning("Ignoring malformed link config %s", self._path)
            return LinkConfig()

    def save(self, config: LinkConfig) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = config.model_dump(by_alias=True)
        self._path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
