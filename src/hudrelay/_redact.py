"""Credential masking for relay log lines."""

from __future__ import annotations

import dataclasses
from typing import Any
from urllib.parse import urlsplit, urlunsplit

REDACTED = "<redacted>"

_CREDENTIAL_FIELDS: tuple[str, ...] = ("mqtt_username", "mqtt_password")


def redact_url(url: str) -> str:
    """Drop ``user:password@`` credentials from *url*."""
    parts = urlsplit(url)
    if parts.username is None and parts.password is None:
        return url
    host = parts.hostname or ""
    if parts.port is not None:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"{REDACTED}@{host}", parts.path, parts.query, parts.fragment))


def redact_config(config: Any) -> dict[str, Any]:
    """Field values of a config dataclass with broker credentials masked.

    Unset credentials stay ``None`` so the log still shows whether they were
    configured. URL valued fields lose any embedded userinfo.
    """
    values = dataclasses.asdict(config)
    for name, value in values.items():
        if name in _CREDENTIAL_FIELDS:
            if value is not None:
                values[name] = REDACTED
        elif isinstance(value, str) and "@" in value and "://" in value:
            values[name] = redact_url(value)
    return values
