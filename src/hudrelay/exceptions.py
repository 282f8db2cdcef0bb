"""Custom exception hierarchy for hudrelay."""

from __future__ import annotations


class HudError(Exception):
    """Base exception for all hudrelay errors."""


class HudConfigError(HudError):
    """Invalid or missing configuration."""


class HudPayloadError(HudError):
    """A relay frame could not be decoded into a known envelope."""


class HudTransportError(HudError):
    """HTTP-level failure while talking to the relay (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class HudLinkError(HudError):
    """The client link was used in a state that does not allow the operation.

    Raised for programming errors such as connecting a
    :class:`~hudrelay.link.manager.LinkManager` outside a running event loop.
    Network failures never raise; they feed the reconnect loop instead.
    """
