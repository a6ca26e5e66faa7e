"""Custom exception hierarchy for pywxcontrol."""

from __future__ import annotations


class WxError(Exception):
    """Base exception for all pywxcontrol errors."""


class WxConfigError(WxError):
    """Invalid or missing configuration."""


class WxInvalidSlotError(WxError, ValueError):
    """Favorite slot index outside ``1..4``."""


class WxInvalidPresetError(WxError, ValueError):
    """Override preset id that is not part of the exposed preset table."""


class WxFetchError(WxError):
    """A single poll cycle failed.

    Fetch errors are isolated to the cycle that raised them: the scheduler
    keeps running and the last known good snapshot is left untouched.
    """

    def __init__(self, message: str, *, location_id: str | None = None) -> None:
        self.location_id = location_id
        super().__init__(message)

    @property
    def status_message(self) -> str:
        """Human-readable text reported to the connected client."""
        return str(self)


class WxTransportError(WxFetchError):
    """HTTP-level failure talking to the weather provider (timeout, protocol)."""


class WxTransportUnreachableError(WxTransportError):
    """DNS or connection failure; the provider could not be reached at all."""

    @property
    def status_message(self) -> str:
        return "Can't reach the weather provider"


class WxBadStatusError(WxFetchError):
    """Provider answered with a non-success HTTP status."""

    def __init__(
        self,
        status_code: int,
        reason: str = "",
        *,
        location_id: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"{status_code} {reason}".strip(), location_id=location_id)


class WxMalformedPayloadError(WxFetchError):
    """Provider body did not match the expected current-weather shape."""


class WxPersistenceError(WxError):
    """Writing the settings document to durable storage failed."""


class WxTransportDisconnectError(WxError):
    """The client/broker link was lost; the session must be torn down."""
