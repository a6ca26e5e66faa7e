"""HTTP transport for the weather provider's current-weather endpoint."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import aiohttp

from pywxcontrol._constants import USER_AGENT
from pywxcontrol._redact import redact_url
from pywxcontrol.config import WxConfig
from pywxcontrol.exceptions import WxMalformedPayloadError, WxTransportError, WxTransportUnreachableError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """Opaque provider answer: HTTP status, reason phrase and body text."""

    status: int
    reason: str
    text: str
    location_id: str | None = None
    """Location the request was made for."""


class ProviderFetcher(Protocol):
    """Structural fetch interface used by the engine.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpProviderTransport`) concrete.
    """

    async def fetch_current(self, location_id: str, token: str, *, timeout: float) -> ProviderResponse:
        ...


class HttpProviderTransport:
    """aiohttp GET of ``{base_url}/weather`` with ``id``, ``units`` and ``appid`` query parameters."""

    def __init__(self, config: WxConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    @property
    def endpoint(self) -> str:
        return f"{self._config.base_url.rstrip('/')}/weather"

    def build_params(self, location_id: str, token: str) -> dict[str, str]:
        """Query parameters; aiohttp percent-encodes the values."""
        return {"id": str(location_id), "units": self._config.units, "appid": token}

    async def fetch_current(self, location_id: str, token: str, *, timeout: float) -> ProviderResponse:
        """Fetch current weather for *location_id*.

        Non-success HTTP statuses are returned, not raised; failures to
        obtain any response raise :class:`WxTransportError` and a body that
        cannot be decoded as text raises :class:`WxMalformedPayloadError`.
        """
        params = self.build_params(location_id, token)
        _logger.debug("GET %s (timeout=%.1fs)", redact_url(f"{self.endpoint}?{urlencode(params)}"), timeout)

        try:
            async with self._http.get(
                self.endpoint,
                params=params,
                headers={"user-agent": USER_AGENT, "accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                body = await resp.read()
                status = resp.status
                reason = resp.reason or ""
                charset = resp.charset or "utf-8"
        except aiohttp.ClientConnectorError as exc:
            raise WxTransportUnreachableError(
                f"Cannot connect to {self._config.base_url}: {exc}",
                location_id=location_id,
            ) from exc
        except TimeoutError as exc:
            raise WxTransportError(
                f"Request timed out after {timeout:.1f}s",
                location_id=location_id,
            ) from exc
        except aiohttp.ClientError as exc:
            raise WxTransportError(
                f"Request failed: {exc}",
                location_id=location_id,
            ) from exc

        try:
            text = body.decode(charset)
        except (UnicodeDecodeError, LookupError) as exc:
            raise WxMalformedPayloadError(
                f"Weather response is not valid {charset} text: {body[:32]!r}",
                location_id=location_id,
            ) from exc
        return ProviderResponse(status=status, reason=reason, text=text, location_id=location_id)
