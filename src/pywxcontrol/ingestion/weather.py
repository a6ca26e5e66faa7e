"""Provider response validation and the last-known-good snapshot.

The ingestor is the sole owner of the current :class:`WeatherSnapshot` and
of the ``last_fetch_valid`` flag.  A failed ingest never touches the stored
snapshot; a successful one replaces it wholesale.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from pywxcontrol._constants import SUCCESS_STATUS
from pywxcontrol._transport import ProviderResponse
from pywxcontrol.exceptions import WxBadStatusError, WxMalformedPayloadError
from pywxcontrol.models.weather import WeatherSnapshot

_logger = logging.getLogger(__name__)


def parse_snapshot(text: str, *, location_id: str | None = None) -> WeatherSnapshot:
    """Parse a provider body into a snapshot or raise :class:`WxMalformedPayloadError`."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise WxMalformedPayloadError(
            f"Weather response is not JSON: {text[:64]!r}",
            location_id=location_id,
        ) from exc
    if not isinstance(payload, dict):
        raise WxMalformedPayloadError(
            "Weather response is not a JSON object",
            location_id=location_id,
        )
    try:
        return WeatherSnapshot.model_validate(payload)
    except ValidationError as exc:
        raise WxMalformedPayloadError(
            f"Weather response has an unexpected shape: {exc.error_count()} error(s)",
            location_id=location_id,
        ) from exc


class WeatherIngestor:
    """Validate fetch outcomes and keep the last successfully parsed snapshot."""

    def __init__(self) -> None:
        self._snapshot: WeatherSnapshot | None = None
        self._last_fetch_valid = False

    @property
    def snapshot(self) -> WeatherSnapshot | None:
        return self._snapshot

    @property
    def last_fetch_valid(self) -> bool:
        return self._last_fetch_valid

    def ingest(self, response: ProviderResponse) -> WeatherSnapshot:
        """Validate *response* and replace the stored snapshot.

        Raises
        ------
        WxBadStatusError
            Non-success HTTP status; the body is not parsed.
        WxMalformedPayloadError
            Body is not the expected current-weather JSON.
        """
        if response.status != SUCCESS_STATUS:
            self._last_fetch_valid = False
            _logger.warning("Weather provider returned %s %s", response.status, response.reason)
            raise WxBadStatusError(response.status, response.reason, location_id=response.location_id)

        try:
            snapshot = parse_snapshot(response.text, location_id=response.location_id)
        except WxMalformedPayloadError:
            self._last_fetch_valid = False
            raise

        self._snapshot = snapshot
        self._last_fetch_valid = True
        _logger.debug(
            "Ingested weather for %s (%s): %s, %s%% clouds",
            snapshot.name,
            snapshot.location_id,
            snapshot.condition.main,
            snapshot.cloud_coverage,
        )
        return snapshot

    def mark_failed(self) -> None:
        """Record a fetch that produced no response at all."""
        self._last_fetch_valid = False

    def invalidate(self) -> None:
        """Forget the validity of the last fetch (location changed, unconfirmed)."""
        self._last_fetch_valid = False
