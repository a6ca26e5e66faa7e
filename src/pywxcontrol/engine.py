"""Weather synchronization engine.

One explicit engine value owns the persisted settings, the last known good
snapshot, poll state, favorites and overrides.  The broker layer calls the
methods below (see :mod:`pywxcontrol.api` for the camelCase table) and
relays bus events to the connected front-end.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

import aiohttp

from pywxcontrol._constants import MSG_DATA_RECEIVED, STATUS_STARTED, STATUS_STOPPED
from pywxcontrol._redact import mask_token
from pywxcontrol._transport import HttpProviderTransport, ProviderFetcher
from pywxcontrol.config import WxConfig
from pywxcontrol.exceptions import (
    WxBadStatusError,
    WxError,
    WxMalformedPayloadError,
    WxTransportDisconnectError,
    WxTransportError,
)
from pywxcontrol.ingestion.weather import WeatherIngestor
from pywxcontrol.models.settings import Settings
from pywxcontrol.models.weather import WeatherSnapshot
from pywxcontrol.nodegraph import NodeGraphWriter, effective_properties, push_properties, snapshot_properties
from pywxcontrol.scheduler import PollScheduler, Waiter, wait_or_cancel
from pywxcontrol.state.bus import EventCallback, EventName, NotificationBus, SubscriptionHandle
from pywxcontrol.state.config_store import ConfigStore
from pywxcontrol.state.favorites import FavoritesRegistry
from pywxcontrol.state.overrides import OverrideResolver
from pywxcontrol.state.policy import PersistOutcome

_logger = logging.getLogger(__name__)

ClientSink = Callable[[str, dict[str, Any]], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class WeatherControlEngine:
    """Polling, override and persistence engine for one location.

    Usage::

        async with WeatherControlEngine(WxConfig.from_env(), node_graph=writer) as engine:
            engine.attach_client(send_to_frontend)
            await engine.initialize()
    """

    def __init__(
        self,
        config: WxConfig,
        *,
        store: ConfigStore | None = None,
        fetcher: ProviderFetcher | None = None,
        node_graph: NodeGraphWriter | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = _utcnow,
        scheduler_clock: Callable[[], float] = time.monotonic,
        scheduler_wait: Waiter = wait_or_cancel,
    ) -> None:
        self._config = config
        self._http_session = session
        self._owns_session = False
        self._fetcher = fetcher
        self._owns_fetcher = False
        self._node_graph = node_graph
        self._clock = clock

        self._bus = NotificationBus()
        self._ingestor = WeatherIngestor()
        self._store = store if store is not None else ConfigStore(config.settings_path)
        self._store.bind_fetch_validity(lambda: self._ingestor.last_fetch_valid)
        self._favorites = FavoritesRegistry(self._store)
        self._overrides = OverrideResolver(self._store)
        self._scheduler = PollScheduler(
            self._poll_once,
            lambda: self._store.settings.poll_interval_seconds,
            clock=scheduler_clock,
            wait=scheduler_wait,
        )
        self._fetch_lock = asyncio.Lock()

        self._linked = False
        self._last_status_message: str | None = None
        self._status_repeat = 0
        self._client_handles: list[SubscriptionHandle] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> WeatherControlEngine:
        if self._fetcher is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
                self._owns_session = True
            self._fetcher = HttpProviderTransport(self._config, self._http_session)
            self._owns_fetcher = True
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel polling and release the HTTP session if we created it."""
        await self._scheduler.aclose()
        if self._owns_fetcher:
            self._fetcher = None
            self._owns_fetcher = False
        if self._owns_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._owns_session = False

    def load_settings(self) -> Settings:
        """Load the persisted settings (once, at process start)."""
        return self._store.load()

    async def initialize(self) -> None:
        """Load settings and apply the auto-start preference."""
        self.load_settings()
        self.restart()

    def restart(self) -> None:
        """(Re)apply the persisted auto-start flag."""
        if self._store.settings.auto_updating:
            self._start()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    @property
    def settings(self) -> Settings:
        return self._store.settings

    @property
    def config_store(self) -> ConfigStore:
        return self._store

    @property
    def favorites(self) -> FavoritesRegistry:
        return self._favorites

    @property
    def overrides(self) -> OverrideResolver:
        return self._overrides

    @property
    def snapshot(self) -> WeatherSnapshot | None:
        return self._ingestor.snapshot

    @property
    def last_fetch_valid(self) -> bool:
        return self._ingestor.last_fetch_valid

    @property
    def is_polling(self) -> bool:
        return self._scheduler.is_running

    # ------------------------------------------------------------------
    # Client session
    # ------------------------------------------------------------------

    def attach_client(self, sink: ClientSink) -> list[SubscriptionHandle]:
        """Subscribe *sink* to every client-facing event."""
        for event in EventName:
            callback = self._bind_sink(sink, event.value)
            self._client_handles.append(self._bus.subscribe(event, callback))
        return list(self._client_handles)

    def detach_client(self) -> None:
        for handle in self._client_handles:
            self._bus.unsubscribe(handle)
        self._client_handles.clear()

    @staticmethod
    def _bind_sink(sink: ClientSink, event: str) -> EventCallback:
        def _forward(payload: dict[str, Any]) -> None:
            sink(event, payload)

        return _forward

    async def handle_transport_disconnect(
        self,
        reconnect: Callable[[], Awaitable[None]] | None = None,
        *,
        cause: WxTransportDisconnectError | None = None,
    ) -> None:
        """Tear down the client session and reinitialize scheduling.

        *cause* is the error the broker layer raised when the link dropped.
        Errors raised by *reconnect* propagate: a broker that cannot be
        re-registered is the bootstrap layer's problem.
        """
        _logger.warning("Client transport disconnected (%s), reinitializing", cause or "no details")
        self._stop()
        self._client_handles.clear()
        self._bus.clear()
        if reconnect is not None:
            await reconnect()
        self.restart()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def start_polling(self) -> None:
        self._start()
        self._store.update(auto_updating=True)

    def stop_polling(self) -> None:
        self._stop()
        self._store.update(auto_updating=False)

    def change_auto_polling(self, state: bool) -> None:
        if state and not self.is_polling:
            self.start_polling()
            _logger.info("Auto update activated")
        elif not state and self.is_polling:
            self.stop_polling()
            _logger.info("Auto update deactivated")
        else:
            _logger.info("Auto update already %s", "on" if state else "off")
        self._store.persist()

    async def update_now(self) -> WeatherSnapshot | None:
        """Run one fetch outside the poll schedule."""
        return await self._poll_once()

    def get_status(self) -> dict[str, str]:
        return {"status": STATUS_STARTED if self.is_polling else STATUS_STOPPED}

    def _start(self) -> None:
        if not self._scheduler.start():
            _logger.debug("Polling already running")
            return
        interval = self._store.settings.poll_interval_seconds
        _logger.info("Polling started every %ss", interval)
        self._publish(EventName.STATUS_CHANGE, {"status": STATUS_STARTED})
        self._publish(EventName.POLLING_INTERVAL, {"pollInterval": interval})

    def _stop(self) -> None:
        if not self._scheduler.stop():
            return
        _logger.info("Polling stopped")
        self._publish(EventName.STATUS_CHANGE, {"status": STATUS_STOPPED})

    async def _poll_once(self) -> WeatherSnapshot | None:
        async with self._fetch_lock:
            settings = self._store.settings
            location_id = settings.location_id
            token = settings.provider_token
            if not location_id or not token:
                self._ingestor.mark_failed()
                self._send_status_message("No location or API token configured")
                return None

            fetcher = self._require_fetcher()
            timeout = self._config.effective_timeout(settings.poll_interval_seconds)
            try:
                response = await fetcher.fetch_current(location_id, token, timeout=timeout)
            except WxTransportError as exc:
                if self._is_stale(location_id):
                    return None
                self._ingestor.mark_failed()
                _logger.warning("Weather fetch for %s failed: %s", location_id, exc)
                self._send_status_message(exc.status_message)
                return None
            except WxMalformedPayloadError as exc:
                if self._is_stale(location_id):
                    return None
                self._ingestor.mark_failed()
                _logger.error("Discarding weather response for %s: %s", location_id, exc)
                return None
            except Exception:
                self._ingestor.mark_failed()
                raise

            if self._is_stale(location_id):
                return None

            try:
                snapshot = self._ingestor.ingest(response)
            except WxBadStatusError as exc:
                self._send_status_message(exc.status_message)
                return None
            except WxMalformedPayloadError as exc:
                _logger.error("Discarding weather response for %s: %s", location_id, exc)
                return None

            await self._on_snapshot(snapshot)
            return snapshot

    def _is_stale(self, location_id: str) -> bool:
        current = self._store.settings.location_id
        if current == location_id:
            return False
        _logger.info("Discarding result for %s, location changed to %s", location_id, current)
        return True

    async def _on_snapshot(self, snapshot: WeatherSnapshot) -> None:
        self._send_status_message(MSG_DATA_RECEIVED)
        self._publish(EventName.WEATHER_DATA, snapshot.to_event_payload())
        self._store.update(location_name=snapshot.name)
        if self._linked:
            effective = self._overrides.resolve(snapshot)
            if effective is not None:
                await self._push(snapshot_properties(snapshot, effective, now=self._clock()))
        self._store.persist()

    def _require_fetcher(self) -> ProviderFetcher:
        if self._fetcher is None:
            raise WxError("Engine not initialized. Use 'async with WeatherControlEngine(...) as engine:'")
        return self._fetcher

    # ------------------------------------------------------------------
    # Settings commands
    # ------------------------------------------------------------------

    def get_polling_interval(self) -> dict[str, int]:
        return {"pollInterval": self._store.settings.poll_interval_seconds}

    def change_polling_interval(self, interval: int) -> None:
        if not self._store.update(poll_interval_seconds=interval):
            _logger.info("Polling interval already %s", interval)
            return
        new_interval = self._store.settings.poll_interval_seconds
        _logger.info("Polling interval changed to %ss", new_interval)
        self._publish(EventName.POLLING_INTERVAL, {"pollInterval": new_interval})

    def get_city_id(self) -> str | None:
        return self._store.settings.location_id

    def change_city_id(self, location_id: str | int) -> None:
        """Switch location; while polling this triggers an immediate fetch."""
        if self._store.update(location_id=location_id):
            # The new id is unconfirmed until a fetch succeeds for it.
            self._ingestor.invalidate()
            _logger.info("Location changed to %s", self._store.settings.location_id)
        else:
            _logger.info("Location %s is already active", location_id)
        if self.is_polling:
            self._stop()
            self._start()

    def get_token(self) -> str | None:
        return self._store.settings.provider_token

    def change_token(self, token: str) -> None:
        if self._store.update(provider_token=token):
            _logger.info("API token changed to %s", mask_token(token))
        else:
            _logger.info("API token unchanged")

    def store_ini(self) -> PersistOutcome:
        return self._store.persist()

    # ------------------------------------------------------------------
    # Link and overrides
    # ------------------------------------------------------------------

    def is_linked(self) -> bool:
        return self._linked

    async def change_linked(self, state: bool) -> None:
        state = bool(state)
        was_linked = self._linked
        self._linked = state
        _logger.info("Link state changed to %s", state)
        self._publish(EventName.LINK_CHANGE, {"isLinked": state})
        snapshot = self._ingestor.snapshot
        if state and not was_linked and snapshot is not None:
            effective = self._overrides.resolve(snapshot)
            if effective is not None:
                await self._push(snapshot_properties(snapshot, effective, now=self._clock()))

    def is_overridden(self) -> bool:
        return self._overrides.overridden

    async def change_overridden(self, state: bool) -> None:
        self._overrides.set_overridden(state)
        self._publish(EventName.OVERRIDE_CHANGE, {"isOverridden": self._overrides.overridden})
        await self._push_effective()

    def get_current_overr(self) -> int:
        return self._overrides.selected_preset_id

    async def change_current_overr(self, preset_id: int) -> None:
        changed = self._overrides.set_selected_preset(preset_id)
        self._publish(
            EventName.CURRENT_OVERRIDE_CHANGE,
            {"currentOverr": self._overrides.selected_preset_id},
        )
        if changed:
            await self._push_effective()
            self._store.persist()

    def get_overrides(self) -> list[dict[str, Any]]:
        return self._overrides.preset_labels()

    async def _push_effective(self) -> None:
        if not self._linked:
            return
        effective = self._overrides.resolve(self._ingestor.snapshot)
        if effective is None:
            _logger.debug("No weather data yet, nothing to send")
            return
        await self._push(effective_properties(effective))

    async def _push(self, properties: list[tuple[str, Any]]) -> None:
        if self._node_graph is None:
            _logger.debug("No node graph writer attached, skipping %d properties", len(properties))
            return
        await push_properties(self._node_graph, self._config.node_name, properties)

    # ------------------------------------------------------------------
    # Favorites
    # ------------------------------------------------------------------

    def change_fav(self, slot: int) -> bool:
        """Store the current location in favorite *slot*."""
        if not self._ingestor.last_fetch_valid:
            _logger.info("Not storing favorite %s: current location is not confirmed", slot)
            return False
        settings = self._store.settings
        if settings.location_id is None:
            _logger.info("Not storing favorite %s: no location configured", slot)
            return False
        if not self._favorites.assign(slot, settings.location_name, settings.location_id):
            return False
        self.emit_favs()
        self._store.persist()
        return True

    def recall_fav(self, slot: int) -> bool:
        """Switch to the location stored in favorite *slot*."""
        favorite = self._favorites.get(slot)
        if favorite.location_id is None:
            _logger.info("Favorite %s is empty", slot)
            return False
        self.change_city_id(favorite.location_id)
        return True

    # ------------------------------------------------------------------
    # Emitters
    # ------------------------------------------------------------------

    def emit_current_weather_data(self) -> None:
        snapshot = self._ingestor.snapshot
        if snapshot is not None:
            self._publish(EventName.WEATHER_DATA, snapshot.to_event_payload())

    def emit_favs(self) -> None:
        self._publish(EventName.FAVORITES, self._favorites.as_payload())

    def _send_status_message(self, message: str) -> None:
        if message == self._last_status_message:
            self._status_repeat += 1
        else:
            self._last_status_message = message
            self._status_repeat = 1
        self._publish(EventName.STATUS_MESSAGE, {"message": message, "count": self._status_repeat})

    def _publish(self, event: EventName, payload: dict[str, Any]) -> None:
        self._bus.publish(event, payload)
