from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from _helpers import EventRecorder, FakeFetcher, ManualWait, RecordingNodeGraph, ok_response, settle
from pywxcontrol._transport import ProviderResponse
from pywxcontrol.config import WxConfig
from pywxcontrol.engine import WeatherControlEngine
from pywxcontrol.exceptions import (
    WxConfigError,
    WxError,
    WxInvalidPresetError,
    WxInvalidSlotError,
    WxMalformedPayloadError,
    WxTransportDisconnectError,
    WxTransportError,
    WxTransportUnreachableError,
)
from pywxcontrol.nodegraph import (
    PROP_CITY_NAME,
    PROP_CLOUD_COVERAGE,
    PROP_TEMPERATURE,
    PROP_TIME,
    PROP_WEATHER,
    PROP_WEATHER_ID,
)
from pywxcontrol.state.config_store import ConfigStore
from pywxcontrol.state.policy import PersistOutcome

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

UNAUTHORIZED = ProviderResponse(
    status=401,
    reason="Unauthorized",
    text='{"cod": 401, "message": "Invalid API key."}',
    location_id="2950159",
)

EngineFactory = Callable[..., WeatherControlEngine]


@pytest.fixture
def store(tmp_path: Path) -> ConfigStore:
    store = ConfigStore(tmp_path / "settings.json")
    store.update(location_id="2950159", provider_token="secret-token")
    return store


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def graph() -> RecordingNodeGraph:
    return RecordingNodeGraph()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def make_engine(store: ConfigStore, fetcher: FakeFetcher, manual_wait: ManualWait) -> EngineFactory:
    def factory(**overrides: object) -> WeatherControlEngine:
        kwargs: dict[str, object] = {
            "store": store,
            "fetcher": fetcher,
            "node_graph": RecordingNodeGraph(),
            "clock": lambda: FIXED_NOW,
            "scheduler_clock": lambda: 0.0,
            "scheduler_wait": manual_wait,
        }
        kwargs.update(overrides)
        return WeatherControlEngine(WxConfig(settings_path=str(store.path)), **kwargs)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def engine(make_engine: EngineFactory, graph: RecordingNodeGraph, recorder: EventRecorder) -> WeatherControlEngine:
    engine = make_engine(node_graph=graph)
    engine.attach_client(recorder)
    return engine


class TestFetchCycle:
    @pytest.mark.asyncio
    async def test_success_publishes_and_persists(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        store: ConfigStore,
        recorder: EventRecorder,
    ) -> None:
        snapshot = await engine.update_now()

        assert snapshot is not None
        assert engine.snapshot is snapshot
        assert engine.last_fetch_valid is True
        assert fetcher.calls == [("2950159", "secret-token", 10.0)]
        assert recorder.of("statusMessage") == [{"message": "Weather Data received.", "count": 1}]
        assert recorder.of("weatherdata")[0]["name"] == "Berlin"
        assert engine.settings.location_name == "Berlin"

        document = json.loads(store.path.read_text())
        assert document["CityID"] == "2950159"
        assert document["City"] == "Berlin"
        assert store.dirty is False

    @pytest.mark.asyncio
    async def test_unauthorized_reports_status_and_blocks_persist(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        store: ConfigStore,
        recorder: EventRecorder,
    ) -> None:
        fetcher.outcomes = [UNAUTHORIZED]

        assert await engine.update_now() is None

        assert recorder.of("statusMessage") == [{"message": "401 Unauthorized", "count": 1}]
        assert recorder.of("weatherdata") == []
        assert engine.last_fetch_valid is False
        assert engine.store_ini() is PersistOutcome.INVALID_RESPONSE
        assert not store.path.exists()
        assert store.dirty is True

    @pytest.mark.asyncio
    async def test_repeated_status_messages_are_counted(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        fetcher.outcomes = [UNAUTHORIZED, UNAUTHORIZED, ok_response()]

        for _ in range(3):
            await engine.update_now()

        assert recorder.of("statusMessage") == [
            {"message": "401 Unauthorized", "count": 1},
            {"message": "401 Unauthorized", "count": 2},
            {"message": "Weather Data received.", "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_unreachable_keeps_last_snapshot(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        fetcher.outcomes = [ok_response(), WxTransportUnreachableError("dns failure", location_id="2950159")]
        previous = await engine.update_now()

        assert await engine.update_now() is None

        assert engine.snapshot is previous
        assert engine.last_fetch_valid is False
        assert recorder.of("statusMessage")[-1] == {"message": "Can't reach the weather provider", "count": 1}

    @pytest.mark.asyncio
    async def test_timeout_is_reported(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        fetcher.outcomes = [WxTransportError("Request timed out after 10.0s", location_id="2950159")]

        await engine.update_now()

        assert recorder.of("statusMessage") == [{"message": "Request timed out after 10.0s", "count": 1}]

    @pytest.mark.asyncio
    async def test_malformed_payload_is_only_logged(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        fetcher.outcomes = [ProviderResponse(status=200, reason="OK", text="<html>oops</html>")]

        with caplog.at_level(logging.ERROR, logger="pywxcontrol.engine"):
            assert await engine.update_now() is None

        assert recorder.of("statusMessage") == []
        assert engine.last_fetch_valid is False
        assert "Discarding weather response" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_fetch_error_invalidates_last_fetch(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        store: ConfigStore,
    ) -> None:
        fetcher.outcomes = [ok_response(), RuntimeError("decoder exploded")]
        await engine.update_now()
        assert engine.last_fetch_valid is True

        with pytest.raises(RuntimeError):
            await engine.update_now()

        assert engine.last_fetch_valid is False
        store.update(provider_token="rotated")
        assert engine.store_ini() is PersistOutcome.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_malformed_body_from_fetch_is_a_failed_cycle(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        fetcher.outcomes = [ok_response(), WxMalformedPayloadError("not utf-8", location_id="2950159")]
        previous = await engine.update_now()

        assert await engine.update_now() is None

        assert engine.last_fetch_valid is False
        assert engine.snapshot is previous
        assert recorder.of("statusMessage") == [{"message": "Weather Data received.", "count": 1}]

    @pytest.mark.asyncio
    async def test_missing_token_skips_fetch(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        store: ConfigStore,
        recorder: EventRecorder,
    ) -> None:
        store.update(provider_token=None)

        assert await engine.update_now() is None

        assert fetcher.calls == []
        assert recorder.of("statusMessage") == [{"message": "No location or API token configured", "count": 1}]

    @pytest.mark.asyncio
    async def test_timeout_is_capped_by_poll_interval(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
    ) -> None:
        engine.change_polling_interval(3)

        await engine.update_now()

        assert fetcher.calls[0][2] == 3.0

    @pytest.mark.asyncio
    async def test_fetch_without_transport_raises(self, store: ConfigStore) -> None:
        engine = WeatherControlEngine(WxConfig(settings_path=str(store.path)), store=store)
        with pytest.raises(WxError):
            await engine.update_now()

    @pytest.mark.asyncio
    async def test_node_graph_failure_is_not_a_fetch_failure(self, make_engine: EngineFactory) -> None:
        graph = RecordingNodeGraph(failing=frozenset({PROP_TEMPERATURE}))
        engine = make_engine(node_graph=graph)
        await engine.change_linked(True)

        assert await engine.update_now() is not None

        assert engine.last_fetch_valid is True
        assert len(graph.writes) == 15
        assert PROP_TEMPERATURE not in graph.values()


class TestPolling:
    @pytest.mark.asyncio
    async def test_start_and_stop(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        engine.start_polling()
        await settle()

        assert engine.get_status() == {"status": "started"}
        assert recorder.of("pollingInterval") == [{"pollInterval": 10}]
        assert engine.settings.auto_updating is True
        assert len(fetcher.calls) == 1

        engine.stop_polling()
        await settle()

        assert engine.get_status() == {"status": "stopped"}
        assert recorder.of("statuschange") == [{"status": "started"}, {"status": "stopped"}]
        assert engine.settings.auto_updating is False
        assert len(fetcher.calls) == 1

    @pytest.mark.asyncio
    async def test_interval_change_applies_to_next_cycle(
        self,
        engine: WeatherControlEngine,
        manual_wait: ManualWait,
        recorder: EventRecorder,
    ) -> None:
        engine.start_polling()
        await settle()
        engine.change_polling_interval(5)
        manual_wait.release()
        await settle()

        assert manual_wait.delays == [10.0, 5.0]
        assert recorder.of("pollingInterval") == [{"pollInterval": 10}, {"pollInterval": 5}]
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_change_polling_interval_validation(
        self,
        engine: WeatherControlEngine,
        recorder: EventRecorder,
    ) -> None:
        engine.change_polling_interval(10)
        assert recorder.of("pollingInterval") == []
        with pytest.raises(WxConfigError):
            engine.change_polling_interval(0)
        assert engine.get_polling_interval() == {"pollInterval": 10}

    @pytest.mark.asyncio
    async def test_change_auto_polling_persists_flag(
        self,
        engine: WeatherControlEngine,
        store: ConfigStore,
    ) -> None:
        await engine.update_now()

        engine.change_auto_polling(True)

        assert engine.is_polling is True
        assert json.loads(store.path.read_text())["AutoUpdating"] is True
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_initialize_honours_auto_updating(self, tmp_path: Path, fetcher: FakeFetcher) -> None:
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"CityID": 2950159, "APIToken": "tok", "UpdateInterval": 15, "AutoUpdating": True}))
        engine = WeatherControlEngine(
            WxConfig(settings_path=str(path)),
            fetcher=fetcher,
            scheduler_clock=lambda: 0.0,
            scheduler_wait=ManualWait(),
        )

        await engine.initialize()
        await settle()

        assert engine.is_polling is True
        assert fetcher.calls == [("2950159", "tok", 10.0)]
        await engine.aclose()


class TestLocation:
    @pytest.mark.asyncio
    async def test_change_city_while_stopped_does_not_fetch(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
    ) -> None:
        await engine.update_now()

        engine.change_city_id(2988507)

        assert engine.get_city_id() == "2988507"
        assert engine.last_fetch_valid is False
        assert len(fetcher.calls) == 1
        assert engine.store_ini() is PersistOutcome.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_change_city_while_polling_fetches_immediately(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        engine.start_polling()
        await settle()

        engine.change_city_id("2988507")
        await settle()

        assert [call[0] for call in fetcher.calls] == ["2950159", "2988507"]
        assert recorder.of("statuschange") == [
            {"status": "started"},
            {"status": "stopped"},
            {"status": "started"},
        ]
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_result_for_previous_location_is_discarded(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        recorder: EventRecorder,
    ) -> None:
        fetcher.gate = asyncio.Event()
        pending = asyncio.ensure_future(engine.update_now())
        await settle()

        engine.change_city_id("2988507")
        fetcher.gate.set()

        assert await pending is None
        assert engine.snapshot is None
        assert engine.settings.location_name is None
        assert recorder.of("weatherdata") == []

    @pytest.mark.asyncio
    async def test_change_token_masks_log(
        self,
        engine: WeatherControlEngine,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.INFO, logger="pywxcontrol.engine"):
            engine.change_token("new-token-1234")

        assert engine.get_token() == "new-token-1234"
        assert "****1234" in caplog.text
        assert "new-token-1234" not in caplog.text


class TestLinkAndOverrides:
    @pytest.mark.asyncio
    async def test_unlinked_fetch_writes_nothing(
        self,
        engine: WeatherControlEngine,
        graph: RecordingNodeGraph,
    ) -> None:
        await engine.update_now()
        assert graph.writes == []

    @pytest.mark.asyncio
    async def test_linking_pushes_current_snapshot(
        self,
        engine: WeatherControlEngine,
        graph: RecordingNodeGraph,
        recorder: EventRecorder,
    ) -> None:
        await engine.update_now()

        await engine.change_linked(True)

        values = graph.values()
        assert len(graph.writes) == 16
        assert {node for node, _, _ in graph.writes} == {"KSTWC"}
        assert values[PROP_CITY_NAME] == "Berlin"
        assert values[PROP_WEATHER_ID] == 803
        assert values[PROP_CLOUD_COVERAGE] == 75
        assert values[PROP_TIME] == "2026-10-19T14:00:00+02:00"
        assert recorder.of("linkchange") == [{"isLinked": True}]
        assert engine.is_linked() is True

    @pytest.mark.asyncio
    async def test_override_is_pushed_without_fetch(
        self,
        engine: WeatherControlEngine,
        fetcher: FakeFetcher,
        graph: RecordingNodeGraph,
        recorder: EventRecorder,
    ) -> None:
        await engine.change_linked(True)
        assert graph.writes == []

        await engine.change_overridden(True)

        assert graph.values() == {PROP_WEATHER: "Clear", PROP_WEATHER_ID: 800, PROP_CLOUD_COVERAGE: 0}
        assert recorder.of("overrchange") == [{"isOverridden": True}]

        await engine.change_current_overr(6)

        assert graph.writes[-3:] == [
            ("KSTWC", PROP_WEATHER, "Snow"),
            ("KSTWC", PROP_WEATHER_ID, 601),
            ("KSTWC", PROP_CLOUD_COVERAGE, 90),
        ]
        assert recorder.of("currentOverrchange") == [{"currentOverr": 6}]
        assert engine.get_current_overr() == 6
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_override_applies_to_fetched_data(
        self,
        engine: WeatherControlEngine,
        graph: RecordingNodeGraph,
    ) -> None:
        await engine.change_current_overr(5)
        await engine.change_overridden(True)
        await engine.change_linked(True)

        await engine.update_now()

        values = graph.values()
        assert values[PROP_CITY_NAME] == "Berlin"
        assert values[PROP_WEATHER_ID] == 211
        assert values[PROP_CLOUD_COVERAGE] == 100

        await engine.change_overridden(False)

        assert graph.writes[-3:] == [
            ("KSTWC", PROP_WEATHER, "Clouds"),
            ("KSTWC", PROP_WEATHER_ID, 803),
            ("KSTWC", PROP_CLOUD_COVERAGE, 75),
        ]

    @pytest.mark.asyncio
    async def test_selected_preset_is_persisted(
        self,
        engine: WeatherControlEngine,
        store: ConfigStore,
    ) -> None:
        await engine.update_now()

        await engine.change_current_overr(3)

        assert json.loads(store.path.read_text())["CurrentOverride"] == 3

    @pytest.mark.asyncio
    async def test_invalid_preset_is_rejected(
        self,
        engine: WeatherControlEngine,
        recorder: EventRecorder,
    ) -> None:
        with pytest.raises(WxInvalidPresetError):
            await engine.change_current_overr(0)
        assert recorder.of("currentOverrchange") == []
        assert engine.get_current_overr() == 1

    def test_get_overrides_hides_preset_zero(self, engine: WeatherControlEngine) -> None:
        overrides = engine.get_overrides()
        assert [row["id"] for row in overrides] == [1, 2, 3, 4, 5, 6, 7]


class TestFavorites:
    @pytest.mark.asyncio
    async def test_requires_valid_fetch(self, engine: WeatherControlEngine, recorder: EventRecorder) -> None:
        assert engine.change_fav(1) is False
        assert recorder.of("favs") == []

    @pytest.mark.asyncio
    async def test_store_and_recall(
        self,
        engine: WeatherControlEngine,
        store: ConfigStore,
        recorder: EventRecorder,
    ) -> None:
        await engine.update_now()

        assert engine.change_fav(1) is True
        assert engine.change_fav(1) is False

        favs = recorder.of("favs")
        assert len(favs) == 1
        assert favs[0]["Fav01"] == "Berlin"
        assert favs[0]["Fav01ID"] == "2950159"
        assert json.loads(store.path.read_text())["Favorites"][0] == {"Name": "Berlin", "CityID": "2950159"}

        engine.change_city_id("2988507")
        assert engine.recall_fav(1) is True
        assert engine.get_city_id() == "2950159"
        assert engine.recall_fav(2) is False

    @pytest.mark.asyncio
    async def test_invalid_slot(self, engine: WeatherControlEngine) -> None:
        await engine.update_now()
        with pytest.raises(WxInvalidSlotError):
            engine.change_fav(9)
        with pytest.raises(WxInvalidSlotError):
            engine.recall_fav(0)


class TestClientSession:
    @pytest.mark.asyncio
    async def test_emitters(self, engine: WeatherControlEngine, recorder: EventRecorder) -> None:
        engine.emit_current_weather_data()
        assert recorder.of("weatherdata") == []

        await engine.update_now()
        engine.emit_current_weather_data()
        engine.emit_favs()

        assert len(recorder.of("weatherdata")) == 2
        assert recorder.of("favs")[0]["Fav04ID"] is None

    @pytest.mark.asyncio
    async def test_disconnect_tears_down_and_restarts(
        self,
        engine: WeatherControlEngine,
        recorder: EventRecorder,
    ) -> None:
        reconnects: list[int] = []

        async def reconnect() -> None:
            reconnects.append(1)

        engine.start_polling()
        await settle()

        await engine.handle_transport_disconnect(
            reconnect,
            cause=WxTransportDisconnectError("broker socket closed"),
        )

        assert reconnects == [1]
        assert engine.bus.subscriber_count() == 0
        assert engine.is_polling is True
        assert recorder.of("statuschange") == [{"status": "started"}, {"status": "stopped"}]
        await engine.aclose()

    @pytest.mark.asyncio
    async def test_disconnect_without_auto_updating_stays_stopped(self, engine: WeatherControlEngine) -> None:
        await engine.handle_transport_disconnect()
        assert engine.is_polling is False

    @pytest.mark.asyncio
    async def test_detach_client(self, engine: WeatherControlEngine, recorder: EventRecorder) -> None:
        engine.detach_client()
        await engine.update_now()
        assert recorder.events == []
