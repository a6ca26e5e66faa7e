"""Best-effort forwarding of weather values to the node graph.

Each property is written with its own call.  Failures are logged and never
retried; they are not fetch failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from pywxcontrol.models.weather import WeatherSnapshot
from pywxcontrol.state.overrides import EffectiveWeather

_logger = logging.getLogger(__name__)

PROP_CITY_NAME = "City Info//CityName/0"
PROP_CITY_ID = "City Info//CityID/0"
PROP_TIME = "City Info//Time/0"
PROP_TIMEZONE = "City Info//Timezone/0"
PROP_LATITUDE = "City Info//Latitude/0"
PROP_LONGITUDE = "City Info//Longitude/0"
PROP_SUNRISE = "City Info//Sunrise/0"
PROP_SUNSET = "City Info//Sunset/0"
PROP_TEMPERATURE = "Weather Data//Temperature/0"
PROP_HUMIDITY = "Weather Data//Humidity/0"
PROP_PRESSURE = "Weather Data//Pressure/0"
PROP_WIND_SPEED = "Weather Data//WindSpeed/0"
PROP_WIND_DIRECTION = "Weather Data//WindDirection/0"
PROP_WEATHER = "Weather Data//Weather/0"
PROP_WEATHER_ID = "Weather Data//WeatherID/0"
PROP_CLOUD_COVERAGE = "Weather Data//CloudCoverage/0"

PropertyWrite = tuple[str, Any]


class NodeGraphWriter(Protocol):
    """Remote property setter of the node graph."""

    async def set_property(self, node: str, path: str, value: Any) -> None:
        ...


def effective_properties(effective: EffectiveWeather) -> list[PropertyWrite]:
    """Properties that depend on override resolution."""
    return [
        (PROP_WEATHER, effective.label),
        (PROP_WEATHER_ID, effective.weather_id),
        (PROP_CLOUD_COVERAGE, effective.cloud_coverage),
    ]


def snapshot_properties(
    snapshot: WeatherSnapshot,
    effective: EffectiveWeather,
    *,
    now: datetime,
) -> list[PropertyWrite]:
    """All properties written after a successful fetch."""
    return [
        (PROP_CITY_NAME, snapshot.name),
        (PROP_CITY_ID, snapshot.location_id),
        (PROP_TIME, snapshot.local_time(now).isoformat()),
        (PROP_TIMEZONE, snapshot.timezone_hours),
        (PROP_LATITUDE, snapshot.coord.lat),
        (PROP_LONGITUDE, snapshot.coord.lon),
        (PROP_SUNRISE, snapshot.sunrise_local.isoformat()),
        (PROP_SUNSET, snapshot.sunset_local.isoformat()),
        (PROP_TEMPERATURE, snapshot.main.temp),
        (PROP_HUMIDITY, snapshot.main.humidity),
        (PROP_PRESSURE, snapshot.main.pressure),
        (PROP_WIND_SPEED, snapshot.wind.speed),
        (PROP_WIND_DIRECTION, snapshot.wind.deg),
        *effective_properties(effective),
    ]


async def push_properties(
    writer: NodeGraphWriter,
    node: str,
    properties: Sequence[PropertyWrite],
) -> int:
    """Write *properties* concurrently; returns the number of failed writes."""
    _logger.debug("Sending %d properties to node %s", len(properties), node)
    results = await asyncio.gather(
        *(writer.set_property(node, path, value) for path, value in properties),
        return_exceptions=True,
    )
    failed = 0
    for (path, _), result in zip(properties, results, strict=True):
        if isinstance(result, BaseException):
            failed += 1
            _logger.warning("Setting %s/%s failed: %s", node, path, result)
    return failed
