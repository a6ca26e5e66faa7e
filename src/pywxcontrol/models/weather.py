"""Current-weather snapshot model.

Mirrors the provider's ``/weather`` response.  Every field the engine
forwards is required: a payload that omits one fails validation instead of
producing a partially populated snapshot.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, model_validator

from pywxcontrol.models._base import EpochSeconds, WxBaseModel, to_local_datetime


class Coordinates(WxBaseModel):
    """Geographic position of the location."""

    lat: float
    lon: float


class WeatherCondition(WxBaseModel):
    """One entry of the provider ``weather`` array."""

    id: int
    """Provider weather condition code (e.g. ``800`` = clear sky)."""
    main: str
    """Condition group name (e.g. ``"Clouds"``)."""
    icon: str
    """Provider icon id (e.g. ``"04d"``)."""
    description: str = ""


class MainReadings(WxBaseModel):
    temp: float
    humidity: float
    pressure: float


class Wind(WxBaseModel):
    speed: float
    deg: float


class Clouds(WxBaseModel):
    coverage: int = Field(ge=0, le=100, validation_alias=AliasChoices("all", "coverage"))
    """Cloud coverage in percent."""


class SunTimes(WxBaseModel):
    sunrise: EpochSeconds
    sunset: EpochSeconds


class WeatherSnapshot(WxBaseModel):
    """Last successfully parsed provider response.

    Replaced wholesale on every successful ingest; never patched.
    """

    name: str
    """Location display name."""
    location_id: int = Field(validation_alias=AliasChoices("id", "location_id"))
    """Provider location id."""
    timezone: int
    """Offset from UTC in seconds."""
    dt: EpochSeconds
    """Time of the observation (epoch seconds)."""
    coord: Coordinates
    weather: list[WeatherCondition] = Field(min_length=1)
    main: MainReadings
    wind: Wind
    clouds: Clouds
    sun: SunTimes = Field(validation_alias=AliasChoices("sys", "sun"))
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """Original provider payload."""

    @model_validator(mode="before")
    @classmethod
    def _keep_raw(cls, values: Any) -> Any:
        return cls._stash_raw(values)

    @property
    def condition(self) -> WeatherCondition:
        """Primary weather condition (first entry of ``weather``)."""
        return self.weather[0]

    @property
    def weather_condition_id(self) -> int:
        return self.condition.id

    @property
    def cloud_coverage(self) -> int:
        return self.clouds.coverage

    @property
    def timezone_hours(self) -> float:
        return self.timezone / 3600

    def local_time(self, now: datetime) -> datetime:
        """*now* expressed in the location's UTC offset."""
        return to_local_datetime(int(now.timestamp()), self.timezone)

    @property
    def sunrise_local(self) -> datetime:
        return to_local_datetime(self.sun.sunrise, self.timezone)

    @property
    def sunset_local(self) -> datetime:
        return to_local_datetime(self.sun.sunset, self.timezone)

    def to_event_payload(self) -> dict[str, Any]:
        """Flat DTO sent with the ``weatherdata`` client event."""
        return {
            "name": self.name,
            "id": self.location_id,
            "timezone": self.timezone,
            "dt": self.dt,
            "sunrise": self.sun.sunrise,
            "sunset": self.sun.sunset,
            "lat": self.coord.lat,
            "lon": self.coord.lon,
            "temp": self.main.temp,
            "humidity": self.main.humidity,
            "pressure": self.main.pressure,
            "windSpeed": self.wind.speed,
            "windDeg": self.wind.deg,
            "clouds": self.clouds.coverage,
            "weatherId": self.condition.id,
            "weatherMain": self.condition.main,
            "weatherIcon": self.condition.icon,
        }
