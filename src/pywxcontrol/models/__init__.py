"""Data models for provider responses and persisted settings."""

from pywxcontrol.models._base import EpochSeconds, WxBaseModel, parse_epoch_seconds, to_local_datetime
from pywxcontrol.models.settings import FavoriteSlot, OverridePreset, Settings, default_override_presets
from pywxcontrol.models.weather import (
    Clouds,
    Coordinates,
    MainReadings,
    SunTimes,
    WeatherCondition,
    WeatherSnapshot,
    Wind,
)

__all__ = [
    "Clouds",
    "Coordinates",
    "EpochSeconds",
    "FavoriteSlot",
    "MainReadings",
    "OverridePreset",
    "Settings",
    "SunTimes",
    "WeatherCondition",
    "WeatherSnapshot",
    "Wind",
    "WxBaseModel",
    "default_override_presets",
    "parse_epoch_seconds",
    "to_local_datetime",
]
