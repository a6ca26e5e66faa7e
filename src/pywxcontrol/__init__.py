"""pywxcontrol - Weather polling and override engine for broadcast node graphs."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pywxcontrol")
except PackageNotFoundError:
    __version__ = "0+local"
from pywxcontrol.api import build_api_handlers, dispatch
from pywxcontrol.config import WxConfig
from pywxcontrol.engine import WeatherControlEngine
from pywxcontrol.exceptions import (
    WxBadStatusError,
    WxConfigError,
    WxError,
    WxFetchError,
    WxInvalidPresetError,
    WxInvalidSlotError,
    WxMalformedPayloadError,
    WxPersistenceError,
    WxTransportDisconnectError,
    WxTransportError,
    WxTransportUnreachableError,
)
from pywxcontrol.models import FavoriteSlot, OverridePreset, Settings, WeatherSnapshot
from pywxcontrol.state.bus import EventName, NotificationBus, SubscriptionHandle
from pywxcontrol.state.overrides import EffectiveWeather, resolve_effective
from pywxcontrol.state.policy import PersistOutcome

__all__ = [
    "__version__",
    "EffectiveWeather",
    "EventName",
    "FavoriteSlot",
    "NotificationBus",
    "OverridePreset",
    "PersistOutcome",
    "Settings",
    "SubscriptionHandle",
    "WeatherControlEngine",
    "WeatherSnapshot",
    "WxBadStatusError",
    "WxConfig",
    "WxConfigError",
    "WxError",
    "WxFetchError",
    "WxInvalidPresetError",
    "WxInvalidSlotError",
    "WxMalformedPayloadError",
    "WxPersistenceError",
    "WxTransportDisconnectError",
    "WxTransportError",
    "WxTransportUnreachableError",
    "build_api_handlers",
    "dispatch",
    "resolve_effective",
]
