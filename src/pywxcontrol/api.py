"""Client-facing method table.

The broker layer registers these handlers under their camelCase names and
forwards remote calls with :func:`dispatch`.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pywxcontrol.engine import WeatherControlEngine

Handler = Callable[..., Any]


def build_api_handlers(engine: WeatherControlEngine) -> dict[str, Handler]:
    """Map remote method names to bound engine methods."""
    return {
        "startPolling": engine.start_polling,
        "stopPolling": engine.stop_polling,
        "getStatus": engine.get_status,
        "getPollingInterval": engine.get_polling_interval,
        "changePollingInterval": engine.change_polling_interval,
        "getCityID": engine.get_city_id,
        "changeCityID": engine.change_city_id,
        "getToken": engine.get_token,
        "changeToken": engine.change_token,
        "isLinked": engine.is_linked,
        "changeLinked": engine.change_linked,
        "isOverridden": engine.is_overridden,
        "changeOverridden": engine.change_overridden,
        "getCurrentOverr": engine.get_current_overr,
        "changeCurrentOverr": engine.change_current_overr,
        "getOverrides": engine.get_overrides,
        "changeFav": engine.change_fav,
        "recallFav": engine.recall_fav,
        "emitCurrentWeatherData": engine.emit_current_weather_data,
        "emitFavs": engine.emit_favs,
        "storeIni": engine.store_ini,
        "changeAutoPolling": engine.change_auto_polling,
        "updateNow": engine.update_now,
    }


async def dispatch(handlers: Mapping[str, Handler], name: str, *args: Any) -> Any:
    """Invoke handler *name*, awaiting it when it is a coroutine function."""
    try:
        handler = handlers[name]
    except KeyError:
        raise KeyError(f"Unknown method {name!r}") from None
    result = handler(*args)
    if inspect.isawaitable(result):
        result = await result
    return result
