"""Fixed-size favorite location slots (1..4)."""

from __future__ import annotations

import logging
from typing import Any

from pywxcontrol._constants import FAVORITE_SLOTS
from pywxcontrol.exceptions import WxInvalidSlotError
from pywxcontrol.models.settings import FavoriteSlot
from pywxcontrol.state.config_store import ConfigStore

_logger = logging.getLogger(__name__)


def _check_slot(slot: Any) -> int:
    if isinstance(slot, bool):
        raise WxInvalidSlotError(f"favorite slot must be one of {FAVORITE_SLOTS}, got {slot!r}")
    try:
        index = int(slot)
    except (TypeError, ValueError) as exc:
        raise WxInvalidSlotError(f"favorite slot must be one of {FAVORITE_SLOTS}, got {slot!r}") from exc
    if index not in FAVORITE_SLOTS:
        raise WxInvalidSlotError(f"favorite slot must be one of {FAVORITE_SLOTS}, got {slot!r}")
    return index


class FavoritesRegistry:
    """Named favorite slots backed by the settings in :class:`ConfigStore`."""

    def __init__(self, store: ConfigStore) -> None:
        self._store = store

    def get(self, slot: int) -> FavoriteSlot:
        index = _check_slot(slot)
        return self._store.settings.favorites[index - 1]

    def slots(self) -> dict[int, FavoriteSlot]:
        favorites = self._store.settings.favorites
        return {index: favorites[index - 1] for index in FAVORITE_SLOTS}

    def assign(self, slot: int, name: str | None, location_id: str) -> bool:
        """Store (*name*, *location_id*) in *slot*.

        Returns ``False`` without touching the settings when the slot already
        holds *location_id*.
        """
        index = _check_slot(slot)
        location = str(location_id)
        favorites = list(self._store.settings.favorites)
        if favorites[index - 1].location_id == location:
            _logger.info("Favorite %d already holds location %s, not storing again", index, location)
            return False

        favorites[index - 1] = FavoriteSlot(name=name, location_id=location)
        self._store.update(favorites=tuple(favorites))
        _logger.info("Stored favorite %d: %s (%s)", index, name, location)
        return True

    def as_payload(self) -> dict[str, Any]:
        """``favs`` event body: ``Fav01``/``Fav01ID`` … ``Fav04``/``Fav04ID``."""
        payload: dict[str, Any] = {}
        for index, favorite in self.slots().items():
            payload[f"Fav{index:02d}"] = favorite.name
            payload[f"Fav{index:02d}ID"] = favorite.location_id
        return payload
