"""Override preset resolution.

Decides which (weather condition id, cloud coverage) pair downstream
consumers see: the live snapshot values, or the selected preset while the
override is active.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pywxcontrol.exceptions import WxInvalidPresetError
from pywxcontrol.models.settings import OverridePreset
from pywxcontrol.models.weather import WeatherSnapshot
from pywxcontrol.state.config_store import ConfigStore

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EffectiveWeather:
    """Values forwarded to the node graph for the weather look."""

    weather_id: int
    cloud_coverage: int
    label: str
    """Preset label while overridden, otherwise the live condition group."""
    overridden: bool


def resolve_effective(
    *,
    overridden: bool,
    selected_preset_id: int,
    snapshot: WeatherSnapshot | None,
    table: Mapping[int, OverridePreset],
) -> EffectiveWeather | None:
    """Resolve the effective weather pair.

    Pure: the result depends only on the arguments.  Returns ``None`` when
    live values are requested but no snapshot has been ingested yet.
    """
    if overridden:
        preset = table[selected_preset_id]
        return EffectiveWeather(
            weather_id=preset.weather_id,
            cloud_coverage=preset.cloud_coverage,
            label=preset.label,
            overridden=True,
        )
    if snapshot is None:
        return None
    return EffectiveWeather(
        weather_id=snapshot.weather_condition_id,
        cloud_coverage=snapshot.cloud_coverage,
        label=snapshot.condition.main,
        overridden=False,
    )


class OverrideResolver:
    """Override flag plus the persisted preset table and selection."""

    def __init__(self, store: ConfigStore) -> None:
        self._store = store
        self._overridden = False

    @property
    def overridden(self) -> bool:
        return self._overridden

    @property
    def selected_preset_id(self) -> int:
        return self._store.settings.selected_preset_id

    @property
    def table(self) -> dict[int, OverridePreset]:
        return {preset.preset_id: preset for preset in self._store.settings.override_presets}

    def exposed_ids(self) -> list[int]:
        return [preset_id for preset_id in self.table if preset_id > 0]

    def set_overridden(self, state: bool) -> bool:
        """Returns ``True`` when the flag changed."""
        state = bool(state)
        if state == self._overridden:
            return False
        self._overridden = state
        _logger.info("Override %s", "enabled" if state else "disabled")
        return True

    def set_selected_preset(self, preset_id: Any) -> bool:
        """Select an exposed preset.  Returns ``True`` when the selection changed."""
        if isinstance(preset_id, bool):
            raise WxInvalidPresetError(f"preset id must be an integer, got {preset_id!r}")
        try:
            pid = int(preset_id)
        except (TypeError, ValueError) as exc:
            raise WxInvalidPresetError(f"preset id must be an integer, got {preset_id!r}") from exc
        exposed = self.exposed_ids()
        if pid not in exposed:
            raise WxInvalidPresetError(f"preset id must be one of {exposed}, got {pid}")
        if pid == self.selected_preset_id:
            return False
        self._store.update(selected_preset_id=pid)
        _logger.info("Selected override preset %d (%s)", pid, self.table[pid].label)
        return True

    def resolve(self, snapshot: WeatherSnapshot | None) -> EffectiveWeather | None:
        return resolve_effective(
            overridden=self._overridden,
            selected_preset_id=self.selected_preset_id,
            snapshot=snapshot,
            table=self.table,
        )

    def preset_labels(self) -> list[dict[str, Any]]:
        """Ordered ``{"id", "label"}`` rows for client display (preset 0 hidden)."""
        return [
            {"id": preset.preset_id, "label": preset.label}
            for preset in self._store.settings.override_presets
            if preset.preset_id > 0
        ]
