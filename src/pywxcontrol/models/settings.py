"""Persisted operator settings.

The on-disk document is a flat JSON object using the keys below (the
``alias`` of each field).  Older documents that store favorites as
``Fav01``/``Fav01ID`` … ``Fav04``/``Fav04ID`` are migrated on load.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pywxcontrol._constants import (
    DEFAULT_OVERRIDE_PRESETS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_SELECTED_PRESET,
    FAVORITE_SLOTS,
)

_LEGACY_FAV_KEYS: tuple[tuple[str, str], ...] = tuple((f"Fav{slot:02d}", f"Fav{slot:02d}ID") for slot in FAVORITE_SLOTS)


def _normalize_location_id(value: Any) -> str | None:
    """Location ids are stored as strings; the provider sends ints."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text.lower() in {"null", "none", "undefined"}:
        return None
    return text


class FavoriteSlot(BaseModel):
    """One stored favorite location."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str | None = Field(default=None, alias="Name")
    location_id: str | None = Field(default=None, alias="CityID")

    @field_validator("location_id", mode="before")
    @classmethod
    def _coerce_location_id(cls, value: Any) -> str | None:
        return _normalize_location_id(value)

    @property
    def is_empty(self) -> bool:
        return self.location_id is None


class OverridePreset(BaseModel):
    """A synthetic (weather condition id, cloud coverage) pair."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    preset_id: int = Field(alias="ID", ge=0)
    label: str = Field(alias="Label")
    weather_id: int = Field(alias="WeatherID")
    cloud_coverage: int = Field(alias="CloudCoverage", ge=0, le=100)


def default_override_presets() -> tuple[OverridePreset, ...]:
    return tuple(
        OverridePreset(preset_id=pid, label=label, weather_id=weather_id, cloud_coverage=clouds)
        for pid, label, weather_id, clouds in DEFAULT_OVERRIDE_PRESETS
    )


def _empty_favorites() -> tuple[FavoriteSlot, ...]:
    return tuple(FavoriteSlot() for _ in FAVORITE_SLOTS)


class Settings(BaseModel):
    """Durable configuration record.

    Instances are immutable; :class:`pywxcontrol.state.config_store.ConfigStore`
    replaces the whole value on every change so validation always runs.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        validate_default=True,
    )

    location_id: str | None = Field(default=None, alias="CityID")
    location_name: str | None = Field(default=None, alias="City")
    provider_token: str | None = Field(default=None, alias="APIToken")
    poll_interval_seconds: int = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0, alias="UpdateInterval")
    auto_updating: bool = Field(default=False, alias="AutoUpdating")
    favorites: tuple[FavoriteSlot, ...] = Field(default_factory=_empty_favorites, alias="Favorites")
    override_presets: tuple[OverridePreset, ...] = Field(
        default_factory=default_override_presets,
        alias="Overrides",
    )
    selected_preset_id: int = Field(default=DEFAULT_SELECTED_PRESET, alias="CurrentOverride")

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_favorites(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        if "Favorites" in values or "favorites" in values:
            return values
        if not any(name_key in values or id_key in values for name_key, id_key in _LEGACY_FAV_KEYS):
            return values
        migrated = dict(values)
        migrated["Favorites"] = [
            {"Name": migrated.pop(name_key, None), "CityID": migrated.pop(id_key, None)}
            for name_key, id_key in _LEGACY_FAV_KEYS
        ]
        return migrated

    @field_validator("location_id", mode="before")
    @classmethod
    def _coerce_location_id(cls, value: Any) -> str | None:
        return _normalize_location_id(value)

    @field_validator("favorites")
    @classmethod
    def _exactly_four_slots(cls, value: tuple[FavoriteSlot, ...]) -> tuple[FavoriteSlot, ...]:
        if len(value) > len(FAVORITE_SLOTS):
            raise ValueError(f"at most {len(FAVORITE_SLOTS)} favorites are supported, got {len(value)}")
        padding = tuple(FavoriteSlot() for _ in range(len(FAVORITE_SLOTS) - len(value)))
        return value + padding

    @field_validator("override_presets")
    @classmethod
    def _unique_preset_ids(cls, value: tuple[OverridePreset, ...]) -> tuple[OverridePreset, ...]:
        if not value:
            return default_override_presets()
        ids = [preset.preset_id for preset in value]
        if len(set(ids)) != len(ids):
            raise ValueError(f"duplicate override preset ids: {ids}")
        return tuple(sorted(value, key=lambda preset: preset.preset_id))

    @model_validator(mode="after")
    def _selected_preset_exists(self) -> Settings:
        exposed = {preset.preset_id for preset in self.override_presets if preset.preset_id > 0}
        if self.selected_preset_id not in exposed:
            raise ValueError(f"CurrentOverride {self.selected_preset_id} is not one of the presets {sorted(exposed)}")
        return self

    def to_document(self) -> dict[str, Any]:
        """Serialize to the on-disk JSON shape."""
        return self.model_dump(mode="json", by_alias=True)
