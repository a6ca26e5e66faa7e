"""Change-tracked persistence of operator settings.

This is the only component allowed to read or write the settings document.
Writes are gated twice: the dirty flag must be set and the most recent fetch
must have been valid, so a location that never resolved is not persisted as
if it were confirmed.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pywxcontrol._redact import redact_for_log
from pywxcontrol.exceptions import WxConfigError, WxPersistenceError
from pywxcontrol.models.settings import Settings
from pywxcontrol.state.policy import PersistOutcome, persist_decision

_logger = logging.getLogger(__name__)


def _never_valid() -> bool:
    return False


class ConfigStore:
    """Owns the :class:`Settings` value and its on-disk document."""

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        fetch_valid: Callable[[], bool] = _never_valid,
    ) -> None:
        self._path = Path(path)
        self._fetch_valid = fetch_valid
        self._settings = Settings()
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def dirty(self) -> bool:
        return self._dirty

    def bind_fetch_validity(self, fetch_valid: Callable[[], bool]) -> None:
        """Attach the predicate reporting whether the last fetch was valid."""
        self._fetch_valid = fetch_valid

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self) -> Settings:
        """Read the settings document; a missing file yields defaults."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            _logger.warning("Settings file %s not found, using defaults", self._path)
            self._settings = Settings()
            self._dirty = False
            return self._settings
        except OSError as exc:
            raise WxConfigError(f"Cannot read settings file {self._path}: {exc}") from exc

        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise WxConfigError(f"Settings file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise WxConfigError(f"Settings file {self._path} must contain a JSON object")

        try:
            self._settings = Settings.model_validate(document)
        except ValidationError as exc:
            raise WxConfigError(f"Invalid settings in {self._path}: {exc}") from exc
        self._dirty = False

        _logger.info(
            "Settings loaded location_id=%s interval=%ss auto_updating=%s",
            self._settings.location_id,
            self._settings.poll_interval_seconds,
            self._settings.auto_updating,
        )
        _logger.debug("Settings document: %s", redact_for_log(document))
        return self._settings

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(self, **changes: Any) -> bool:
        """Replace the settings with *changes* applied.

        Returns ``True`` (and marks the store dirty) when any value actually
        changed.  Invalid values raise :class:`WxConfigError` and leave the
        current settings untouched.
        """
        current = self._settings.model_dump()
        unknown = set(changes) - set(current)
        if unknown:
            raise WxConfigError(f"Unknown settings fields: {sorted(unknown)}")

        merged = {**current, **changes}
        try:
            updated = Settings.model_validate(merged)
        except ValidationError as exc:
            raise WxConfigError(f"Invalid settings change {sorted(changes)}: {exc}") from exc

        if updated == self._settings:
            return False
        self._settings = updated
        self._dirty = True
        return True

    def mark_dirty(self) -> None:
        self._dirty = True

    # ------------------------------------------------------------------
    # Persist
    # ------------------------------------------------------------------

    def persist(self) -> PersistOutcome:
        """Write the settings document iff dirty and the last fetch was valid."""
        outcome = persist_decision(dirty=self._dirty, last_fetch_valid=self._fetch_valid())
        if outcome is PersistOutcome.NO_CHANGES:
            _logger.debug("No settings changes, nothing to save")
            return outcome
        if outcome is PersistOutcome.INVALID_RESPONSE:
            _logger.info("Refusing to save settings: last weather response was invalid")
            return outcome

        try:
            self._write(self._settings.to_document())
        except WxPersistenceError:
            # Dirty stays set so a later persist can retry.
            _logger.warning("Saving settings to %s failed", self._path, exc_info=True)
            return PersistOutcome.FAILED

        self._dirty = False
        _logger.info("Settings saved to %s", self._path)
        return PersistOutcome.WRITTEN

    def _write(self, document: dict[str, Any]) -> None:
        """Atomically replace the settings file."""
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2)
                    handle.write("\n")
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise WxPersistenceError(f"Cannot write settings file {self._path}: {exc}") from exc
