"""Persistence gate policy.

Pure decision logic; the config store owns the side effects.
"""

from __future__ import annotations

from enum import StrEnum


class PersistOutcome(StrEnum):
    WRITTEN = "written"
    NO_CHANGES = "no_changes"
    INVALID_RESPONSE = "invalid_response"
    FAILED = "failed"


def persist_decision(*, dirty: bool, last_fetch_valid: bool) -> PersistOutcome:
    """Decide whether the settings document may be written.

    A write happens only when something changed *and* the most recent fetch
    confirmed the configured location.  ``WRITTEN`` here means "go ahead";
    the store downgrades it to ``FAILED`` if the write itself fails.
    """
    if not dirty:
        return PersistOutcome.NO_CHANGES
    if not last_fetch_valid:
        return PersistOutcome.INVALID_RESPONSE
    return PersistOutcome.WRITTEN
