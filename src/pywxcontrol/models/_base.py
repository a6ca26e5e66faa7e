"""Base model and timestamp helpers for provider payloads.

Every provider response model inherits from :class:`WxBaseModel`, which is
frozen and ignores unknown keys.  Top-level response models additionally
stash the original payload in ``raw`` via :meth:`WxBaseModel._stash_raw`.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


def parse_epoch_seconds(value: Any) -> int:
    """Coerce a provider epoch timestamp to ``int`` seconds.

    Booleans are rejected even though they are ``int`` subclasses.
    """
    if isinstance(value, bool):
        raise ValueError("timestamp must be numeric, got bool")
    if isinstance(value, datetime):
        return int(value.timestamp())
    return int(value)


EpochSeconds = Annotated[int, BeforeValidator(parse_epoch_seconds)]
"""Annotated type for provider epoch seconds (``dt``, ``sunrise``, ``sunset``)."""


def to_local_datetime(epoch_seconds: int, offset_seconds: int) -> datetime:
    """Render *epoch_seconds* in the fixed UTC offset of the location."""
    tz = timezone(timedelta(seconds=offset_seconds))
    return datetime.fromtimestamp(epoch_seconds, tz=UTC).astimezone(tz)


class WxBaseModel(BaseModel):
    """Base for provider response models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    @staticmethod
    def _stash_raw(values: Any) -> Any:
        """Attach the original payload as ``raw`` unless explicitly provided."""
        if not isinstance(values, dict):
            return values
        if "raw" in values:
            return values
        stashed = dict(values)
        stashed["raw"] = dict(values)
        return stashed
