"""Runtime configuration for pywxcontrol.

Operator preferences (location, token, favorites, presets) are *not* kept
here; they live in the persisted :class:`pywxcontrol.models.settings.Settings`
document owned by :class:`pywxcontrol.state.config_store.ConfigStore`.
"""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pywxcontrol._constants import (
    BASE_URL,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_NODE_NAME,
    DEFAULT_SETTINGS_PATH,
    DEFAULT_UNITS,
)
from pywxcontrol.exceptions import WxConfigError


@dataclasses.dataclass(frozen=True)
class WxConfig:
    """Engine configuration.

    Parameters
    ----------
    base_url : str
        Provider API base URL (without the ``/weather`` suffix).
    settings_path : str
        Location of the persisted settings JSON document.
    fetch_timeout : float
        Upper bound in seconds for one provider fetch.  The effective
        timeout is additionally capped by the current poll interval so
        fetches never overlap.
    units : str
        Provider unit system (``"metric"``, ``"imperial"``, ``"standard"``).
    node_name : str
        Node-graph node that receives forwarded weather properties.
    """

    base_url: str = BASE_URL
    settings_path: str = DEFAULT_SETTINGS_PATH
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    units: str = DEFAULT_UNITS
    node_name: str = DEFAULT_NODE_NAME

    def __post_init__(self) -> None:
        if self.fetch_timeout <= 0:
            raise WxConfigError(f"fetch_timeout must be positive, got {self.fetch_timeout}")
        if not self.node_name.strip():
            raise WxConfigError("node_name must be non-empty")

    def effective_timeout(self, poll_interval_seconds: float) -> float:
        """Timeout for one fetch, bounded by the poll interval."""
        return min(self.fetch_timeout, float(poll_interval_seconds))

    @classmethod
    def from_env(cls, **overrides: Any) -> WxConfig:
        """Create configuration from ``WXC_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "WXC_BASE_URL": "base_url",
            "WXC_SETTINGS_PATH": "settings_path",
            "WXC_UNITS": "units",
            "WXC_NODE_NAME": "node_name",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # fetch_timeout is numeric, handle separately
        timeout_env = env.get("WXC_FETCH_TIMEOUT")
        if timeout_env is not None and "fetch_timeout" not in overrides:
            try:
                config_kwargs["fetch_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise WxConfigError(f"WXC_FETCH_TIMEOUT is not a number: {timeout_env!r}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
