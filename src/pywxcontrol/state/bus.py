"""Synchronous event fan-out to the connected client and other listeners.

Subscriptions are keyed by an opaque handle returned from :meth:`subscribe`,
so teardown removes exactly the callback that was registered.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

_logger = logging.getLogger(__name__)

EventCallback = Callable[[dict[str, Any]], None]


class EventName(StrEnum):
    STATUS_CHANGE = "statuschange"
    LINK_CHANGE = "linkchange"
    OVERRIDE_CHANGE = "overrchange"
    CURRENT_OVERRIDE_CHANGE = "currentOverrchange"
    FAVORITES = "favs"
    STATUS_MESSAGE = "statusMessage"
    WEATHER_DATA = "weatherdata"
    POLLING_INTERVAL = "pollingInterval"


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    """Opaque token identifying one subscription."""

    event: str
    token: int


class NotificationBus:
    """Registration-ordered, synchronous publish/subscribe registry.

    ``publish`` runs every subscriber to completion before returning.  There
    is no queueing and no retry; a subscriber that raises is logged and the
    remaining subscribers still run.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._subscribers: dict[str, dict[int, EventCallback]] = {}

    def subscribe(self, event: str, callback: EventCallback) -> SubscriptionHandle:
        handle = SubscriptionHandle(event=str(event), token=next(self._counter))
        self._subscribers.setdefault(handle.event, {})[handle.token] = callback
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        """Remove a subscription.  Returns ``False`` if it was already gone."""
        callbacks = self._subscribers.get(handle.event)
        if callbacks is None or handle.token not in callbacks:
            return False
        del callbacks[handle.token]
        if not callbacks:
            del self._subscribers[handle.event]
        return True

    def clear(self) -> None:
        self._subscribers.clear()

    def subscriber_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._subscribers.get(str(event), {}))
        return sum(len(callbacks) for callbacks in self._subscribers.values())

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        # Dicts preserve insertion order, which is registration order.
        callbacks = list(self._subscribers.get(str(event), {}).values())
        _logger.debug("publish %s to %d subscriber(s)", event, len(callbacks))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                _logger.warning("Subscriber for %s failed", event, exc_info=True)
