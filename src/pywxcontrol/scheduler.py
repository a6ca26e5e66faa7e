"""Self-rescheduling poll loop.

At most one fetch is ever outstanding: the next tick is armed only by the
loop task itself, after the current tick has finished.  ``stop()`` is
synchronous; a tick already in flight runs to completion but the loop never
re-arms once its cancellation token is set.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)


class CancelToken:
    """One-shot cancellation flag that can also be awaited."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def wait_or_cancel(token: CancelToken, delay: float) -> None:
    """Sleep for *delay* seconds, returning early if *token* is cancelled."""
    if delay <= 0:
        return
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(token.wait(), delay)


Tick = Callable[[], Awaitable[None]]
Waiter = Callable[[CancelToken, float], Awaitable[None]]


class PollScheduler:
    """Owns the single poll task.

    Parameters
    ----------
    tick
        Coroutine function performing one fetch attempt.  Exceptions are
        logged and never end the loop.
    interval
        Returns the *current* poll interval in seconds.  Read once at the
        start of every cycle, so a change applies from the next cycle on.
    clock
        Monotonic clock used to compute cycle deadlines.
    wait
        Awaitable sleep that honours the cancellation token.
    """

    def __init__(
        self,
        tick: Tick,
        interval: Callable[[], float],
        *,
        clock: Callable[[], float] = time.monotonic,
        wait: Waiter = wait_or_cancel,
    ) -> None:
        self._tick = tick
        self._interval = interval
        self._clock = clock
        self._wait = wait
        self._task: asyncio.Task[None] | None = None
        self._token: CancelToken | None = None
        # Stopped tasks whose in-flight tick has not finished yet.
        self._draining: set[asyncio.Task[None]] = set()
        self._cycles = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None

    @property
    def cycles(self) -> int:
        """Number of ticks started since construction."""
        return self._cycles

    def start(self) -> bool:
        """Start polling; returns ``False`` if already running."""
        if self._task is not None:
            return False
        token = CancelToken()
        previous = tuple(self._draining)
        self._token = token
        self._task = asyncio.get_running_loop().create_task(
            self._run(token, previous),
            name="pywxcontrol-poll",
        )
        _logger.debug("Poll loop started")
        return True

    def stop(self) -> bool:
        """Stop polling; returns ``False`` if not running.

        No further tick starts once this returns.
        """
        task = self._task
        token = self._token
        if task is None or token is None:
            return False
        self._task = None
        self._token = None
        token.cancel()
        if not task.done():
            self._draining.add(task)
            task.add_done_callback(self._draining.discard)
        _logger.debug("Poll loop stopped")
        return True

    async def aclose(self) -> None:
        """Stop and cancel every poll task, including in-flight ticks."""
        self.stop()
        tasks = list(self._draining)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._draining.clear()

    async def _run(self, token: CancelToken, previous: tuple[asyncio.Task[None], ...]) -> None:
        if previous:
            # Let a tick from a stopped loop finish before fetching again.
            await asyncio.gather(*previous, return_exceptions=True)

        while not token.cancelled:
            interval = float(self._interval())
            deadline = self._clock() + interval
            self._cycles += 1
            try:
                await self._tick()
            except Exception:
                _logger.exception("Poll tick failed")
            if token.cancelled:
                break
            await self._wait(token, deadline - self._clock())
