"""Injectable time source and the debounce timer built on it.

Everything in the orchestrator that waits for a fixed delay (debounce
window, event poll pacing) goes through a
[Clock][nodewatch.core.clock.Clock], so tests can drive time by hand
instead of sleeping.

[DebounceTimer][nodewatch.core.clock.DebounceTimer] is an explicit
three-state timer:

```text
      arm()            delay elapsed
IDLE -------> ARMED ---------------> FIRED --(callback done)--> IDLE
  ^             |
  +---cancel()--+
```

Arming while ``ARMED`` is a no-op, so a burst of hints collapses into one
callback ``delay`` seconds after the first hint. Arming while ``FIRED``
starts a fresh window for hints that arrived during the callback.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source with an awaitable sleep."""

    def monotonic(self) -> float: ...

    async def sleep(self, delay: float) -> None: ...


class SystemClock:
    """Production clock backed by ``time.monotonic`` and ``asyncio.sleep``."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)


class TimerState(StrEnum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"


class DebounceTimer:
    """Run an async callback once, ``delay`` seconds after the first arm.

    Args:
        delay: Debounce window in seconds.
        callback: Coroutine function invoked when the window elapses.
        clock: Time source; defaults to [SystemClock][nodewatch.core.clock.SystemClock].

    Note:
        [cancel()][nodewatch.core.clock.DebounceTimer.cancel] aborts an
        armed window but never interrupts a callback that is already
        running; the callback is detached and left to finish.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        clock: Clock | None = None,
    ) -> None:
        self._delay = delay
        self._callback = callback
        self._clock: Clock = clock or SystemClock()
        self._state = TimerState.IDLE
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def delay(self) -> float:
        return self._delay

    def arm(self) -> bool:
        """Start a debounce window unless one is already armed.

        Returns:
            True if a new window was started.
        """
        if self._state is TimerState.ARMED:
            return False
        self._state = TimerState.ARMED
        self._task = asyncio.create_task(self._run())
        return True

    def cancel(self) -> None:
        """Drop an armed window; detach a running callback."""
        task, self._task = self._task, None
        if task is not None and self._state is TimerState.ARMED:
            task.cancel()
        self._state = TimerState.IDLE

    async def wait(self) -> None:
        """Wait for the current window and its callback to finish (tests, shutdown)."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _run(self) -> None:
        me = asyncio.current_task()
        await self._clock.sleep(self._delay)
        if self._task is not me:
            return
        self._state = TimerState.FIRED
        try:
            await self._callback()
        finally:
            if self._task is me and self._state is TimerState.FIRED:
                self._state = TimerState.IDLE
                self._task = None
