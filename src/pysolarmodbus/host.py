"""Host interface consumed by the poller.

The poller does not own attribute storage, availability reporting or the
event loop's timers: the application embedding it (the *host*) provides them
through :class:`DeviceHost`.  :class:`AsyncioScheduler` implements the timer
half on top of the running asyncio loop and can be reused by hosts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pysolarmodbus.config import DeviceConfig

_LOGGER = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class DeviceHost(Protocol):
    """Protocol for applications hosting a device poller."""

    @property
    def logger(self) -> logging.Logger:
        """Get the device-scoped logger."""
        ...

    def get_config(self) -> DeviceConfig:
        """Get the current connection settings."""
        ...

    async def set_attribute_value(self, capability_id: str, value: Any) -> None:
        """Publish a validated capability value."""
        ...

    async def set_availability(self, available: bool) -> None:
        """Report whether the device is reachable."""
        ...

    def call_later(self, delay: float, callback: TimerCallback) -> Any:
        """Run ``callback`` once after ``delay`` seconds and return a cancel handle."""
        ...

    def cancel(self, handle: Any) -> None:
        """Cancel a pending timer.  Must not affect a callback already running."""
        ...


class AsyncioScheduler:
    """One-shot coroutine timers on the running event loop.

    Cancelling a handle only stops a timer that has not fired yet; a callback
    that already started runs to completion.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay: float, callback: TimerCallback) -> asyncio.TimerHandle:
        """Schedule ``callback`` to run once after ``delay`` seconds."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._spawn, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        """Cancel a pending timer."""
        handle.cancel()

    def _spawn(self, callback: TimerCallback) -> None:
        task = asyncio.ensure_future(callback())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _LOGGER.error("Timer callback failed: %s", task.exception())

    async def shutdown(self) -> None:
        """Wait for callbacks that are already running."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


__all__ = ["AsyncioScheduler", "DeviceHost", "TimerCallback"]
