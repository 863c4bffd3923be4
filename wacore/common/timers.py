"""
Cancellable one-shot timers bound to the running event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Timer:
    """One-shot timer; the callback may be a plain function or a coroutine function."""

    def __init__(self, delay: float, callback: Callable[[], Any], name: str = "timer"):
        self.delay = delay
        self.callback = callback
        self.name = name
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> Timer:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)
        return self

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        logger.debug("Timer %s fired after %.3fs", self.name, self.delay)
        result = self.callback()
        if inspect.isawaitable(result):
            self._task = asyncio.ensure_future(result)
            self._task.add_done_callback(self._report)

    def _report(self, task: asyncio.Future[Any]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Timer %s callback failed", self.name, exc_info=task.exception()
            )


class TimerGroup:
    """Named timers that are torn down together."""

    def __init__(self) -> None:
        self._timers: dict[str, Timer] = {}

    def start(self, name: str, delay: float, callback: Callable[[], Any]) -> Timer:
        self.cancel(name)
        timer = Timer(delay, callback, name).start()
        self._timers[name] = timer
        return timer

    def cancel(self, name: str) -> None:
        timer = self._timers.pop(name, None)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def active(self, name: str) -> bool:
        timer = self._timers.get(name)
        return timer is not None and timer.active
