"""
Application layer: bounded exponential backoff for reconnects.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from wacore.client.domain.entities import ReconnectState
from wacore.common.timers import Timer

logger = logging.getLogger(__name__)


class ReconnectPolicy:
    """Schedules reconnect attempts after unexpected transport closure."""

    def __init__(
        self,
        max_attempts: int,
        base_delay: float,
        on_attempt: Callable[[], Any],
        on_exhausted: Callable[[int], None],
        backoff: float = 1.5,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff = backoff
        self._on_attempt = on_attempt
        self._on_exhausted = on_exhausted
        self._state = ReconnectState()
        self._timer: Timer | None = None

    @property
    def attempts(self) -> int:
        return self._state.attempts

    @property
    def scheduled(self) -> bool:
        return self._timer is not None and self._timer.active

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before the 1-indexed ``attempt``."""
        return self.base_delay * self.backoff ** (attempt - 1)

    def schedule(self) -> bool:
        """Arm the next attempt. Returns False once the limit is reached."""
        if self._state.attempts >= self.max_attempts:
            logger.error("Maximum reconnect attempts reached (%d)", self.max_attempts)
            self.cancel()
            self._on_exhausted(self._state.attempts)
            return False

        self._state.attempts += 1
        delay = self.delay_for(self._state.attempts)
        logger.info(
            "Scheduling reconnect attempt %d/%d in %.2fs",
            self._state.attempts,
            self.max_attempts,
            delay,
        )
        self.cancel()
        self._timer = Timer(delay, self._fire, "reconnect").start()
        return True

    def _fire(self) -> Any:
        logger.info(
            "Reconnecting (attempt %d/%d)...", self._state.attempts, self.max_attempts
        )
        self._timer = None
        return self._on_attempt()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def reset(self) -> None:
        self._state.attempts = 0
