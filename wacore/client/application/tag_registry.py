"""
Application layer: correlation of tagged requests with their replies.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Any

from wacore.client.domain.entities import PendingRequest
from wacore.common.exceptions import RequestTimeoutError

logger = logging.getLogger(__name__)


class TagRegistry:
    """Hands out unique tags and resolves the futures waiting on them."""

    def __init__(self, default_timeout: float = 60.0):
        self.default_timeout = default_timeout
        self._counter = itertools.count()
        self._pending: dict[str, PendingRequest] = {}
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, tag: str) -> bool:
        return tag in self._pending

    def next_tag(self) -> str:
        """Millisecond timestamp plus a counter that survives reconnects."""
        return f"{int(time.time() * 1000)}.--{next(self._counter)}"

    def new_epoch(self) -> int:
        """Start a new connection epoch. Call ``reject_all`` first."""
        self._epoch += 1
        return self._epoch

    def register(self, tag: str, timeout: float | None = None) -> asyncio.Future[Any]:
        """
        Install a pending request for ``tag``.

        Raises:
            ValueError: if a request with the same tag is still pending
        """
        if tag in self._pending:
            msg = f"tag already pending: {tag}"
            raise ValueError(msg)

        loop = asyncio.get_running_loop()
        timeout = self.default_timeout if timeout is None else timeout
        future: asyncio.Future[Any] = loop.create_future()
        pending = PendingRequest(
            tag=tag,
            epoch=self._epoch,
            deadline=loop.time() + timeout,
            future=future,
        )
        pending.timer = loop.call_later(timeout, self._expire, tag, future)
        self._pending[tag] = pending
        future.add_done_callback(lambda fut: self._forget(tag, fut))
        logger.debug("Registered tag %s (timeout %.1fs)", tag, timeout)
        return future

    def resolve(self, tag: str, reply: Any) -> bool:
        """Complete the request waiting on ``tag``; late or unknown tags are dropped."""
        pending = self._pending.get(tag)
        if pending is None or pending.epoch != self._epoch:
            logger.debug("Dropping reply for unknown or stale tag %s", tag)
            return False
        self._remove(tag)
        if pending.future.done():
            return False
        pending.future.set_result(reply)
        return True

    def discard(self, tag: str, exc: BaseException) -> None:
        pending = self._remove(tag)
        if pending is not None and not pending.future.done():
            pending.future.set_exception(exc)

    def reject_all(self, exc: BaseException) -> int:
        """Fail every pending request. Returns how many were rejected."""
        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            if request.timer is not None:
                request.timer.cancel()
            if not request.future.done():
                request.future.set_exception(exc)
        if pending:
            logger.info("Rejected %d pending request(s): %s", len(pending), exc)
        return len(pending)

    def _expire(self, tag: str, future: asyncio.Future[Any]) -> None:
        pending = self._pending.get(tag)
        if pending is None or pending.future is not future:
            return
        self._remove(tag)
        if not future.done():
            logger.warning("Request %s timed out", tag)
            future.set_exception(RequestTimeoutError(f"Response timeout for {tag}", tag))

    def _forget(self, tag: str, future: asyncio.Future[Any]) -> None:
        # Caller cancelled its await
        pending = self._pending.get(tag)
        if pending is not None and pending.future is future:
            self._remove(tag)

    def _remove(self, tag: str) -> PendingRequest | None:
        pending = self._pending.pop(tag, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()
        return pending
