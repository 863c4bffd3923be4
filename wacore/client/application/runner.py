"""
Application layer: hosts a client's event loop for synchronous callers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Coroutine, TypeVar

if TYPE_CHECKING:
    from wacore.client.client import WAClient

T = TypeVar("T")


class Runner:
    """Runs a WAClient on an event loop in a background thread."""

    def __init__(
        self,
        client_factory: Callable[[], WAClient],
        on_error_callback: Callable[[Exception], None] | None = None,
    ):
        self.client_factory = client_factory
        self.on_error_callback = on_error_callback
        self.logger = logging.getLogger(__name__)
        self.client: WAClient | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()

    def run(self) -> None:
        """Create the client on a fresh loop, connect, and serve until stopped."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            # The client binds its locks and futures to this loop
            self.client = self.client_factory()
            self._started.set()
            loop.run_until_complete(self.client.connect())
            loop.run_forever()
        except Exception as e:
            self.logger.exception("Client error")
            if self.on_error_callback:
                self.on_error_callback(e)
        finally:
            self._started.set()
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            self._loop = None

    def start_in_thread(self, timeout: float = 5.0) -> None:
        """Start the client in a separate thread."""
        if self._thread and self._thread.is_alive():
            self.logger.warning("Client is already running in a thread")
            return
        self._started.clear()
        self._thread = threading.Thread(target=self.run, daemon=True)
        self._thread.start()
        self._started.wait(timeout)
        self.logger.info("Client started in background thread")

    def call(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run a client coroutine on the client's loop and wait for its result."""
        if self._loop is None:
            coro.close()
            msg = "runner is not started"
            raise RuntimeError(msg)
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def stop_thread(self, timeout: float = 10.0) -> None:
        """Disconnect the client and stop the background thread."""
        loop = self._loop
        if loop is not None and self.client is not None:
            try:
                self.call(self.client.disconnect(), timeout)
            except Exception:
                self.logger.exception("Error disconnecting client")
            loop.call_soon_threadsafe(loop.stop)
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
        self.logger.info("Client thread stopped")
