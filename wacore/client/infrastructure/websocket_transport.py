"""Infrastructure layer: websocket transport for one connection epoch.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from wacore.common.exceptions import TransportError
from wacore.common.interfaces import TransportCallbacks

logger = logging.getLogger(__name__)

ABNORMAL_CLOSURE = 1006


class WebSocketTransport:
    """Owns the socket and reports open/message/close/error to its owner."""

    def __init__(
        self,
        url: str,
        callbacks: TransportCallbacks,
        headers: dict[str, str] | None = None,
        origin: str | None = None,
        open_timeout: float = 20.0,
    ):
        self.url = url
        self.callbacks = callbacks
        self.headers = headers or {}
        self.origin = origin
        self.open_timeout = open_timeout
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    async def open(self) -> None:
        """Connect and start the read loop.

        Raises:
            TransportError: if the socket cannot be opened
        """
        logger.info("Connecting to %s", self.url)
        try:
            self._ws = await connect(
                self.url,
                additional_headers=self.headers,
                origin=self.origin,  # type: ignore[arg-type]
                open_timeout=self.open_timeout,
                max_size=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            msg = f"Could not open websocket to {self.url}: {e}"
            raise TransportError(msg, ABNORMAL_CLOSURE) from e

        logger.info("WebSocket connection established")
        self._reader = asyncio.create_task(self._read_loop())
        await self.callbacks.on_open()

    async def send(self, data: bytes) -> None:
        if self._ws is None or self._closing:
            msg = "WebSocket is not connected"
            raise TransportError(msg)
        async with self._send_lock:
            try:
                await self._ws.send(data)
            except ConnectionClosed as e:
                msg = f"WebSocket closed while sending: {e}"
                raise TransportError(msg, e.rcvd.code if e.rcvd else None) from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the socket. No ``on_close`` callback fires for an owner-initiated close."""
        if self._closing:
            return
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close(code, reason)
            except WebSocketException as e:
                logger.debug("Error closing WebSocket: %s", e)
        reader = self._reader
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async for message in ws:
                data = message.encode("utf-8") if isinstance(message, str) else message
                try:
                    await self.callbacks.on_message(data)
                except Exception:
                    logger.exception("Error processing WebSocket message")
        except ConnectionClosed:
            pass
        except OSError as e:
            if not self._closing:
                await self.callbacks.on_error(TransportError(str(e)))

        if self._closing:
            return
        self._closing = True
        self._ws = None
        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        reason = ws.close_reason or ""
        logger.info("WebSocket closed with code %s: %s", code, reason)
        await self.callbacks.on_close(code, reason)
