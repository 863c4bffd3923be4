"""
Interfaces and protocols for dependency injection.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from wacore.common.models import Session


@dataclass
class TransportCallbacks:
    """Lifecycle signals a transport reports back to its owner."""

    on_open: Callable[[], Awaitable[None]]
    on_message: Callable[[bytes], Awaitable[None]]
    on_close: Callable[[int, str], Awaitable[None]]
    on_error: Callable[[Exception], Awaitable[None]]


class ITransport(Protocol):
    """Protocol for the socket owned by one connection epoch."""

    @property
    def is_open(self) -> bool: ...

    async def open(self) -> None: ...

    async def send(self, data: bytes) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


TransportFactory = Callable[[TransportCallbacks], ITransport]


class ISessionStore(Protocol):
    """Protocol for session persistence."""

    def load(self) -> Session | None: ...

    def save(self, session: Session) -> None: ...

    def clear(self) -> None: ...
