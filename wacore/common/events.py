"""
Typed event surface.

Every event is a frozen dataclass whose ``name`` class attribute is the
public event name. Listeners subscribe per event class.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, ClassVar, TypeVar, Union

if TYPE_CHECKING:
    from wacore.client.domain.entities import ConnectionState
    from wacore.common.binary import Node
    from wacore.common.exceptions import AuthError
    from wacore.common.models import Identity, Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChange:
    name: ClassVar[str] = "state_change"
    from_state: ConnectionState
    to_state: ConnectionState


@dataclass(frozen=True)
class QrCode:
    name: ClassVar[str] = "qr"
    reference: str
    client_id: str
    public_key: str
    expires_in_seconds: float
    payload: str


@dataclass(frozen=True)
class QrExpired:
    name: ClassVar[str] = "qr_expired"
    retries: int


@dataclass(frozen=True)
class QrMaxRetries:
    name: ClassVar[str] = "qr_max_retries"
    retries: int


@dataclass(frozen=True)
class PairingCodeRequest:
    name: ClassVar[str] = "pairing_code_request"
    phone: str


@dataclass(frozen=True)
class PairingCode:
    name: ClassVar[str] = "pairing_code"
    code: str


@dataclass(frozen=True)
class PairingCodeError:
    name: ClassVar[str] = "pairing_code_error"
    reason: str
    error: AuthError


@dataclass(frozen=True)
class Authenticated:
    name: ClassVar[str] = "authenticated"
    user: Identity
    session: Session


@dataclass(frozen=True)
class Ready:
    name: ClassVar[str] = "ready"


@dataclass(frozen=True)
class Connected:
    name: ClassVar[str] = "connected"


@dataclass(frozen=True)
class Disconnected:
    name: ClassVar[str] = "disconnected"
    code: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ConnectionErrorEvent:
    name: ClassVar[str] = "connection_error"
    error: Exception


@dataclass(frozen=True)
class ReconnectFailed:
    name: ClassVar[str] = "reconnect_failed"
    attempts: int


@dataclass(frozen=True)
class ConnectionTimeout:
    name: ClassVar[str] = "connection_timeout"
    message: dict[str, Any]


@dataclass(frozen=True)
class ProtocolErrorEvent:
    name: ClassVar[str] = "protocol_error"
    error: Exception


@dataclass(frozen=True)
class UnknownMessage:
    name: ClassVar[str] = "unknown_message"
    message: dict[str, Any]


@dataclass(frozen=True)
class NodeReceived:
    name: ClassVar[str] = "node"
    tag: str
    node: Node


Event = Union[
    StateChange,
    QrCode,
    QrExpired,
    QrMaxRetries,
    PairingCodeRequest,
    PairingCode,
    PairingCodeError,
    Authenticated,
    Ready,
    Connected,
    Disconnected,
    ConnectionErrorEvent,
    ReconnectFailed,
    ConnectionTimeout,
    ProtocolErrorEvent,
    UnknownMessage,
    NodeReceived,
]

E = TypeVar("E")
Listener = Callable[[Any], Any]


class EventBus:
    """Per-client subscriber lists keyed by event class."""

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = defaultdict(list)
        self._any: list[Listener] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    def subscribe(self, listener: Listener, *event_types: type) -> Callable[[], None]:
        """
        Register ``listener`` for the given event classes (all events when none).

        Returns a callable that removes the subscription.
        """
        if not event_types:
            self._any.append(listener)
            return lambda: self._any.remove(listener)
        for event_type in event_types:
            self._listeners[event_type].append(listener)

        def unsubscribe() -> None:
            for event_type in event_types:
                if listener in self._listeners[event_type]:
                    self._listeners[event_type].remove(listener)

        return unsubscribe

    def on(self, event_type: type[E]) -> Callable[[Listener], Listener]:
        """Decorator form of :meth:`subscribe`."""

        def decorator(listener: Listener) -> Listener:
            self.subscribe(listener, event_type)
            return listener

        return decorator

    def emit(self, event: Event) -> None:
        logger.debug("Event %s: %s", event.name, event)
        for listener in [*self._listeners.get(type(event), ()), *self._any]:
            try:
                result = listener(event)
            except Exception:
                logger.exception("Listener for %s failed", event.name)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async listener failed", exc_info=task.exception())

    async def wait_for(self, event_type: type[E], timeout: float | None = None) -> E:
        """Wait for the next event of ``event_type``."""
        future: asyncio.Future[E] = asyncio.get_running_loop().create_future()

        def listener(event: E) -> None:
            if not future.done():
                future.set_result(event)

        unsubscribe = self.subscribe(listener, event_type)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()
