"""
Websocket session client.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from wacore.client.application.auth import ShortCodeAuth, VisualCodeAuth
from wacore.client.application.reconnect import ReconnectPolicy
from wacore.client.application.tag_registry import TagRegistry
from wacore.client.domain.entities import AuthContext, ConnectionState
from wacore.client.domain.state_machine import ConnectionStateMachine
from wacore.client.infrastructure.config_loader import ConfigLoader
from wacore.client.infrastructure.websocket_transport import WebSocketTransport
from wacore.client.session_handler import SessionHandler
from wacore.common.binary import Node
from wacore.common.decorators import requires_state
from wacore.common.events import (
    Authenticated,
    Connected,
    ConnectionErrorEvent,
    ConnectionTimeout,
    Disconnected,
    EventBus,
    NodeReceived,
    ProtocolErrorEvent,
    Ready,
    ReconnectFailed,
    StateChange,
    UnknownMessage,
)
from wacore.common.exceptions import (
    AuthError,
    ProtocolError,
    StateError,
    TransportError,
    WacoreError,
)
from wacore.common.framing import FrameCodec, TaggedPayload
from wacore.common.interfaces import TransportCallbacks
from wacore.common.models import AuthMethod, ClientConfig, Session, SuccessMessage
from wacore.common.timers import TimerGroup

if TYPE_CHECKING:
    from wacore.common.config import Config
    from wacore.common.interfaces import ISessionStore, ITransport, TransportFactory

logger = logging.getLogger(__name__)

S = ConnectionState

READY_TIMER = "ready"
PRESENCE_TYPES = ("typing", "recording", "available", "unavailable", "paused")


class WAClient:
    """
    Session/transport client.

    All methods and callbacks run on one asyncio event loop. Listen for
    events through ``client.events``.

    Example:
        client = WAClient({"authMethod": "short-code", "phone": "40712345678"})

        @client.events.on(PairingCode)
        def show(event):
            print(event.code)

        await client.connect()
    """

    def __init__(
        self,
        options: ClientConfig | dict[str, Any] | None = None,
        *,
        config: Config | None = None,
        session_store: ISessionStore | None = None,
        transport_factory: TransportFactory | None = None,
        session_handler: SessionHandler | None = None,
    ):
        if options is None:
            options = ClientConfig()
        elif isinstance(options, dict):
            options = ClientConfig.model_validate(options)
        self.settings = ConfigLoader(options, config)
        self.session_store = session_store
        self.events = EventBus()

        self._transport_factory = transport_factory or self._default_transport
        self._transport: ITransport | None = None
        self._codec = FrameCodec()
        self._machine = ConnectionStateMachine(on_transition=self._on_transition)
        self._registry = TagRegistry(self.settings.request_timeout)
        self._timers = TimerGroup()
        self._session_handler = session_handler or SessionHandler()
        self._auth = AuthContext(self.settings.auth_method)
        self._explicit = False

        self._visual = VisualCodeAuth(
            self._session_handler,
            self.events,
            self._timers,
            self._send_control,
            self._on_auth_exhausted,
            max_retries=self.settings.qr_max_retries,
            timeout=self.settings.qr_timeout,
        )
        self._short = ShortCodeAuth(self._session_handler, self.events, self._send_control)
        self._reconnect = ReconnectPolicy(
            self.settings.max_reconnects,
            self.settings.reconnect_delay,
            on_attempt=self._reconnect_attempt,
            on_exhausted=self._on_reconnect_exhausted,
            backoff=self.settings.config.RECONNECT_BACKOFF,
        )

        if session_store is not None:
            stored = session_store.load()
            if stored is not None:
                self._session_handler.restore(stored)

    # Public surface

    @property
    def state(self) -> ConnectionState:
        return self._machine.state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect.attempts

    @property
    def qr_retries(self) -> int:
        return self._auth.qr_retries

    @property
    def pending_requests(self) -> int:
        return self._registry.pending_count

    async def connect(self) -> None:
        """
        Open a connection and start the handshake.

        Does nothing unless the client is disconnected.

        Raises:
            TransportError: if the socket cannot be opened
        """
        if self.state is not S.DISCONNECTED:
            logger.info("Already connecting or connected")
            return
        self._explicit = False
        await self._open()

    async def disconnect(self, logout: bool = True) -> None:  # noqa: FBT001, FBT002
        """
        Tear the connection down. Never reconnects.

        When authenticated the session is logged out first unless ``logout``
        is False, which keeps it resumable.
        """
        self._explicit = True
        self._reconnect.cancel()
        if self.state is S.DISCONNECTED:
            return
        if logout and self._machine.has_session:
            await self._send_logout()
        await self._shutdown(self.settings.config.NORMAL_CLOSE_CODE, "client disconnect")
        logger.info("Disconnected")

    async def send_structured(self, document: dict[str, Any]) -> None:
        """Send a key/value document on the open connection."""
        if self._transport is None or not self._transport.is_open:
            msg = f"no open connection (state: {self.state.value})"
            raise StateError(msg)
        await self._send_control(document)

    @requires_state(S.AUTHENTICATED, S.READY)
    async def send_tagged(
        self,
        node: Node,
        tag: str | None = None,
        timeout: float | None = None,
    ) -> Node:
        """
        Send a node tree and wait for the reply carrying the same tag.

        Raises:
            StateError: when not authenticated
            RequestTimeoutError: when no reply arrives in time
            TransportError: when the connection drops before the reply
        """
        transport = self._transport
        if transport is None:
            msg = f"no open connection (state: {self.state.value})"
            raise StateError(msg)
        tag = tag or self._registry.next_tag()
        future = self._registry.register(tag, timeout)
        try:
            await transport.send(self._codec.encode_tagged(tag, node))
        except (TransportError, ValueError) as e:
            self._registry.discard(tag, e)
        logger.debug("Sent tagged frame %s <%s>", tag, node.description)
        return await future

    async def request_pairing_code(self, phone: str | None = None) -> None:
        """
        Ask the server for a pairing code for ``phone`` (or the configured one).

        Raises:
            StateError: unless connected with the short-code method
            ValueError: when no phone number is available
        """
        if self._auth.method is not AuthMethod.SHORT_CODE:
            msg = "pairing codes require the short-code auth method"
            raise StateError(msg)
        self._machine.require(S.CONNECTED, S.AUTHENTICATING)
        phone = phone or self.settings.phone
        if not phone:
            msg = "a phone number is required to request a pairing code"
            raise ValueError(msg)
        await self._short.request(phone, self._auth)

    def get_session(self) -> Session | None:
        return self._session_handler.session

    async def restore_session(self, session: Session) -> None:
        """Replace the current session and reconnect with it."""
        if self.state is not S.DISCONNECTED:
            await self.disconnect(logout=False)
        self._session_handler.restore(session)
        await self.connect()

    @requires_state(S.AUTHENTICATED, S.READY)
    async def send_presence(self, to: str, presence: str) -> None:
        if presence not in PRESENCE_TYPES:
            msg = f"Invalid presence type: {presence}"
            raise ValueError(msg)
        await self.send_tagged(
            Node("action", {"type": "set", "xmlns": "presence", "to": to, "presence": presence})
        )

    @requires_state(S.AUTHENTICATED, S.READY)
    async def is_registered_user(self, number: str) -> bool:
        """Look up whether ``number`` has an account."""
        jid = ShortCodeAuth.format_phone(number.split("@")[0])
        try:
            reply = await self.send_tagged(
                Node("action", {"type": "get", "xmlns": "contact", "jid": jid})
            )
        except (WacoreError, TimeoutError) as e:
            logger.warning("Error checking registered user %s: %s", jid, e)
            return False
        return reply.attrs.get("status") == "200"

    @requires_state(S.AUTHENTICATED, S.READY)
    async def logout(self) -> None:
        """Log the session out and forget it."""
        await self.disconnect()
        self._session_handler.clear()
        if self.session_store is not None:
            self.session_store.clear()

    # Transport callbacks

    def _default_transport(self, callbacks: TransportCallbacks) -> WebSocketTransport:
        return WebSocketTransport(
            self.settings.ws_url,
            callbacks,
            headers=self.settings.headers(),
            origin=self.settings.config.ORIGIN,
            open_timeout=self.settings.config.OPEN_TIMEOUT_S,
        )

    async def _open(self) -> None:
        self._machine.transition(S.CONNECTING)
        self._registry.new_epoch()
        self._codec = FrameCodec()
        self._auth = AuthContext(self.settings.auth_method)
        self._session_handler.new_attempt()
        self._session_handler.ensure_keys()

        callbacks = TransportCallbacks(
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_close=self._handle_close,
            on_error=self._handle_error,
        )
        transport = self._transport_factory(callbacks)
        self._transport = transport
        try:
            await transport.open()
        except TransportError as e:
            logger.error("Error connecting: %s", e)
            self._transport = None
            self.events.emit(ConnectionErrorEvent(e))
            if self.state is not S.DISCONNECTED:
                self._machine.transition(S.DISCONNECTED)
            self.events.emit(Disconnected(e.code, str(e)))
            if self.settings.auto_reconnect and not self._explicit:
                self._reconnect.schedule()
            raise

    async def _handle_open(self) -> None:
        self._machine.transition(S.CONNECTED)
        self.events.emit(Connected())
        message = self._session_handler.init_message(self.settings.config)
        await self._send_control(message.to_wire())

    async def _handle_message(self, data: bytes) -> None:
        frame = self._codec.decode(data)
        if isinstance(frame, ProtocolError):
            logger.warning("Malformed frame (%s): %s", frame.reason.value, frame)
            self.events.emit(ProtocolErrorEvent(frame))
            return

        payload = frame.payload
        if isinstance(payload, TaggedPayload):
            tag, node = payload.tag, payload.node
            logger.debug("Received tagged frame %s <%s>", tag, node.description)
            if not self._registry.resolve(tag, node):
                self.events.emit(NodeReceived(tag, node))
            return

        try:
            await self._handle_structured(payload)
        except ValidationError as e:
            error = ProtocolError(f"invalid {payload.get('type')} message: {e}")
            logger.warning("%s", error)
            self.events.emit(ProtocolErrorEvent(error))
        except ProtocolError as e:
            logger.warning("Malformed control message: %s", e)
            self.events.emit(ProtocolErrorEvent(e))
        except StateError as e:
            logger.warning("Ignoring %s in state %s: %s", payload, self.state.value, e)
        except AuthError as e:
            logger.error("Handshake failed: %s", e)
            self.events.emit(ConnectionErrorEvent(e))
            await self._on_auth_exhausted()

    async def _handle_structured(self, message: dict[str, Any]) -> None:
        status = message.get("status")
        kind = message.get("type")
        logger.debug("Received structured message %s", message)

        if status == "connected":
            await self._on_server_connected()
        elif status == "connecting":
            logger.debug("Server reports connection in progress")
        elif status == "timeout":
            self._machine.transition(S.TIMEOUT)
            self.events.emit(ConnectionTimeout(message))
        elif kind == "qr":
            if self._auth.method is AuthMethod.VISUAL_CODE:
                self._visual.handle_qr(message, self._auth)
            else:
                logger.debug("Ignoring QR reference while pairing by code")
        elif kind == "success":
            self._on_success(SuccessMessage.model_validate(message))
        elif kind in ("pair_success", "pair_error"):
            self._short.handle_result(message)
        else:
            self.events.emit(UnknownMessage(message))

    async def _handle_close(self, code: int, reason: str) -> None:
        logger.info("Connection closed with code %s: %s", code, reason)
        self._transport = None
        self._teardown(TransportError(f"connection closed ({code})", code))
        if self.state is not S.DISCONNECTED:
            self._machine.transition(S.DISCONNECTED)
        self.events.emit(Disconnected(code, reason))

        if (
            self.settings.auto_reconnect
            and not self._explicit
            and code != self.settings.config.NORMAL_CLOSE_CODE
        ):
            self._reconnect.schedule()

    async def _handle_error(self, error: Exception) -> None:
        logger.error("Connection error: %s", error)
        self.events.emit(ConnectionErrorEvent(error))

    # Handshake

    async def _on_server_connected(self) -> None:
        session = self._session_handler.session
        if session is not None:
            self._machine.transition(S.AUTHENTICATED)
            self.events.emit(Authenticated(session.identity, session))
            self._schedule_ready()
            return

        self._machine.transition(S.AUTHENTICATING)
        if (
            self._auth.method is AuthMethod.SHORT_CODE
            and self.settings.phone
            and not self._auth.pairing_requested
        ):
            await self._short.request(self.settings.phone, self._auth)

    def _on_success(self, message: SuccessMessage) -> None:
        if self._machine.has_session:
            self._session_handler.refresh(message)
            self._save_session()
            return

        session = self._session_handler.materialise(message)
        self._visual.cancel()
        self._machine.transition(S.AUTHENTICATED)
        self._save_session()
        self.events.emit(Authenticated(session.identity, session))
        self._schedule_ready()

    def _schedule_ready(self) -> None:
        epoch = self._registry.epoch

        def settle() -> None:
            if self.state is S.AUTHENTICATED and self._registry.epoch == epoch:
                self._machine.transition(S.READY)
                self._reconnect.reset()
                self._auth.qr_retries = 0
                self.events.emit(Ready())

        self._timers.start(READY_TIMER, self.settings.ready_delay, settle)

    async def _on_auth_exhausted(self) -> None:
        self._explicit = True
        self._reconnect.cancel()
        await self._shutdown(self.settings.config.NORMAL_CLOSE_CODE, "authentication failed")

    def _save_session(self) -> None:
        session = self._session_handler.session
        if self.session_store is not None and session is not None:
            self.session_store.save(session)

    # Reconnection

    async def _reconnect_attempt(self) -> None:
        if self._explicit or self.state is not S.DISCONNECTED:
            return
        try:
            await self._open()
        except TransportError:
            # _open already scheduled the next attempt
            pass

    def _on_reconnect_exhausted(self, attempts: int) -> None:
        self.events.emit(ReconnectFailed(attempts))

    # Plumbing

    def _on_transition(self, previous: ConnectionState, current: ConnectionState) -> None:
        self.events.emit(StateChange(previous, current))

    async def _send_control(self, document: dict[str, Any]) -> None:
        if self._transport is None:
            msg = "no transport"
            raise TransportError(msg)
        logger.debug("Sending structured message %s", document)
        await self._transport.send(self._codec.encode_structured(document))

    async def _send_logout(self) -> None:
        try:
            await self.send_tagged(
                Node("action", {"type": "set", "xmlns": "status", "status": "logout"}),
                timeout=self.settings.logout_timeout,
            )
        except (WacoreError, TimeoutError) as e:
            logger.warning("Error sending logout message: %s", e)

    def _teardown(self, reason: Exception) -> None:
        self._timers.cancel_all()
        self._registry.reject_all(reason)

    async def _shutdown(self, code: int, reason: str) -> None:
        self._teardown(TransportError(reason, code))
        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close(code, reason)
            except TransportError as e:
                logger.debug("Error closing transport: %s", e)
        self._auth = AuthContext(self.settings.auth_method)
        if self.state is not S.DISCONNECTED:
            self._machine.transition(S.DISCONNECTED)
            self.events.emit(Disconnected(code, reason))
