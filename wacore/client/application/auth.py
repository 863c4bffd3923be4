"""
Application layer: the two handshake variants.

Both follow the same pattern: make sure key material exists, send one
structured request, then interpret the server's reply.
"""

from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from wacore.client.infrastructure.keygen import KeyGenerator
from wacore.common.events import (
    EventBus,
    PairingCode,
    PairingCodeError,
    PairingCodeRequest,
    QrCode,
    QrExpired,
    QrMaxRetries,
)
from wacore.common.exceptions import AuthError, AuthErrorReason, ProtocolError
from wacore.common.models import PairRequest, PairResult

if TYPE_CHECKING:
    from wacore.client.domain.entities import AuthContext
    from wacore.client.session_handler import SessionHandler
    from wacore.common.timers import TimerGroup

logger = logging.getLogger(__name__)

Send = Callable[[dict[str, Any]], Awaitable[None]]

QR_EXPIRY_TIMER = "qr_expiry"
PAIRING_REF_BYTES = 8
USER_SERVER = "s.whatsapp.net"


class VisualCodeAuth:
    """QR handshake: publish a code, refresh it on expiry, give up after the limit."""

    def __init__(
        self,
        session_handler: SessionHandler,
        events: EventBus,
        timers: TimerGroup,
        send: Send,
        on_exhausted: Callable[[], Awaitable[None]],
        max_retries: int = 3,
        timeout: float = 60.0,
    ):
        self.session_handler = session_handler
        self.events = events
        self.timers = timers
        self.send = send
        self.on_exhausted = on_exhausted
        self.max_retries = max_retries
        self.timeout = timeout

    def handle_qr(self, message: dict[str, Any], context: AuthContext) -> QrCode:
        ref = message.get("ref")
        if not isinstance(ref, str) or not ref:
            msg = "qr message carries no reference"
            raise ProtocolError(msg)

        key_pair = self.session_handler.ensure_keys()
        public_key = KeyGenerator.encode_public(key_pair)
        context.reference = ref
        event = QrCode(
            reference=ref,
            client_id=key_pair.client_id,
            public_key=public_key,
            expires_in_seconds=self.timeout,
            payload=f"{ref},{key_pair.client_id},{public_key}",
        )
        logger.info("Received QR reference (retry %d)", context.qr_retries)
        self.events.emit(event)
        self.timers.start(QR_EXPIRY_TIMER, self.timeout, lambda: self._expired(context))
        return event

    async def _expired(self, context: AuthContext) -> None:
        context.qr_retries += 1
        if context.qr_retries >= self.max_retries:
            logger.error("QR code expired %d times, giving up", context.qr_retries)
            self.events.emit(QrMaxRetries(context.qr_retries))
            await self.on_exhausted()
            return

        logger.info(
            "QR code expired (%d/%d), requesting a new one",
            context.qr_retries,
            self.max_retries,
        )
        self.events.emit(QrExpired(context.qr_retries))
        await self.send({"type": "reref"})

    def cancel(self) -> None:
        self.timers.cancel(QR_EXPIRY_TIMER)


class ShortCodeAuth:
    """Pairing-code handshake for a phone number."""

    def __init__(
        self,
        session_handler: SessionHandler,
        events: EventBus,
        send: Send,
    ):
        self.session_handler = session_handler
        self.events = events
        self.send = send

    @staticmethod
    def format_phone(phone: str) -> str:
        """Turn a phone number into a user id; ids that already have a server part pass through."""
        if "@" in phone:
            return phone
        digits = re.sub(r"\D", "", phone)
        if not digits:
            msg = f"phone number has no digits: {phone!r}"
            raise ValueError(msg)
        return f"{digits}@{USER_SERVER}"

    @staticmethod
    def new_reference() -> str:
        return os.urandom(PAIRING_REF_BYTES).hex().upper()

    async def request(self, phone: str, context: AuthContext) -> PairRequest:
        """Send one pairing request with a fresh reference."""
        formatted = self.format_phone(phone)
        key_pair = self.session_handler.ensure_keys()
        request = PairRequest(
            ref=self.new_reference(),
            public_key=KeyGenerator.encode_public(key_pair),
            phone=formatted,
        )
        context.reference = request.ref
        context.pairing_requested = True

        logger.info("Requesting pairing code for %s", formatted)
        self.events.emit(PairingCodeRequest(formatted))
        await self.send(request.to_wire())
        return request

    def handle_result(self, message: dict[str, Any]) -> None:
        result = PairResult.model_validate(message)
        if result.type == "pair_success" and result.code:
            logger.info("Pairing code received")
            self.events.emit(PairingCode(result.code))
            return

        reason = AuthErrorReason.from_server(result.reason)
        logger.warning("Pairing code request failed: %s", result.reason)
        error = AuthError(f"pairing code request failed: {result.reason}", reason)
        self.events.emit(PairingCodeError(reason.value, error))
