"""
Test-double websocket service using FastAPI.

Speaks the frame codec so a client can be driven end to end without the
real service: it hands out QR references and pairing codes, answers tagged
requests and, through ``POST /link``, plays the phone that completes the
handshake.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from wacore.common.binary import Node
from wacore.common.config import Config
from wacore.common.exceptions import ProtocolError
from wacore.common.framing import Frame, TaggedPayload
from wacore.common.logging_utils import setup_logger
from wacore.common.models import PairRequest

from .domain.link_handler import LinkHandler
from .domain.pairing_handler import PairingHandler
from .routes import ServerRoutes
from .session_manager import Peer, SessionManager

NORMAL_CLOSURE = 1000


class MockServer:
    """Main test-double service class."""

    def __init__(
        self,
        config: Config | None = None,
        registered_phones: list[str] | None = None,
        server_host: str | None = None,
        server_port: int | None = None,
    ):
        self.config = config or Config()
        self.logger = logging.getLogger(__name__)
        setup_logger(self.logger, self.config.LOG_LEVEL)
        self.server_host = server_host or self.config.SERVER_HOST
        self.server_port = server_port or self.config.SERVER_PORT

        if registered_phones is None:
            registered_phones = self.config.REGISTERED_PHONES
        self.session_manager = SessionManager()
        self.pairing_handler = PairingHandler(registered_phones)
        self.link_handler = LinkHandler(self.session_manager)

        self.app = FastAPI()
        routes = ServerRoutes(self.link_handler, self.session_manager)
        routes.setup_routes(self.app)
        self.app.websocket("/ws")(self.websocket_endpoint)

        self.logger.info(
            "Clients must set ws_url='ws://%s:%s/ws' to connect",
            self.server_host,
            self.server_port,
        )

    async def websocket_endpoint(self, websocket: WebSocket) -> None:
        await websocket.accept()
        peer = Peer(send=websocket.send_bytes)
        self.session_manager.add_peer(peer)
        self.logger.info("Client connected")
        try:
            while True:
                data = await websocket.receive_bytes()
                frame = peer.codec.decode(data)
                if isinstance(frame, ProtocolError):
                    self.logger.warning("Dropping malformed frame: %s", frame)
                    continue
                if await self.handle_frame(peer, frame):
                    await websocket.close(NORMAL_CLOSURE)
                    break
        except WebSocketDisconnect as e:
            self.logger.info("Client disconnected (%s)", e.code)
        finally:
            self.session_manager.remove_peer(peer)

    async def handle_frame(self, peer: Peer, frame: Frame) -> bool:
        """Answer one inbound frame. Returns True when the socket should close."""
        message = frame.payload
        if isinstance(message, TaggedPayload):
            return await self.handle_tagged(peer, message)

        if "clientToken" in message:
            return await self.handle_init(peer, message)

        kind = message.get("type")
        if kind == "reref":
            await self.send_qr(peer)
        elif kind == "request_pair":
            try:
                req = PairRequest.model_validate(message)
            except ValidationError as e:
                self.logger.warning("Invalid pairing request: %s", e)
                await peer.send_structured({"type": "pair_error", "reason": "bad-request"})
            else:
                reply = self.pairing_handler.handle_pair(peer, req)
                await peer.send_structured(reply)
        else:
            self.logger.debug("Ignoring structured message %s", message)
        return False

    async def handle_init(self, peer: Peer, message: dict) -> bool:
        peer.client_token = message["clientToken"]
        if message.get("passive"):
            token = message.get("session")
            if not self.session_manager.is_known(token):
                self.logger.info("Refusing to resume unknown session")
                await peer.send_structured({"status": "timeout"})
                return True
            peer.server_token = token
            self.logger.info("Resumed session")
            await peer.send_structured({"status": "connected"})
            return False

        await peer.send_structured({"status": "connected"})
        await self.send_qr(peer)
        return False

    async def send_qr(self, peer: Peer) -> None:
        ref = self.session_manager.new_ref(peer)
        await peer.send_structured({"type": "qr", "ref": ref})

    async def handle_tagged(self, peer: Peer, payload: TaggedPayload) -> bool:
        node = payload.node
        xmlns = node.attrs.get("xmlns")
        status = "200"
        logout = False

        if xmlns == "status" and node.attrs.get("status") == "logout":
            self.session_manager.revoke(peer.server_token)
            logout = True
        elif xmlns == "contact":
            jid = node.attrs.get("jid", "")
            if not self.pairing_handler.is_registered(jid):
                status = "404"

        reply = Node("response", {"status": status})
        await peer.send(peer.codec.encode_tagged(payload.tag, reply))
        return logout
