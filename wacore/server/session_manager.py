"""
Connection and session bookkeeping for the test-double service.
"""

from __future__ import annotations

import base64
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from wacore.common.framing import FrameCodec

REF_BYTES = 12
TOKEN_BYTES = 20


@dataclass
class Peer:
    """One connected websocket client as seen by the service."""

    send: Callable[[bytes], Awaitable[None]]
    codec: FrameCodec = field(default_factory=FrameCodec)
    client_token: str | None = None
    server_token: str | None = None
    ref: str | None = None
    pairing_code: str | None = None
    public_key: bytes | None = None

    async def send_structured(self, document: dict) -> None:
        await self.send(self.codec.encode_structured(document))


@dataclass
class IssuedSession:
    wid: str
    client_token: str
    name: str | None = None


class SessionManager:
    """Tracks connected peers and the session tokens handed out to them."""

    def __init__(self) -> None:
        self.peers: list[Peer] = []
        self.sessions: dict[str, IssuedSession] = {}

    def add_peer(self, peer: Peer) -> None:
        self.peers.append(peer)

    def remove_peer(self, peer: Peer) -> None:
        if peer in self.peers:
            self.peers.remove(peer)

    def new_ref(self, peer: Peer) -> str:
        """Assign a fresh QR reference to ``peer``."""
        peer.ref = base64.b64encode(os.urandom(REF_BYTES)).decode("ascii")
        return peer.ref

    def find_by_ref(self, ref: str) -> Peer | None:
        return next((p for p in self.peers if p.ref == ref), None)

    def find_by_code(self, code: str) -> Peer | None:
        code = code.replace("-", "").upper()
        return next((p for p in self.peers if p.pairing_code == code), None)

    def issue(self, peer: Peer, wid: str, name: str | None = None) -> str:
        """Create a session token for ``peer``."""
        token = base64.b64encode(os.urandom(TOKEN_BYTES)).decode("ascii")
        client_token = peer.client_token or ""
        self.sessions[token] = IssuedSession(wid=wid, client_token=client_token, name=name)
        peer.server_token = token
        peer.ref = None
        peer.pairing_code = None
        return token

    def is_known(self, token: str | None) -> bool:
        return token is not None and token in self.sessions

    def revoke(self, token: str | None) -> None:
        if token is not None:
            self.sessions.pop(token, None)

    def get_active_peers_count(self) -> int:
        return len(self.peers)
