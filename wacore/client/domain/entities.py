"""Domain layer: Core connection entities and rules.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from wacore.common.models import AuthMethod


class ConnectionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    READY = "READY"
    TIMEOUT = "TIMEOUT"


@dataclass
class KeyPair:
    """Domain entity holding one handshake attempt's key material."""

    client_id: str
    private_key: bytes
    public_key: bytes


@dataclass
class AuthContext:
    """Per-connection-attempt handshake state. Replaced wholesale on disconnect."""

    method: AuthMethod
    qr_retries: int = 0
    reference: str | None = None
    pairing_requested: bool = False


@dataclass
class ReconnectState:
    attempts: int = 0


@dataclass
class PendingRequest:
    """Domain entity representing one in-flight tagged request."""

    tag: str
    epoch: int
    deadline: float
    future: asyncio.Future[Any]
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)
