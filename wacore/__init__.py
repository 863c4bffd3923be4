# wacore: websocket session/transport client

from wacore.client.client import WAClient
from wacore.common.binary import Node
from wacore.common.decorators import requires_state
from wacore.common.models import AuthMethod, ClientConfig, Session

__all__ = [
    "AuthMethod",
    "ClientConfig",
    "Node",
    "Session",
    "WAClient",
    "requires_state",
]
