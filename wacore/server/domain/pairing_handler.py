"""Pairing request handler for the test-double service.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import secrets
from typing import TYPE_CHECKING, Any

from wacore.common.models import PairRequest

if TYPE_CHECKING:
    from wacore.server.session_manager import Peer

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTVWXYZ23456789"
CODE_LENGTH = 8


class PairingHandler:
    """Answers ``request_pair`` messages with a code or an error."""

    def __init__(self, registered_phones: list[str] | None = None):
        self.registered_phones = {
            self.digits(phone) for phone in (registered_phones or [])
        }
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def digits(phone: str) -> str:
        return re.sub(r"\D", "", phone.split("@")[0])

    def is_registered(self, phone: str) -> bool:
        return self.digits(phone) in self.registered_phones

    def new_code(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def handle_pair(self, peer: Peer, req: PairRequest) -> dict[str, Any]:
        """Build the reply to a pairing request."""
        if not self.is_registered(req.phone):
            self.logger.info("Pairing refused for unregistered phone %s", req.phone)
            return {"type": "pair_error", "reason": "missing"}

        try:
            public_key = base64.b64decode(req.public_key, validate=True)
        except (binascii.Error, ValueError):
            self.logger.warning("Pairing request with undecodable public key")
            return {"type": "pair_error", "reason": "bad-key"}

        peer.public_key = public_key
        peer.pairing_code = self.new_code()
        self.logger.info("Issued pairing code for %s", req.phone)
        return {"type": "pair_success", "code": peer.pairing_code}
