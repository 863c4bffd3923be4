"""
Key material generator for handshake attempts.
"""

from __future__ import annotations

import base64
import logging
import os

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from wacore.client.domain.entities import KeyPair
from wacore.common.crypto import CryptoUtils

logger = logging.getLogger(__name__)

CLIENT_ID_BYTES = 16


class KeyGenerator:
    """Generates Curve25519 key pairs and random client identifiers."""

    def generate(self) -> KeyPair:
        """Generate a fresh key pair and client id."""
        private_key = X25519PrivateKey.generate()
        private_raw = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_raw = CryptoUtils.public_bytes(private_key.public_key())

        key_pair = KeyPair(
            client_id=os.urandom(CLIENT_ID_BYTES).hex(),
            private_key=private_raw,
            public_key=public_raw,
        )
        logger.info("Generated new client ID and keys")
        logger.debug("Client ID: %s", key_pair.client_id)
        return key_pair

    @staticmethod
    def encode_public(key_pair: KeyPair) -> str:
        return base64.b64encode(key_pair.public_key).decode("ascii")
