"""
Session handling for the websocket client.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import TYPE_CHECKING

from wacore.client.domain.entities import KeyPair
from wacore.client.infrastructure.keygen import KeyGenerator
from wacore.common.crypto import CryptoUtils
from wacore.common.exceptions import AuthError, StateError
from wacore.common.models import (
    Identity,
    InitMessage,
    KeyMaterial,
    Session,
    SuccessMessage,
    UserAgent,
    Version,
)

if TYPE_CHECKING:
    from wacore.common.config import Config

logger = logging.getLogger(__name__)

CLIENT_TOKEN_BYTES = 16


class SessionHandler:
    """Holds key material and turns handshake replies into a Session."""

    def __init__(self, keygen: KeyGenerator | None = None):
        self.keygen = keygen or KeyGenerator()
        self.key_pair: KeyPair | None = None
        self.session: Session | None = None
        self._client_token: str | None = None

    @property
    def resuming(self) -> bool:
        return self.session is not None

    def new_attempt(self) -> None:
        """Drop the key pair and client token of an earlier handshake that produced no session."""
        if self.session is None:
            self.key_pair = None
            self._client_token = None

    def ensure_keys(self) -> KeyPair:
        """Return the current key pair, generating one on first use."""
        if self.key_pair is None:
            self.key_pair = self.keygen.generate()
        return self.key_pair

    def client_token(self) -> str:
        if self.session is not None:
            return self.session.client_token
        if self._client_token is None:
            self._client_token = base64.b64encode(
                os.urandom(CLIENT_TOKEN_BYTES)
            ).decode("ascii")
        return self._client_token

    def init_message(self, config: Config) -> InitMessage:
        """Build the initialization message sent when the transport opens."""
        primary, secondary, tertiary = config.WA_VERSION
        os_primary, os_secondary, os_tertiary = config.OS_VERSION
        message = InitMessage(
            client_token=self.client_token(),
            user_agent=UserAgent(
                app_version=Version(
                    primary=primary, secondary=secondary, tertiary=tertiary
                ),
                os_version=Version(
                    primary=os_primary, secondary=os_secondary, tertiary=os_tertiary
                ),
            ),
        )
        if self.session is not None:
            message.passive = True
            message.session = self.session.server_token
            logger.info("Resuming session for %s", self.session.identity.id)
        return message

    def materialise(self, message: SuccessMessage) -> Session:
        """
        Build the Session carried by a handshake success reply.

        Raises:
            AuthError: if the attached secret is malformed or fails validation
        """
        key_pair = self.ensure_keys()
        keys = KeyMaterial(
            private_key=key_pair.private_key,
            public_key=key_pair.public_key,
        )
        if message.secret:
            try:
                secret = base64.b64decode(message.secret, validate=True)
            except (binascii.Error, ValueError) as e:
                msg = "handshake secret is not valid base64"
                raise AuthError(msg) from e
            keys.enc_key, keys.mac_key = CryptoUtils.unpack_secret(
                secret, key_pair.private_key
            )
            logger.debug("Unpacked encryption and MAC keys from handshake secret")

        self.session = Session(
            client_id=key_pair.client_id,
            server_token=message.session,
            client_token=message.client_token,
            key_material=keys,
            identity=Identity(id=message.wid, name=message.pushname, phone=message.phone),
        )
        logger.info("Session established for %s", message.wid)
        return self.session

    def refresh(self, message: SuccessMessage) -> Session:
        """Take over rotated tokens for an already established session."""
        if self.session is None:
            msg = "no session to refresh"
            raise StateError(msg)
        self.session = self.session.model_copy(
            update={
                "server_token": message.session,
                "client_token": message.client_token,
            }
        )
        logger.info("Session tokens refreshed")
        return self.session

    def restore(self, session: Session) -> None:
        """Adopt a stored session; the next connect resumes it."""
        self.session = session
        self.key_pair = KeyPair(
            client_id=session.client_id,
            private_key=session.key_material.private_key,
            public_key=session.key_material.public_key,
        )

    def clear(self) -> None:
        self.session = None
        self.key_pair = None
        self._client_token = None
