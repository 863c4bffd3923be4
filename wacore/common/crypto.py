"""Common cryptographic utilities.
"""

from __future__ import annotations

import hashlib
import hmac
import os

from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from wacore.common.exceptions import AuthError

SECRET_LENGTH = 144
EXPANDED_LENGTH = 80
AES_BLOCK_BITS = 128


class CryptoUtils:
    """Utility class for cryptographic operations."""

    @staticmethod
    def hkdf(
        ikm: bytes,
        length: int,
        info: bytes | None = None,
        salt: bytes | None = None,
    ) -> bytes:
        """RFC 5869 HKDF-SHA256. A missing salt is a block of zero bytes."""
        return HKDF(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            info=info,
        ).derive(ikm)

    @staticmethod
    def aes_encrypt(data: bytes, key: bytes, iv: bytes) -> bytes:
        """AES-256-CBC with PKCS7 padding."""
        padder = padding.PKCS7(AES_BLOCK_BITS).padder()
        padded = padder.update(data) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    @staticmethod
    def aes_decrypt(data: bytes, key: bytes, iv: bytes) -> bytes:
        """Inverse of :meth:`aes_encrypt`."""
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(data) + decryptor.finalize()
        unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
        return unpadder.update(padded) + unpadder.finalize()

    @staticmethod
    def hmac_sign(data: bytes, key: bytes) -> bytes:
        return hmac.new(key, data, hashlib.sha256).digest()

    @staticmethod
    def hmac_verify(data: bytes, key: bytes, signature: bytes) -> bool:
        return hmac.compare_digest(CryptoUtils.hmac_sign(data, key), signature)

    @staticmethod
    def sha256(data: bytes) -> bytes:
        return hashlib.sha256(data).digest()

    @staticmethod
    def public_bytes(public_key: X25519PublicKey) -> bytes:
        return public_key.public_bytes(
            serialization.Encoding.Raw,
            serialization.PublicFormat.Raw,
        )

    @staticmethod
    def _expand_shared(private_key: bytes, peer_public: bytes) -> bytes:
        shared = X25519PrivateKey.from_private_bytes(private_key).exchange(
            X25519PublicKey.from_public_bytes(peer_public)
        )
        return CryptoUtils.hkdf(shared, EXPANDED_LENGTH)

    @staticmethod
    def unpack_secret(secret: bytes, private_key: bytes) -> tuple[bytes, bytes]:
        """
        Recover the encryption and MAC keys carried by a handshake secret.

        Layout of ``secret``: server public key (32) | HMAC (32) |
        AES-CBC encrypted ``enc_key + mac_key`` (80).

        Raises:
            AuthError: if the secret has the wrong size or fails the HMAC check
        """
        if len(secret) != SECRET_LENGTH:
            msg = f"handshake secret must be {SECRET_LENGTH} bytes, got {len(secret)}"
            raise AuthError(msg)

        expanded = CryptoUtils._expand_shared(private_key, secret[:32])
        if not CryptoUtils.hmac_verify(
            secret[:32] + secret[64:], expanded[32:64], secret[32:64]
        ):
            msg = "handshake secret failed HMAC validation"
            raise AuthError(msg)

        try:
            keys = CryptoUtils.aes_decrypt(secret[64:], expanded[:32], expanded[64:80])
        except ValueError as err:
            msg = "handshake secret could not be decrypted"
            raise AuthError(msg) from err
        return keys[:32], keys[32:64]

    @staticmethod
    def pack_secret(
        client_public: bytes,
        enc_key: bytes | None = None,
        mac_key: bytes | None = None,
    ) -> tuple[bytes, bytes, bytes]:
        """
        Build a handshake secret for ``client_public`` (service side).

        Returns the secret together with the encryption and MAC keys it carries.
        """
        enc_key = enc_key or os.urandom(32)
        mac_key = mac_key or os.urandom(32)
        server_priv = X25519PrivateKey.generate()
        server_pub = CryptoUtils.public_bytes(server_priv.public_key())
        shared = server_priv.exchange(X25519PublicKey.from_public_bytes(client_public))
        expanded = CryptoUtils.hkdf(shared, EXPANDED_LENGTH)

        encrypted = CryptoUtils.aes_encrypt(
            enc_key + mac_key, expanded[:32], expanded[64:80]
        )
        signature = CryptoUtils.hmac_sign(server_pub + encrypted, expanded[32:64])
        return server_pub + signature + encrypted, enc_key, mac_key
