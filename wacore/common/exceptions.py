"""
Custom exceptions for the session/transport layer.
"""

from __future__ import annotations

from enum import Enum


class WacoreError(Exception):
    """Base class for every error raised by wacore."""


class TransportError(WacoreError):
    """Socket-level failure or unexpected close."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ProtocolErrorReason(str, Enum):
    MALFORMED = "malformed"
    UNKNOWN_KIND = "unknown-kind"


class ProtocolError(WacoreError):
    """Exception for frames that cannot be decoded."""

    def __init__(
        self,
        message: str,
        reason: ProtocolErrorReason = ProtocolErrorReason.MALFORMED,
    ) -> None:
        super().__init__(message)
        self.reason = reason


class AuthErrorReason(str, Enum):
    MISSING = "missing"
    RATE_LIMITED = "rate-limited"
    UNKNOWN = "unknown"

    @classmethod
    def from_server(cls, reason: str | None) -> AuthErrorReason:
        """Map a server supplied reason string onto a known reason."""
        if reason == "missing":
            return cls.MISSING
        if reason in ("rate-limited", "rate_limited", "429"):
            return cls.RATE_LIMITED
        return cls.UNKNOWN


class AuthError(WacoreError):
    """Exception for rejected handshakes."""

    def __init__(
        self, message: str, reason: AuthErrorReason = AuthErrorReason.UNKNOWN
    ) -> None:
        super().__init__(message)
        self.reason = reason


class RequestTimeoutError(WacoreError, TimeoutError):
    """A tagged request or handshake step exceeded its deadline."""

    def __init__(self, message: str, tag: str | None = None) -> None:
        super().__init__(message)
        self.tag = tag


class StateError(WacoreError):
    """Operation invoked while the connection is in the wrong state."""


class LinkError(WacoreError):
    """Exception for rejected link requests on the test-double service."""

    def __init__(self, message: str, status_code: int = 404) -> None:
        super().__init__(message)
        self.status_code = status_code
