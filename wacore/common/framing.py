"""
Wire frame codec.

Frame layout: ``b"WA"`` magic, a 4-byte descriptor, then the payload.
Descriptor byte 1 is the kind (0 structured, 1 tagged); the remaining
descriptor bytes are version fields echoed back from the last inbound frame
of the same kind.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

from wacore.common.binary import Node, decode_node, encode_node
from wacore.common.exceptions import ProtocolError, ProtocolErrorReason

logger = logging.getLogger(__name__)

MAGIC = b"WA"
DESCRIPTOR_LENGTH = 4
HEADER_LENGTH = len(MAGIC) + DESCRIPTOR_LENGTH
KIND_OFFSET = 1  # within the descriptor
TAG_SEPARATOR = b","
MAX_TAG_LENGTH = 64


class FrameKind(IntEnum):
    STRUCTURED = 0
    TAGGED = 1


DEFAULT_DESCRIPTORS: dict[FrameKind, bytes] = {
    FrameKind.STRUCTURED: bytes((6, 0, 0, 0)),
    FrameKind.TAGGED: bytes((6, 1, 0, 0)),
}


@dataclass(frozen=True)
class TaggedPayload:
    """Payload of a tagged-binary frame."""

    tag: str
    node: Node


Payload = Union[dict[str, Any], TaggedPayload]


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    payload: Payload
    descriptor: bytes = b""


class FrameCodec:
    """Encodes and decodes wire frames."""

    def __init__(self) -> None:
        self._descriptors: dict[FrameKind, bytes] = dict(DEFAULT_DESCRIPTORS)

    def descriptor_for(self, kind: FrameKind) -> bytes:
        return self._descriptors[kind]

    def encode(self, kind: FrameKind, payload: Payload) -> bytes:
        """Serialize ``payload`` into a frame of the given kind."""
        if kind is FrameKind.STRUCTURED:
            if not isinstance(payload, dict):
                msg = "structured frames carry a key/value document"
                raise TypeError(msg)
            body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        else:
            if not isinstance(payload, TaggedPayload):
                msg = "tagged frames carry a TaggedPayload"
                raise TypeError(msg)
            tag = payload.tag.encode("ascii")
            if not tag or TAG_SEPARATOR in tag or len(tag) > MAX_TAG_LENGTH:
                msg = f"invalid tag: {payload.tag!r}"
                raise ValueError(msg)
            body = tag + TAG_SEPARATOR + encode_node(payload.node)
        return MAGIC + self._descriptors[kind] + body

    def encode_structured(self, document: dict[str, Any]) -> bytes:
        return self.encode(FrameKind.STRUCTURED, document)

    def encode_tagged(self, tag: str, node: Node) -> bytes:
        return self.encode(FrameKind.TAGGED, TaggedPayload(tag, node))

    def decode(self, data: bytes) -> Frame | ProtocolError:
        """
        Parse one frame.

        Malformed input is a data condition: the error is returned, never
        raised, so a bad frame cannot take down the read loop.
        """
        try:
            return self._parse(data)
        except ProtocolError as err:
            logger.debug("Dropping undecodable frame: %s", err)
            return err

    def _parse(self, data: bytes) -> Frame:
        if len(data) < HEADER_LENGTH:
            msg = f"frame shorter than header ({len(data)} < {HEADER_LENGTH} bytes)"
            raise ProtocolError(msg)
        if data[: len(MAGIC)] != MAGIC:
            msg = f"bad magic {bytes(data[: len(MAGIC)])!r}"
            raise ProtocolError(msg)

        descriptor = bytes(data[len(MAGIC) : HEADER_LENGTH])
        try:
            kind = FrameKind(descriptor[KIND_OFFSET])
        except ValueError as err:
            msg = f"unknown frame kind {descriptor[KIND_OFFSET]}"
            raise ProtocolError(msg, ProtocolErrorReason.UNKNOWN_KIND) from err

        body = bytes(data[HEADER_LENGTH:])
        if kind is FrameKind.STRUCTURED:
            payload: Payload = self._parse_structured(body)
        else:
            payload = self._parse_tagged(body)

        self._descriptors[kind] = descriptor
        return Frame(kind, payload, descriptor)

    @staticmethod
    def _parse_structured(body: bytes) -> dict[str, Any]:
        try:
            document = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as err:
            msg = f"structured payload is not valid JSON: {err}"
            raise ProtocolError(msg) from err
        if not isinstance(document, dict):
            msg = "structured payload must be a key/value document"
            raise ProtocolError(msg)
        return document

    @staticmethod
    def _parse_tagged(body: bytes) -> TaggedPayload:
        sep = body.find(TAG_SEPARATOR, 0, MAX_TAG_LENGTH + 1)
        if sep <= 0:
            msg = "tagged payload has no correlation tag"
            raise ProtocolError(msg)
        try:
            tag = body[:sep].decode("ascii")
        except UnicodeDecodeError as err:
            msg = "correlation tag is not ASCII"
            raise ProtocolError(msg) from err
        return TaggedPayload(tag, decode_node(body[sep + 1 :]))
