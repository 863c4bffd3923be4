"""
Token-indexed binary codec for tagged node trees.

A node is written as a list whose first item is the description, followed by
attribute key/value pairs and an optional content item. Strings that appear
in ``SINGLE_BYTE_TOKENS`` are written as their one-byte index.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Union

from wacore.common.exceptions import ProtocolError

LIST_EMPTY = 0x00
LIST_8 = 0xF8
LIST_16 = 0xF9
BINARY_8 = 0xFC
BINARY_32 = 0xFE
MAX_DEPTH = 64

SINGLE_BYTE_TOKENS: tuple[str | None, ...] = (
    None, None, None, "200", "400", "404", "500", "501", "502", "action", "add",
    "after", "archive", "author", "available", "battery", "before", "body",
    "broadcast", "chat", "clear", "code", "composing", "contacts", "count",
    "create", "debug", "delete", "demote", "duplicate", "encoding", "error",
    "false", "filehash", "from", "g.us", "group", "groups", "height", "id",
    "image", "in", "index", "invis", "item", "jid", "kind", "last", "leave",
    "live", "log", "media", "message", "mimetype", "missing", "modify", "name",
    "notification", "notify", "out", "owner", "participant", "paused",
    "picture", "played", "presence", "preview", "promote", "query", "raw",
    "read", "receipt", "received", "recipient", "recording", "relay",
    "remove", "response", "resume", "retry", "s.whatsapp.net", "seconds",
    "set", "size", "status", "subject", "subscribe", "success", "t", "text",
    "true", "type", "unarchive", "unavailable", "url", "user", "value",
    "web", "width", "mute", "read_only", "admin", "creator", "short",
    "update", "powersave", "checksum", "epoch", "block", "previous",
    "c.us", "420", "private", "notice", "video", "revoke",
)

TOKEN_INDEX: dict[str, int] = {
    token: index for index, token in enumerate(SINGLE_BYTE_TOKENS) if token
}

NodeContent = Union[list["Node"], bytes, str, None]


@dataclass
class Node:
    """One element of a tagged node tree."""

    description: str
    attrs: dict[str, str] = field(default_factory=dict)
    content: NodeContent = None

    def child(self, description: str) -> Node | None:
        if isinstance(self.content, list):
            for node in self.content:
                if node.description == description:
                    return node
        return None


class _Writer:
    def __init__(self) -> None:
        self.buf = bytearray()

    def list_start(self, size: int) -> None:
        if size == 0:
            self.buf.append(LIST_EMPTY)
        elif size < 256:
            self.buf += bytes((LIST_8, size))
        elif size < 65536:
            self.buf.append(LIST_16)
            self.buf += struct.pack(">H", size)
        else:
            msg = f"list too large to encode: {size}"
            raise ProtocolError(msg)

    def raw(self, data: bytes) -> None:
        if len(data) < 256:
            self.buf += bytes((BINARY_8, len(data)))
        else:
            self.buf.append(BINARY_32)
            self.buf += struct.pack(">I", len(data))
        self.buf += data

    def string(self, value: str) -> None:
        index = TOKEN_INDEX.get(value)
        if index is not None:
            self.buf.append(index)
        else:
            self.raw(value.encode("utf-8"))

    def node(self, node: Node) -> None:
        size = 1 + 2 * len(node.attrs) + (0 if node.content is None else 1)
        self.list_start(size)
        self.string(node.description)
        for key, value in node.attrs.items():
            self.string(key)
            self.string(str(value))
        if isinstance(node.content, list):
            self.list_start(len(node.content))
            for child in node.content:
                self.node(child)
        elif isinstance(node.content, bytes):
            self.raw(node.content)
        elif isinstance(node.content, str):
            self.string(node.content)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def _take(self, count: int) -> bytes:
        if count > len(self.data) - self.pos:
            msg = (
                f"length {count} exceeds remaining buffer "
                f"({len(self.data) - self.pos} bytes) at offset {self.pos}"
            )
            raise ProtocolError(msg)
        chunk = self.data[self.pos : self.pos + count]
        self.pos += count
        return chunk

    def byte(self) -> int:
        return self._take(1)[0]

    def list_size(self, marker: int) -> int:
        if marker == LIST_EMPTY:
            return 0
        if marker == LIST_8:
            return self.byte()
        if marker == LIST_16:
            return int(struct.unpack(">H", self._take(2))[0])
        msg = f"expected list marker, got 0x{marker:02x}"
        raise ProtocolError(msg)

    def item(self, marker: int) -> bytes | str:
        """Read a token (as str) or a binary run (as bytes)."""
        if marker == BINARY_8:
            return self._take(self.byte())
        if marker == BINARY_32:
            return self._take(int(struct.unpack(">I", self._take(4))[0]))
        if 0 < marker < len(SINGLE_BYTE_TOKENS):
            token = SINGLE_BYTE_TOKENS[marker]
            if token is not None:
                return token
        msg = f"invalid token 0x{marker:02x}"
        raise ProtocolError(msg)

    def string(self) -> str:
        value = self.item(self.byte())
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError as err:
                msg = "string field is not valid UTF-8"
                raise ProtocolError(msg) from err
        return value

    def node(self, depth: int = 0) -> Node:
        if depth > MAX_DEPTH:
            msg = f"node tree nested deeper than {MAX_DEPTH}"
            raise ProtocolError(msg)
        size = self.list_size(self.byte())
        if size == 0:
            msg = "empty node"
            raise ProtocolError(msg)
        description = self.string()
        attrs: dict[str, str] = {}
        for _ in range((size - 1) // 2):
            key = self.string()
            attrs[key] = self.string()
        content: NodeContent = None
        if size % 2 == 0:
            marker = self.byte()
            if marker in (LIST_EMPTY, LIST_8, LIST_16):
                content = [
                    self.node(depth + 1) for _ in range(self.list_size(marker))
                ]
            else:
                content = self.item(marker)
        return Node(description, attrs, content)


def encode_node(node: Node) -> bytes:
    """Serialize a node tree."""
    writer = _Writer()
    writer.node(node)
    return bytes(writer.buf)


def decode_node(data: bytes) -> Node:
    """
    Parse a node tree produced by :func:`encode_node`.

    Raises:
        ProtocolError: on truncated input, bad markers or trailing bytes
    """
    reader = _Reader(data)
    node = reader.node()
    if reader.pos != len(data):
        msg = f"{len(data) - reader.pos} trailing bytes after node"
        raise ProtocolError(msg)
    return node
