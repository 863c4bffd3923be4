import json

import pytest

from wacore.common.binary import Node
from wacore.common.exceptions import ProtocolError, ProtocolErrorReason
from wacore.common.framing import (
    MAGIC,
    Frame,
    FrameCodec,
    FrameKind,
    TaggedPayload,
)


def test_structured_frame_round_trip() -> None:
    codec = FrameCodec()
    data = codec.encode_structured({"status": "connected", "n": 3})

    assert data[:2] == MAGIC
    assert data[3] == FrameKind.STRUCTURED

    frame = codec.decode(data)
    assert isinstance(frame, Frame)
    assert (frame.kind, frame.payload) == (
        FrameKind.STRUCTURED,
        {"status": "connected", "n": 3},
    )


def test_tagged_frame_round_trip() -> None:
    codec = FrameCodec()
    node = Node("action", {"type": "set", "xmlns": "presence"}, [Node("item")])
    data = codec.encode_tagged("1700000000000.--0", node)

    frame = codec.decode(data)
    assert isinstance(frame, Frame)
    assert frame.kind is FrameKind.TAGGED
    assert frame.payload == TaggedPayload("1700000000000.--0", node)


def test_wrong_payload_type_for_kind() -> None:
    codec = FrameCodec()
    with pytest.raises(TypeError):
        codec.encode(FrameKind.STRUCTURED, TaggedPayload("t", Node("x")))
    with pytest.raises(TypeError):
        codec.encode(FrameKind.TAGGED, {"type": "qr"})


@pytest.mark.parametrize("tag", ["", "a,b", "x" * 65])
def test_invalid_tags_rejected(tag: str) -> None:
    with pytest.raises(ValueError, match="invalid tag"):
        FrameCodec().encode_tagged(tag, Node("action"))


def test_short_frame_is_malformed() -> None:
    result = FrameCodec().decode(b"WA\x06")
    assert isinstance(result, ProtocolError)
    assert result.reason is ProtocolErrorReason.MALFORMED


def test_bad_magic_is_malformed() -> None:
    result = FrameCodec().decode(b"XX\x06\x00\x00\x00{}")
    assert isinstance(result, ProtocolError)
    assert result.reason is ProtocolErrorReason.MALFORMED


def test_unknown_kind() -> None:
    result = FrameCodec().decode(b"WA\x06\x07\x00\x00{}")
    assert isinstance(result, ProtocolError)
    assert result.reason is ProtocolErrorReason.UNKNOWN_KIND


def test_structured_payload_must_be_a_document() -> None:
    codec = FrameCodec()
    assert isinstance(codec.decode(b"WA\x06\x00\x00\x00[1, 2]"), ProtocolError)
    assert isinstance(codec.decode(b"WA\x06\x00\x00\x00{not json"), ProtocolError)


def test_deeply_nested_document_is_malformed() -> None:
    codec = FrameCodec()
    error = codec.decode(b"WA\x06\x00\x00\x00" + b"[" * 200_000)
    assert isinstance(error, ProtocolError)
    assert error.reason is ProtocolErrorReason.MALFORMED


def test_tagged_payload_without_tag() -> None:
    result = FrameCodec().decode(b"WA\x06\x01\x00\x00no-separator-here")
    assert isinstance(result, ProtocolError)


def test_truncated_node_is_malformed() -> None:
    codec = FrameCodec()
    data = codec.encode_tagged("t1", Node("action", {"type": "set"}, b"x" * 40))
    result = codec.decode(data[:-5])
    assert isinstance(result, ProtocolError)


def test_descriptor_echoed_from_last_inbound_frame() -> None:
    codec = FrameCodec()
    inbound = b"WA\x09\x00\x02\x05" + json.dumps({"status": "connected"}).encode()

    frame = codec.decode(inbound)
    assert isinstance(frame, Frame)
    assert frame.descriptor == b"\x09\x00\x02\x05"

    outbound = codec.encode_structured({"type": "reref"})
    assert outbound[2:6] == b"\x09\x00\x02\x05"
    # The tagged descriptor is tracked separately
    assert codec.descriptor_for(FrameKind.TAGGED) == b"\x06\x01\x00\x00"


def test_malformed_frame_does_not_change_descriptor() -> None:
    codec = FrameCodec()
    before = codec.descriptor_for(FrameKind.STRUCTURED)
    codec.decode(b"WA\x09\x00\x02\x05{broken")
    assert codec.descriptor_for(FrameKind.STRUCTURED) == before
