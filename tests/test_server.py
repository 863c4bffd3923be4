import base64
from typing import Any

import pytest
from fastapi.testclient import TestClient
from starlette.testclient import WebSocketTestSession
from starlette.websockets import WebSocketDisconnect

from wacore.client.infrastructure.keygen import KeyGenerator
from wacore.common.binary import Node
from wacore.common.config import Config
from wacore.common.crypto import CryptoUtils
from wacore.common.framing import Frame, FrameCodec, TaggedPayload
from wacore.server.core import MockServer

REGISTERED = "40712345678"


@pytest.fixture
def server() -> MockServer:
    """Create a service that knows one registered phone."""
    return MockServer(config=Config(), registered_phones=[REGISTERED])


@pytest.fixture
def client(server: MockServer) -> Any:
    """Run the app inside a TestClient so websockets and HTTP share a loop."""
    with TestClient(server.app) as test_client:
        yield test_client


codec = FrameCodec()


def send(ws: WebSocketTestSession, document: dict[str, Any]) -> None:
    ws.send_bytes(codec.encode_structured(document))


def receive(ws: WebSocketTestSession) -> Any:
    frame = FrameCodec().decode(ws.receive_bytes())
    assert isinstance(frame, Frame)
    return frame.payload


def init(token: str = "C1", **extra: Any) -> dict[str, Any]:
    return {"clientToken": token, "connectType": "WIFI_UNKNOWN", **extra}


def test_health(client: TestClient) -> None:
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200  # noqa: PLR2004
    body = response.json()
    assert body["status"] == "ok"
    assert body["peers"] == 0
    assert "timestamp" in body


def test_init_gets_connected_and_qr(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        send(ws, init())
        assert receive(ws) == {"status": "connected"}
        qr = receive(ws)
        assert qr["type"] == "qr"
        assert qr["ref"]

        assert client.get("/health").json()["peers"] == 1

        send(ws, {"type": "reref"})
        second = receive(ws)
        assert second["type"] == "qr"
        assert second["ref"] != qr["ref"]


def test_malformed_frame_is_skipped(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        ws.send_bytes(b"nonsense")
        send(ws, init())
        assert receive(ws) == {"status": "connected"}


def test_pairing_for_registered_phone(client: TestClient) -> None:
    public_key = KeyGenerator.encode_public(KeyGenerator().generate())
    with client.websocket_connect("/ws") as ws:
        send(ws, init())
        receive(ws)
        receive(ws)
        send(
            ws,
            {
                "type": "request_pair",
                "ref": "ABCDEF0123456789",
                "publicKey": public_key,
                "phone": f"{REGISTERED}@s.whatsapp.net",
            },
        )
        reply = receive(ws)
        assert reply["type"] == "pair_success"
        assert len(reply["code"]) == 8  # noqa: PLR2004


def test_pairing_errors(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        send(ws, init())
        receive(ws)
        receive(ws)

        send(
            ws,
            {
                "type": "request_pair",
                "ref": "R",
                "publicKey": "AAAA",
                "phone": "40799999999@s.whatsapp.net",
            },
        )
        assert receive(ws) == {"type": "pair_error", "reason": "missing"}

        send(ws, {"type": "request_pair", "phone": REGISTERED})
        assert receive(ws) == {"type": "pair_error", "reason": "bad-request"}


def test_link_by_qr_payload_pushes_success(client: TestClient) -> None:
    """The linked client receives a secret it can unpack with its private key."""
    key_pair = KeyGenerator().generate()
    public_key = KeyGenerator.encode_public(key_pair)
    with client.websocket_connect("/ws") as ws:
        send(ws, init("C1"))
        receive(ws)
        ref = receive(ws)["ref"]

        response = client.post(
            "/link",
            json={"payload": f"{ref},{key_pair.client_id},{public_key}", "phone": "+40 712", "name": "Ana"},
        )
        assert response.status_code == 200  # noqa: PLR2004
        assert response.json() == {"status": "linked", "wid": "40712@c.us"}

        success = receive(ws)
        assert success["type"] == "success"
        assert success["clientToken"] == "C1"
        assert success["wid"] == "40712@c.us"
        assert success["pushname"] == "Ana"
        assert success["session"]
        enc_key, mac_key = CryptoUtils.unpack_secret(
            base64.b64decode(success["secret"]), key_pair.private_key
        )
        assert len(enc_key) == 32  # noqa: PLR2004
        assert len(mac_key) == 32  # noqa: PLR2004

        # The reference is single use
        again = client.post(
            "/link",
            json={"payload": f"{ref},{key_pair.client_id},{public_key}", "phone": "1"},
        )
        assert again.status_code == 404  # noqa: PLR2004


def test_link_by_pairing_code(client: TestClient) -> None:
    key_pair = KeyGenerator().generate()
    with client.websocket_connect("/ws") as ws:
        send(ws, init())
        receive(ws)
        receive(ws)
        send(
            ws,
            {
                "type": "request_pair",
                "ref": "R",
                "publicKey": KeyGenerator.encode_public(key_pair),
                "phone": REGISTERED,
            },
        )
        code = receive(ws)["code"]

        response = client.post(
            "/link", json={"code": f"{code[:4]}-{code[4:].lower()}", "phone": REGISTERED}
        )
        assert response.status_code == 200  # noqa: PLR2004
        success = receive(ws)
        assert success["wid"] == f"{REGISTERED}@c.us"
        assert CryptoUtils.unpack_secret(
            base64.b64decode(success["secret"]), key_pair.private_key
        )


def test_link_rejections(client: TestClient) -> None:
    assert client.post("/link", json={"phone": "1"}).status_code == 400  # noqa: PLR2004
    assert client.post("/link", json={"payload": "a,b", "phone": "1"}).status_code == 400  # noqa: PLR2004
    assert client.post("/link", json={"payload": "a,b,c", "phone": "1"}).status_code == 404  # noqa: PLR2004
    assert client.post("/link", json={"code": "ZZZZZZZZ", "phone": "1"}).status_code == 404  # noqa: PLR2004
    assert client.post("/link", json={"code": "X"}).status_code == 422  # noqa: PLR2004


def link_session(client: TestClient, ws: WebSocketTestSession) -> str:
    key_pair = KeyGenerator().generate()
    send(ws, init("C1"))
    receive(ws)
    ref = receive(ws)["ref"]
    payload = f"{ref},{key_pair.client_id},{KeyGenerator.encode_public(key_pair)}"
    client.post("/link", json={"payload": payload, "phone": REGISTERED})
    return receive(ws)["session"]


def test_tagged_requests_get_replies(client: TestClient) -> None:
    with client.websocket_connect("/ws") as ws:
        link_session(client, ws)

        lookup = Node("action", {"type": "get", "xmlns": "contact", "jid": f"{REGISTERED}@s.whatsapp.net"})
        ws.send_bytes(codec.encode_tagged("1.--0", lookup))
        reply = receive(ws)
        assert isinstance(reply, TaggedPayload)
        assert reply.tag == "1.--0"
        assert reply.node.attrs == {"status": "200"}

        unknown = Node("action", {"type": "get", "xmlns": "contact", "jid": "1@s.whatsapp.net"})
        ws.send_bytes(codec.encode_tagged("1.--1", unknown))
        assert receive(ws).node.attrs == {"status": "404"}


def test_resume_after_logout_is_refused(client: TestClient) -> None:
    """A known token resumes; after logout the same token times out."""
    with client.websocket_connect("/ws") as ws:
        token = link_session(client, ws)

    with client.websocket_connect("/ws") as ws:
        send(ws, init("C1", passive=True, session=token))
        assert receive(ws) == {"status": "connected"}

        logout = Node("action", {"type": "set", "xmlns": "status", "status": "logout"})
        ws.send_bytes(codec.encode_tagged("2.--0", logout))
        assert receive(ws).node.attrs == {"status": "200"}
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_bytes()
        assert exc_info.value.code == 1000  # noqa: PLR2004

    with client.websocket_connect("/ws") as ws:
        send(ws, init("C1", passive=True, session=token))
        assert receive(ws) == {"status": "timeout"}
        with pytest.raises(WebSocketDisconnect):
            ws.receive_bytes()
