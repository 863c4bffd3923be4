import json
from pathlib import Path

import pytest

from wacore.client.infrastructure.session_store import SessionStore
from wacore.common.models import Identity, KeyMaterial, Session


@pytest.fixture
def session() -> Session:
    """Create a session record with full key material."""
    return Session(
        client_id="abc123",
        server_token="S1",
        client_token="C1",
        key_material=KeyMaterial(
            private_key=b"\x01" * 32,
            public_key=b"\x02" * 32,
            enc_key=b"\x03" * 32,
            mac_key=b"\x04" * 32,
        ),
        identity=Identity(id="123@c.us", name="Ana", phone="123"),
    )


def test_save_and_load(tmp_path: Path, session: Session) -> None:
    store = SessionStore(tmp_path / "nested" / "session.json")
    store.save(session)

    assert store.load() == session


def test_record_is_plain_json(tmp_path: Path, session: Session) -> None:
    store = SessionStore(tmp_path / "session.json")
    store.save(session)

    record = json.loads((tmp_path / "session.json").read_text())
    assert record["server_token"] == "S1"
    assert record["identity"] == {"id": "123@c.us", "name": "Ana", "phone": "123"}
    assert record["key_material"]["private_key"] == "AQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQE="


def test_record_without_derived_keys(tmp_path: Path, session: Session) -> None:
    bare = session.model_copy(
        update={"key_material": KeyMaterial(private_key=b"a" * 32, public_key=b"b" * 32)}
    )
    store = SessionStore(tmp_path / "session.json")
    store.save(bare)

    loaded = store.load()
    assert loaded is not None
    assert loaded.key_material.enc_key is None
    assert loaded.key_material.private_key == b"a" * 32


def test_missing_file_loads_nothing(tmp_path: Path) -> None:
    assert SessionStore(tmp_path / "absent.json").load() is None


def test_corrupt_file_loads_nothing(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert SessionStore(path).load() is None

    path.write_text(json.dumps({"client_id": "x"}))
    assert SessionStore(path).load() is None


def test_clear(tmp_path: Path, session: Session) -> None:
    store = SessionStore(tmp_path / "session.json")
    store.save(session)
    store.clear()
    assert not (tmp_path / "session.json").exists()
    store.clear()
