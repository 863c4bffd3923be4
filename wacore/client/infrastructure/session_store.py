"""
Session record persistence.
"""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path  # noqa: TC003
from typing import Any

from pydantic import ValidationError

from wacore.common.models import Session

logger = logging.getLogger(__name__)

KEY_FIELDS = ("private_key", "public_key", "enc_key", "mac_key")


class SessionStore:
    """Loads and saves the session record as a JSON file."""

    def __init__(self, file_path: Path):
        self.file_path = file_path

    @staticmethod
    def dump_record(session: Session) -> dict[str, Any]:
        """Serialize a Session to a JSON-compatible record."""
        data = session.model_dump()
        keys = data["key_material"]
        for key in KEY_FIELDS:
            if keys.get(key) is not None:
                keys[key] = base64.b64encode(keys[key]).decode("utf-8")
        return data

    @staticmethod
    def load_record(data: dict[str, Any]) -> Session:
        """Rebuild a Session from :meth:`dump_record` output."""
        data = json.loads(json.dumps(data))
        keys = data.get("key_material") or {}
        for key in KEY_FIELDS:
            if keys.get(key) is not None:
                keys[key] = base64.b64decode(keys[key])
        return Session.model_validate(data)

    def load(self) -> Session | None:
        """Load the session from file; a missing or corrupt file yields None."""
        try:
            with self.file_path.open() as f:
                return self.load_record(json.load(f))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.file_path, e)
            return None

    def save(self, session: Session) -> None:
        """Save the session to file."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with self.file_path.open("w") as f:
            json.dump(self.dump_record(session), f, indent=2)
        logger.info("Session saved to %s", self.file_path)

    def clear(self) -> None:
        self.file_path.unlink(missing_ok=True)
