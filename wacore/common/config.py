"""
Configuration settings for the session/transport layer.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


class Config:
    """Central configuration class for all system settings."""

    def __init__(self) -> None:
        # Service endpoint
        self.WS_URL: str = os.getenv("WACORE_WS_URL", "wss://web.whatsapp.com/ws")
        self.ORIGIN: str = "https://web.whatsapp.com"
        self.USER_AGENT: str = (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        )
        self.WA_VERSION: tuple[int, int, int] = (2, 2348, 50)
        self.OS_VERSION: tuple[int, int, int] = (10, 0, 0)

        # Reconnection
        self.MAX_RECONNECTS: int = 5
        self.RECONNECT_DELAY_MS: int = 3000
        self.AUTO_RECONNECT: bool = True
        self.RECONNECT_BACKOFF: float = 1.5

        # Handshake
        self.AUTH_METHOD: str = "visual-code"
        self.QR_MAX_RETRIES: int = 3
        self.QR_TIMEOUT_MS: int = 60_000
        self.READY_DELAY_MS: int = 1000  # Settle delay between AUTHENTICATED and READY

        # Tagged requests
        self.REQUEST_TIMEOUT_MS: int = 60_000
        self.LOGOUT_TIMEOUT_MS: int = 5000
        self.OPEN_TIMEOUT_S: float = 20.0

        # Normal websocket close code, never triggers a reconnect
        self.NORMAL_CLOSE_CODE: int = 1000

        # Session persistence
        self.BASE_DIR: Path = Path.cwd()
        self.SESSION_FILE_PATH: Path = Path(
            os.getenv("WACORE_SESSION_FILE", str(self.BASE_DIR / "wacore-session.json"))
        )

        # Test-double service
        self.SERVER_HOST: str = os.getenv("WACORE_SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT: int = int(os.getenv("WACORE_SERVER_PORT", "8765"))
        self.SERVER_URL: str = f"http://{self.SERVER_HOST}:{self.SERVER_PORT}"
        self.REGISTERED_PHONES: list[str] = [
            p for p in os.getenv("WACORE_REGISTERED_PHONES", "").split(",") if p
        ]

        # Logging
        self.LOG_LEVEL: int = logging.INFO
