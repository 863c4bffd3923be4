"""Infrastructure layer: Resolving client options against configured defaults.
"""

from __future__ import annotations

import logging

from wacore.common.config import Config
from wacore.common.logging_utils import setup_logger
from wacore.common.models import AuthMethod, ClientConfig

MS = 1000.0


class ConfigLoader:
    """Merges explicit client options over the Config defaults."""

    def __init__(self, client_config: ClientConfig, config: Config | None = None):
        self.config: Config = config or Config()
        c = client_config

        self.ws_url: str = c.ws_url or self.config.WS_URL
        self.user_agent: str = c.user_agent or self.config.USER_AGENT
        self.phone: str | None = c.phone

        self.max_reconnects: int = self._pick(c.max_reconnects, self.config.MAX_RECONNECTS)
        self.reconnect_delay: float = (
            self._pick(c.reconnect_delay_ms, self.config.RECONNECT_DELAY_MS) / MS
        )
        self.auto_reconnect: bool = self._pick(
            c.auto_reconnect, self.config.AUTO_RECONNECT
        )
        self.qr_max_retries: int = self._pick(c.qr_max_retries, self.config.QR_MAX_RETRIES)
        self.qr_timeout: float = self._pick(c.qr_timeout_ms, self.config.QR_TIMEOUT_MS) / MS
        self.auth_method: AuthMethod = c.auth_method or AuthMethod(self.config.AUTH_METHOD)
        self.request_timeout: float = (
            self._pick(c.request_timeout_ms, self.config.REQUEST_TIMEOUT_MS) / MS
        )
        self.ready_delay: float = self._pick(c.ready_delay_ms, self.config.READY_DELAY_MS) / MS
        self.logout_timeout: float = (
            self._pick(c.logout_timeout_ms, self.config.LOGOUT_TIMEOUT_MS) / MS
        )
        self.log_level: int | str = self._pick(c.log_level, self.config.LOG_LEVEL)

        # Setup logging
        self.logger = logging.getLogger("wacore")
        setup_logger(self.logger, self.log_level)

    @staticmethod
    def _pick(value, default):  # type: ignore[no-untyped-def]
        return default if value is None else value

    def headers(self) -> dict[str, str]:
        return {"User-Agent": self.user_agent}
