"""
HTTP routes for the test-double service.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, HTTPException

from wacore.common.exceptions import LinkError
from wacore.common.models import LinkRequest

if TYPE_CHECKING:
    from wacore.server.domain.link_handler import LinkHandler
    from wacore.server.session_manager import SessionManager


class ServerRoutes:
    """Handles FastAPI routes for the test-double service."""

    def __init__(self, link_handler: LinkHandler, session_manager: SessionManager):
        self.link_handler = link_handler
        self.session_manager = session_manager

    def setup_routes(self, app: FastAPI) -> None:
        """Setup API routes on the FastAPI app."""
        app.get("/health")(self.health)
        app.post("/link")(self.link)

    async def health(self) -> dict[str, Any]:
        """Handle /health endpoint."""
        return {
            "status": "ok",
            "timestamp": int(time.time()),
            "peers": self.session_manager.get_active_peers_count(),
        }

    async def link(self, req: LinkRequest) -> dict[str, Any]:
        """Handle /link endpoint."""
        try:
            return await self.link_handler.handle_link(req)
        except LinkError as e:
            raise HTTPException(e.status_code, str(e)) from e
