"""
Entry point for the test-double service.
"""

import uvicorn

from wacore.common.config import Config

from .core import MockServer


def start_server(
    config: Config | None = None,
    registered_phones: list[str] | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Start the test-double service."""
    if config is None:
        config = Config()
    server = MockServer(
        config=config,
        registered_phones=registered_phones,
        server_host=host,
        server_port=port,
    )
    uvicorn.run(server.app, host=server.server_host, port=server.server_port)
