"""
Command-line interface for wacore.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import click
import requests

from wacore.client.client import WAClient
from wacore.client.infrastructure.session_store import SessionStore
from wacore.common.config import Config
from wacore.common.events import (
    Authenticated,
    PairingCode,
    PairingCodeError,
    QrCode,
    QrMaxRetries,
    Ready,
    ReconnectFailed,
)
from wacore.common.exceptions import TransportError
from wacore.common.models import AuthMethod
from wacore.server import start_server


@click.group()
def cli() -> None:
    """wacore session/transport CLI"""


async def _connect(client: WAClient, timeout: float) -> str | None:
    """Run the handshake; returns an error message or None once ready."""
    loop = asyncio.get_running_loop()
    done: asyncio.Future[str | None] = loop.create_future()

    def finish(error: str | None) -> None:
        if not done.done():
            done.set_result(error)

    @client.events.on(QrCode)
    def show_qr(event: QrCode) -> None:
        click.echo(f"Scan this QR payload (expires in {event.expires_in_seconds:.0f}s):")
        click.echo(event.payload)

    @client.events.on(PairingCode)
    def show_code(event: PairingCode) -> None:
        click.echo(f"Pairing code: {event.code}")

    @client.events.on(Authenticated)
    def authenticated(event: Authenticated) -> None:
        click.echo(f"Authenticated as {event.user.id}")

    client.events.subscribe(lambda event: finish(None), Ready)
    client.events.subscribe(
        lambda event: finish(f"pairing code request failed: {event.reason}"),
        PairingCodeError,
    )
    client.events.subscribe(
        lambda event: finish(f"QR code expired {event.retries} times"), QrMaxRetries
    )
    client.events.subscribe(
        lambda event: finish(f"gave up after {event.attempts} reconnect attempts"),
        ReconnectFailed,
    )

    try:
        await client.connect()
        return await asyncio.wait_for(done, timeout)
    except TransportError as e:
        return str(e)
    except asyncio.TimeoutError:
        return f"not ready after {timeout:.0f}s"
    finally:
        await client.disconnect(logout=False)


@cli.command()
@click.option(
    "--auth",
    "auth_method",
    type=click.Choice([m.value for m in AuthMethod]),
    default=AuthMethod.VISUAL_CODE.value,
    help="Handshake to use (default: visual-code)",
)
@click.option("--phone", default=None, help="Phone number for short-code pairing")
@click.option(
    "--session-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Session record to resume and save (default: from WACORE_SESSION_FILE env)",
)
@click.option(
    "--ws-url",
    default=None,
    help="Websocket endpoint (default: from WACORE_WS_URL env)",
)
@click.option(
    "--timeout",
    default=300.0,
    type=float,
    help="Seconds to wait for the session to become ready",
)
def connect(
    auth_method: str,
    phone: str | None,
    session_file: Path | None,
    ws_url: str | None,
    timeout: float,
) -> None:
    """Connect, authenticate and save the session"""
    if auth_method == AuthMethod.SHORT_CODE.value and not phone:
        msg = "--phone is required with --auth short-code"
        raise click.UsageError(msg)

    config = Config()
    store = SessionStore(session_file or config.SESSION_FILE_PATH)
    client = WAClient(
        {"authMethod": auth_method, "phone": phone, "wsUrl": ws_url},
        config=config,
        session_store=store,
    )
    error = asyncio.run(_connect(client, timeout))
    if error:
        raise click.ClickException(error)
    click.echo(f"Ready. Session saved to {store.file_path}")


@cli.command()
@click.option(
    "--host",
    default=None,
    help="Host to bind server to (default: from WACORE_SERVER_HOST env or 127.0.0.1)",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Port to bind server to (default: from WACORE_SERVER_PORT env or 8765)",
)
@click.option(
    "--registered-phone",
    "registered_phones",
    multiple=True,
    help="Phone number that may request pairing codes (repeatable)",
)
def serve(host: str | None, port: int | None, registered_phones: tuple[str, ...]) -> None:
    """Start the test-double websocket service"""
    # Set environment variables before building the config
    if host:
        os.environ["WACORE_SERVER_HOST"] = host
    if port:
        os.environ["WACORE_SERVER_PORT"] = str(port)

    config = Config()
    phones = list(registered_phones) or config.REGISTERED_PHONES
    start_server(config, registered_phones=phones)


@cli.command()
@click.argument("payload", required=False)
@click.option("--code", default=None, help="Pairing code instead of a QR payload")
@click.option("--phone", required=True, help="Phone number of the linking account")
@click.option("--name", default=None, help="Display name of the linking account")
@click.option(
    "--server",
    default=None,
    help="Test-double service URL (default: from WACORE_SERVER_HOST/PORT env)",
)
def link(
    payload: str | None,
    code: str | None,
    phone: str,
    name: str | None,
    server: str | None,
) -> None:
    """Complete a waiting client's handshake on the test-double service"""
    if not payload and not code:
        msg = "give a QR PAYLOAD or --code"
        raise click.UsageError(msg)

    server_url = server or Config().SERVER_URL
    body = {"payload": payload, "code": code, "phone": phone, "name": name}
    try:
        r = requests.post(f"{server_url}/link", json=body, timeout=10)
    except requests.RequestException as e:
        msg = f"could not reach {server_url}: {e}"
        raise click.ClickException(msg) from e
    if not r.ok:
        msg = f"link failed ({r.status_code}): {r.text}"
        raise click.ClickException(msg)
    click.echo(f"Linked {r.json()['wid']}")


@cli.group()
def session() -> None:
    """Inspect stored session records"""


@session.command("show")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def session_show(file: Path) -> None:
    """Print the identity of a stored session"""
    record = SessionStore(file).load()
    if record is None:
        msg = f"{file} does not hold a valid session record"
        raise click.ClickException(msg)
    click.echo(
        json.dumps(
            {
                "client_id": record.client_id,
                "identity": record.identity.model_dump(),
                "has_keys": record.key_material.enc_key is not None,
            },
            indent=2,
        )
    )


if __name__ == "__main__":
    cli()
