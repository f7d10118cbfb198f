#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from shared.config import DEFAULT_GREETING, load_client_config
from shared.errors import ConfigError
from shared.log import configure_root_logging, get_logger
from .client import send_once
from .ws_client import CONNECT_ERRORS, run_client

app = typer.Typer(help="WebSocket echo client")
console = Console()
logger = get_logger(__name__)


@app.command()
def run(
    url: Optional[str] = typer.Option(None, help="WebSocket URL of the echo server (default ws://127.0.0.1:8080)"),
    greeting: Optional[str] = typer.Option(None, help="Message sent once per connection"),
    interval: Optional[float] = typer.Option(None, help="Also send a timestamped message every N seconds"),
    max_attempts: Optional[int] = typer.Option(None, help="Consecutive reconnect attempts before giving up"),
    reconnect_delay: Optional[float] = typer.Option(None, help="Seconds to wait between reconnect attempts"),
    config: Optional[Path] = typer.Option(None, help="YAML config file with a 'client:' section"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
):
    """Connect with automatic reconnect until Ctrl+C."""
    configure_root_logging(log_level)
    try:
        client_config = load_client_config(
            config,
            url=url,
            greeting=greeting,
            send_interval=interval,
            max_attempts=max_attempts,
            reconnect_delay=reconnect_delay,
        )
    except ConfigError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]Echo client starting[/], target server: {client_config.url}")
    raise typer.Exit(asyncio.run(run_client(client_config)))


@app.command()
def once(
    url: Optional[str] = typer.Option(None, help="WebSocket URL of the echo server (default ws://127.0.0.1:8080)"),
    message: str = typer.Option(DEFAULT_GREETING, help="Message to send"),
    timeout: float = typer.Option(5.0, help="Seconds to wait for the connection and for the reply"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
):
    """Send one message, print the reply and exit."""
    configure_root_logging(log_level)
    try:
        client_config = load_client_config(url=url, connect_timeout=timeout)
    except ConfigError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(1)

    try:
        reply = asyncio.run(send_once(client_config.url, message, timeout=timeout, reply_timeout=timeout))
    except CONNECT_ERRORS as e:
        logger.error(f"Failed to start client: {e}")
        raise typer.Exit(1)

    if reply is None:
        raise typer.Exit(1)
    console.print(f"[bold cyan]Reply[/]: {reply}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
