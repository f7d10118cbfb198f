#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import typer
import websockets
from websockets.exceptions import ConnectionClosedError
from rich.console import Console

from server.core.ConnectionLink import ConnectionLink, Payload
from server.core.ConnectionSet import ConnectionSet
from shared.config import ServerConfig, load_server_config
from shared.errors import ConfigError
from shared.lifecycle import Lifecycle
from shared.log import configure_root_logging, get_logger

# Configure Logging
logger = get_logger(__name__)

# Close code sent to clients when the server goes away
GOING_AWAY = 1001

_PREVIEW_LEN = 80


def _preview(payload: Payload) -> str:
    if isinstance(payload, bytes):
        return f"<{len(payload)} bytes>"
    return payload if len(payload) <= _PREVIEW_LEN else payload[:_PREVIEW_LEN] + "..."


class EchoServer:
    """WebSocket server that sends every frame back to the connection it came from."""

    def __init__(self, config: Optional[ServerConfig] = None, lifecycle: Optional[Lifecycle] = None):
        self.config = config or ServerConfig()
        self.lifecycle = lifecycle or Lifecycle()
        self.connections = ConnectionSet()
        self._server: Optional[websockets.Server] = None
        self._previous_exception_handler: Optional[Callable[..., Any]] = None

    @property
    def active_count(self) -> int:
        return len(self.connections)

    @property
    def port(self) -> int:
        """Port the listener is bound to (differs from the config when it asked for port 0)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self.config.port

    @property
    def url(self) -> str:
        return f"ws://{self.config.host}:{self.port}"

    async def start(self) -> None:
        """Bind the listener. Raises OSError when the address cannot be bound."""
        self._server = await websockets.serve(
            self.handle_connection,
            self.config.host,
            self.config.port,
        )
        loop = asyncio.get_running_loop()
        self._previous_exception_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_listener_error)
        logger.info(f"Echo server listening on {self.url}")

    def _on_listener_error(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        # Listener faults are logged only; there is no restart policy
        exc = context.get("exception")
        logger.error(f"Server error: {context.get('message', 'unknown')}", exc_info=exc)

    async def handle_connection(self, websocket: websockets.ServerConnection) -> None:
        """Track the connection for its whole lifetime and echo every frame it sends."""
        link = ConnectionLink(websocket)
        if self.lifecycle.is_shutting_down:
            await link.close(GOING_AWAY, "Server shutting down")
            return

        count = self.connections.add(link)
        logger.info(f"New client connected. Active connections: {count}", extra=link.log_context)

        try:
            async for message in websocket:
                await self.handle_message(link, message)
        except ConnectionClosedError as e:
            logger.error(f"WebSocket error: {e}", extra=link.log_context)
        except Exception as e:
            logger.error(f"Error handling connection: {e}", extra=link.log_context)
        finally:
            count = self.connections.discard(link)
            logger.info(f"Client disconnected. Active connections: {count}", extra=link.log_context)

    async def handle_message(self, link: ConnectionLink, message: Payload) -> None:
        """Echo one frame. Errors are logged and the connection stays open."""
        try:
            logger.info(f"Received: {_preview(message)}", extra=link.log_context)
            await link.echo(message)
            logger.info(f"Echoed: {_preview(message)}", extra=link.log_context)
        except Exception as e:
            logger.error(f"Error processing message: {e}", extra=link.log_context)

    def get_status(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "state": self.lifecycle.state.value,
            "active_connections": self.active_count,
            "connections": [link.describe() for link in self.connections],
        }

    async def shutdown(self) -> None:
        """Close every connection, wait for the drain delay, then close the listener."""
        if not self.lifecycle.begin_shutdown():
            return

        links = self.connections.snapshot()
        logger.info(f"Initiating graceful shutdown... closing {len(links)} connection(s)")
        closing = [asyncio.create_task(link.close(GOING_AWAY, "Server shutting down")) for link in links]

        await asyncio.sleep(self.config.drain_delay)

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            asyncio.get_running_loop().set_exception_handler(self._previous_exception_handler)
        if closing:
            await asyncio.gather(*closing, return_exceptions=True)

        logger.info("Server shut down")
        self.lifecycle.mark_terminated()

    async def wait_closed(self) -> None:
        await self.lifecycle.wait_terminated()


async def run_server(config: ServerConfig, lifecycle: Optional[Lifecycle] = None) -> int:
    """Serve until a shutdown signal arrives. Returns the process exit status."""
    server = EchoServer(config, lifecycle)
    try:
        await server.start()
    except OSError as e:
        logger.critical(f"Failed to start server on {config.host}:{config.port}: {e}")
        return 1

    server.lifecycle.install_signal_handlers(server.shutdown)
    await server.wait_closed()
    return 0


# ========================================
#           COMMAND LINE
# ========================================

app = typer.Typer(help="WebSocket echo server")
console = Console()


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Interface to bind (default 127.0.0.1)"),
    port: Optional[int] = typer.Option(None, help="Port to listen on (default 8080)"),
    config: Optional[Path] = typer.Option(None, help="YAML config file with a 'server:' section"),
    log_level: Optional[str] = typer.Option(None, help="DEBUG, INFO, WARNING or ERROR"),
):
    """Run the echo server until Ctrl+C."""
    configure_root_logging(log_level)
    try:
        server_config = load_server_config(config, host=host, port=port)
    except ConfigError as e:
        console.print(f"[red]Configuration error[/]: {e}")
        raise typer.Exit(1)

    console.print(f"[bold green]Echo server starting[/] on {server_config.url}")
    console.print("Press [bold red]Ctrl+C[/] to shutdown gracefully")
    raise typer.Exit(asyncio.run(run_server(server_config)))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
