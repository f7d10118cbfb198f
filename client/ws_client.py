from __future__ import annotations
import asyncio
from collections import deque
from contextlib import suppress
from datetime import datetime
from typing import Deque, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from client.events import ClientEvent, ClientEventType
from client.state import ReconnectState
from shared.config import ClientConfig
from shared.errors import ConnectTimeoutError, ReconnectExhaustedError
from shared.lifecycle import Lifecycle
from shared.log import get_logger

logger = get_logger(__name__)

# Failures that count as "could not establish the connection"
CONNECT_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    ConnectTimeoutError,
    WebSocketException,
)

_HISTORY = 100


class EchoClient:
    """
    Client that keeps one connection to the echo server alive.

    Every successful connection sends the greeting once. Failed or lost
    connections are retried after a fixed delay, at most max_attempts times in
    a row; a successful connection resets the count. Socket activity is turned
    into ClientEvents by a reader task and handled by a single dispatch loop.
    """

    def __init__(self, config: Optional[ClientConfig] = None, lifecycle: Optional[Lifecycle] = None) -> None:
        self.config = config or ClientConfig()
        self.lifecycle = lifecycle or Lifecycle()
        self.reconnect = ReconnectState(
            max_attempts=self.config.max_attempts,
            delay=self.config.reconnect_delay,
        )
        self.websocket: Optional[websockets.ClientConnection] = None
        self.connections_made = 0
        self.sent: Deque[str] = deque(maxlen=_HISTORY)
        self.received: Deque[str] = deque(maxlen=_HISTORY)

    async def connect(self) -> None:
        """Open the connection, bounded by connect_timeout. Raises one of CONNECT_ERRORS on failure."""
        url = self.config.url
        logger.info(f"Connecting to {url}")
        try:
            self.websocket = await websockets.connect(url, open_timeout=self.config.connect_timeout)
        except (asyncio.TimeoutError, TimeoutError) as exc:
            raise ConnectTimeoutError(url, self.config.connect_timeout) from exc

        retries = self.reconnect.attempts
        if retries:
            logger.info(f"Successfully connected after {retries} {'retry' if retries == 1 else 'retries'}")
        self.reconnect.reset()
        self.connections_made += 1
        logger.info("Connected to WebSocket server")

    async def run(self) -> int:
        """Connect and stay connected until shutdown. Returns the process exit status."""
        try:
            while not self.lifecycle.is_shutting_down:
                connecting = asyncio.create_task(self.connect())
                if not await self.lifecycle.wait_or_terminated(connecting):
                    # Shutdown finished while the handshake was still in flight
                    await self._close_pending()
                    break
                try:
                    connecting.result()
                except CONNECT_ERRORS as e:
                    logger.error(f"Connection error: {e}")
                    if self.lifecycle.is_shutting_down:
                        break
                    await self._attempt_reconnect()
                    continue

                if self.lifecycle.is_shutting_down:
                    # Shutdown arrived while the handshake was in flight
                    await self._close_pending()
                    break

                await self._session()

                if self.lifecycle.is_shutting_down:
                    logger.info("Connection closed gracefully")
                    break
                logger.warning("Connection lost")
                await self._attempt_reconnect()
        except ReconnectExhaustedError as e:
            logger.critical(f"{e}. Exiting...")
            return 1

        await self.lifecycle.wait_terminated()
        return 0

    async def _close_pending(self) -> None:
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None

    async def _attempt_reconnect(self) -> None:
        """Wait the fixed delay before the next connect; raise once the cap is hit."""
        if self.reconnect.exhausted:
            raise ReconnectExhaustedError(self.reconnect.max_attempts)

        attempt = self.reconnect.next_attempt()
        logger.info(
            f"Attempting to reconnect ({attempt}/{self.reconnect.max_attempts}) in {self.reconnect.delay}s...",
            extra={"attempt": attempt},
        )
        await self.lifecycle.wait_or_terminated(asyncio.create_task(asyncio.sleep(self.reconnect.delay)))
        if self.lifecycle.is_shutting_down:
            logger.info("Shutdown requested, reconnect abandoned")

    async def _session(self) -> None:
        """Dispatch events for the current connection until it closes."""
        if self.websocket is None:
            raise RuntimeError("_session() called without an open connection")
        queue: asyncio.Queue[ClientEvent] = asyncio.Queue()
        queue.put_nowait(ClientEvent.connected())

        tasks = [asyncio.create_task(self._pump(self.websocket, queue))]
        if self.config.send_interval:
            tasks.append(asyncio.create_task(self._periodic_sender(queue, self.config.send_interval)))

        try:
            while True:
                event = await queue.get()
                if event.type is ClientEventType.CLOSED:
                    logger.debug(f"Connection closed (code={event.close_code}, reason={event.close_reason!r})")
                    break
                await self._dispatch(event)
        finally:
            for task in tasks:
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
            self.websocket = None

    async def _pump(self, websocket: websockets.ClientConnection, queue: asyncio.Queue[ClientEvent]) -> None:
        """Turn socket activity into events; always ends with a CLOSED event."""
        try:
            async for message in websocket:
                queue.put_nowait(ClientEvent.message(message))
        except ConnectionClosedError as e:
            queue.put_nowait(ClientEvent.errored(e))
        except OSError as e:
            queue.put_nowait(ClientEvent.errored(e))
        finally:
            queue.put_nowait(ClientEvent.closed(websocket.close_code, websocket.close_reason))

    async def _periodic_sender(self, queue: asyncio.Queue[ClientEvent], interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            queue.put_nowait(ClientEvent.send(f"{self.config.greeting} Time: {datetime.now().isoformat()}"))

    async def _dispatch(self, event: ClientEvent) -> None:
        if event.type is ClientEventType.CONNECTED:
            logger.info("Press Ctrl+C to shutdown gracefully")
            await self.send(self.config.greeting)
        elif event.type is ClientEventType.MESSAGE_RECEIVED:
            self.received.append(event.text)
            logger.info(f"Received: {event.text}")
        elif event.type is ClientEventType.SEND:
            await self.send(event.text)
        elif event.type is ClientEventType.ERRORED:
            logger.error(f"WebSocket error: {event.error}")

    async def send(self, text: str) -> None:
        if self.websocket is None:
            logger.warning(f"Not connected; dropping message: {text}")
            return
        try:
            await self.websocket.send(text)
        except ConnectionClosed as e:
            # The reader task reports the close itself
            logger.error(f"Error sending message: {e}")
            return
        self.sent.append(text)
        logger.info(f"Sent: {text}")

    async def shutdown(self) -> None:
        """Close the connection, give the close handshake a moment, then terminate."""
        if not self.lifecycle.begin_shutdown():
            return

        logger.info("Initiating graceful shutdown...")
        if self.websocket is not None:
            await self.websocket.close()
        await asyncio.sleep(self.config.close_grace)

        logger.info("Goodbye!")
        self.lifecycle.mark_terminated()


async def run_client(config: ClientConfig, lifecycle: Optional[Lifecycle] = None) -> int:
    """Run the resilient client with signal handling. Returns the process exit status."""
    client = EchoClient(config, lifecycle)
    client.lifecycle.install_signal_handlers(client.shutdown)
    return await client.run()
