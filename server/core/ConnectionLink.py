from __future__ import annotations

import itertools
import time
from typing import Optional, Union

import websockets

from shared.log import get_logger

logger = get_logger(__name__)

Payload = Union[str, bytes]

_ids = itertools.count(1)


def _format_address(address: object) -> str:
    # remote_address is (host, port) for IPv4 and (host, port, flow, scope) for IPv6
    if isinstance(address, tuple) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return str(address) if address else "unknown"


class ConnectionLink:
    """Wrapper around an accepted WebSocket connection with connection metadata"""

    def __init__(self, websocket: websockets.ServerConnection):
        self.websocket = websocket
        self.connection_id = f"c{next(_ids)}"
        self.peer = _format_address(getattr(websocket, "remote_address", None))
        self.opened_at: float = time.monotonic()
        self.last_seen: float = self.opened_at
        self.messages_echoed = 0

    @property
    def log_context(self) -> dict:
        return {"peer": self.peer, "connection_id": self.connection_id}

    def describe(self) -> dict:
        """Per-connection summary for EchoServer.get_status()."""
        now = time.monotonic()
        return {
            "id": self.connection_id,
            "peer": self.peer,
            "connected_for": round(now - self.opened_at, 3),
            "idle_for": round(now - self.last_seen, 3),
            "messages_echoed": self.messages_echoed,
        }

    async def echo(self, payload: Payload) -> None:
        """Send `payload` back unchanged. Text stays text, bytes stay bytes."""
        self.last_seen = time.monotonic()
        await self.websocket.send(payload)
        self.messages_echoed += 1

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        """Close the WebSocket connection"""
        try:
            await self.websocket.close(code=code, reason=reason or "")
        except Exception as e:
            logger.error(f"Error closing connection: {e}", extra=self.log_context)

    def __repr__(self) -> str:
        return f"ConnectionLink({self.connection_id}, {self.peer})"
