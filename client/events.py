from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ClientEventType(str, Enum):
    """Events consumed by the client's dispatch loop, in arrival order."""

    CONNECTED = "CONNECTED"                # opening handshake finished
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"  # inbound frame
    SEND = "SEND"                          # outbound message requested (periodic sender)
    ERRORED = "ERRORED"                    # transport error, a CLOSED event follows
    CLOSED = "CLOSED"                      # connection is gone, ends the session


@dataclass(frozen=True)
class ClientEvent:
    type: ClientEventType
    payload: Optional[Union[str, bytes]] = None
    error: Optional[BaseException] = None
    close_code: Optional[int] = None
    close_reason: Optional[str] = None

    @property
    def text(self) -> str:
        """Payload as text; binary frames are decoded leniently for display."""
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8", errors="replace")
        return self.payload or ""

    @classmethod
    def connected(cls) -> "ClientEvent":
        return cls(ClientEventType.CONNECTED)

    @classmethod
    def message(cls, payload: Union[str, bytes]) -> "ClientEvent":
        return cls(ClientEventType.MESSAGE_RECEIVED, payload=payload)

    @classmethod
    def send(cls, text: str) -> "ClientEvent":
        return cls(ClientEventType.SEND, payload=text)

    @classmethod
    def errored(cls, error: BaseException) -> "ClientEvent":
        return cls(ClientEventType.ERRORED, error=error)

    @classmethod
    def closed(cls, code: Optional[int] = None, reason: Optional[str] = None) -> "ClientEvent":
        return cls(ClientEventType.CLOSED, close_code=code, close_reason=reason)
