from __future__ import annotations


class EchoError(Exception):
    """Base class for errors raised by the echo client and server."""
    pass


class ConfigError(EchoError):
    """Raised when a configuration value is missing or malformed."""
    pass


class ConnectTimeoutError(EchoError):
    """Raised when the opening handshake does not finish in time."""

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(f"Connection timeout after {timeout}s ({url})")
        self.url = url
        self.timeout = timeout


class ReconnectExhaustedError(EchoError):
    """Raised when the client used up every reconnect attempt."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Max reconnection attempts reached ({attempts})")
        self.attempts = attempts
