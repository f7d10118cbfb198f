from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ReconnectState:
    """Linear, capped reconnect bookkeeping for one client."""
    max_attempts: int = 3
    delay: float = 2.0
    attempts: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_attempt(self) -> int:
        self.attempts += 1
        return self.attempts

    def reset(self) -> None:
        self.attempts = 0
