from __future__ import annotations

import asyncio
import signal
from enum import Enum
from typing import Awaitable, Callable, Optional, Set

from shared.log import get_logger

logger = get_logger(__name__)

ShutdownCallback = Callable[[], Awaitable[None]]

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(str, Enum):
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Lifecycle:
    """
    Process lifecycle shared by the client and the server.

    Running -> ShuttingDown -> Terminated. The ShuttingDown transition is a
    one-way gate: begin_shutdown() returns True only for the first caller, so a
    second Ctrl+C (or a SIGTERM after a SIGINT) does not start a second
    shutdown sequence. Long-running operations get this object passed in and
    check is_shutting_down at their suspension points.
    """

    def __init__(self) -> None:
        self.state = LifecycleState.RUNNING
        self._terminated = asyncio.Event()
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self.state is LifecycleState.RUNNING

    @property
    def is_shutting_down(self) -> bool:
        return self.state is not LifecycleState.RUNNING

    @property
    def is_terminated(self) -> bool:
        return self.state is LifecycleState.TERMINATED

    def begin_shutdown(self) -> bool:
        if self.state is not LifecycleState.RUNNING:
            logger.debug("Shutdown already in progress (state=%s)", self.state.value)
            return False
        self.state = LifecycleState.SHUTTING_DOWN
        return True

    def mark_terminated(self) -> None:
        self.state = LifecycleState.TERMINATED
        self._terminated.set()

    async def wait_terminated(self) -> None:
        await self._terminated.wait()

    async def wait_or_terminated(self, task: asyncio.Future) -> bool:
        """
        Wait for `task` unless the lifecycle terminates first.

        Returns True when the task finished (its result or exception is left on
        the task for the caller). Returns False when termination won; the task
        is then cancelled and awaited.
        """
        stopper = asyncio.ensure_future(self._terminated.wait())
        try:
            done, _ = await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stopper.cancel()

        if task in done:
            return True
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return False

    def _track_background_task(self, task: asyncio.Task) -> None:
        """Keep a strong reference to background tasks until completion."""
        self._background_tasks.add(task)

        def _discard(_task: asyncio.Task) -> None:
            self._background_tasks.discard(_task)
            if not _task.cancelled() and _task.exception() is not None:
                logger.error("Shutdown task failed: %s", _task.exception())

        task.add_done_callback(_discard)

    def _on_signal(self, callback: ShutdownCallback, signame: str) -> None:
        logger.info("Received %s", signame)
        self._track_background_task(asyncio.ensure_future(callback()))

    def install_signal_handlers(
        self,
        callback: ShutdownCallback,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """Run `callback` on SIGINT/SIGTERM. The callback itself must be idempotent."""
        loop = loop or asyncio.get_running_loop()
        for sig in _SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, callback, sig.name)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(
                    sig,
                    lambda _signum, _frame, name=sig.name: loop.call_soon_threadsafe(
                        self._on_signal, callback, name
                    ),
                )
