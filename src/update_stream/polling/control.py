"""
Serialized control context for the poll loop.

All poll loop state changes run as callbacks on one asyncio event loop, so
they never interleave. The loop is either borrowed from an application that
already runs asyncio, or owned: started on a private daemon thread.
"""

import asyncio
import threading
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ControlLoop:
    """Event loop wrapper used as the engine's control context."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Initialize the control context.

        Args:
            loop: Existing event loop to borrow; ``start()`` creates one when
                omitted
        """
        self._loop = loop
        self._thread: threading.Thread | None = None

    @classmethod
    def for_running_loop(cls) -> "ControlLoop":
        """Borrow the event loop running in the current thread."""
        return cls(asyncio.get_running_loop())

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Control loop not started")
        return self._loop

    @property
    def owns_loop(self) -> bool:
        return self._thread is not None

    def start(self) -> "ControlLoop":
        """Run a private event loop on a daemon thread."""
        if self._loop is not None:
            return self

        loop = asyncio.new_event_loop()
        started = threading.Event()

        def run() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(started.set)
            loop.run_forever()

        self._loop = loop
        self._thread = threading.Thread(
            target=run, name="update-stream-control", daemon=True
        )
        self._thread.start()
        started.wait()
        logger.debug("Control loop started", thread=self._thread.name)
        return self

    def in_context(self) -> bool:
        """Check whether the caller runs on the control loop."""
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback`` on the control loop; safe from any thread."""
        self.loop.call_soon_threadsafe(callback, *args)

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        """Schedule ``callback`` after ``delay`` seconds; control context only."""
        return self.loop.call_later(delay, callback, *args)

    def run_coroutine(self, coro: Any, timeout: float | None = None) -> Any:
        """Run ``coro`` on the control loop from another thread and wait."""
        if self.in_context():
            raise RuntimeError("run_coroutine would block the control loop")
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def close(self) -> None:
        """Stop and close an owned loop; borrowed loops are left alone."""
        if self._thread is None or self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
        logger.debug("Control loop closed")
        self._thread = None
        self._loop = None
