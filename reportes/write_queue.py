"""FIFO serializer that keeps store mutations strictly one at a time."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WriteTimeoutError(RuntimeError):
    """Raised to the caller when its write did not finish in time."""


class WriteSerializer:
    """Run queued coroutines one after another in submission order.

    Each call to :meth:`enqueue` chains onto the completion of the previous
    task. A failing task is logged and its exception is re-raised to the
    caller that submitted it; later tasks still run. When a timeout is
    configured the caller stops waiting after ``timeout`` seconds, but the next
    task only starts once the slow write has really finished.
    """

    def __init__(self, timeout: Optional[float] = None, *, name: str = "writes") -> None:
        self._timeout = timeout
        self._name = name
        self._tail: Optional[asyncio.Future] = None
        self._pending = 0

    @property
    def pending(self) -> int:
        """Number of tasks queued or running."""
        return self._pending

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        previous = self._tail
        current: asyncio.Future = loop.create_future()
        self._tail = current
        self._pending += 1
        released = False

        def _release(_future: Optional[asyncio.Future] = None) -> None:
            self._pending -= 1
            if not current.done():
                current.set_result(None)

        try:
            if previous is not None and not previous.done():
                await asyncio.shield(previous)

            running = asyncio.ensure_future(task())
            released = True
            running.add_done_callback(_release)
            try:
                if self._timeout is None:
                    return await asyncio.shield(running)
                return await asyncio.wait_for(asyncio.shield(running), self._timeout)
            except asyncio.TimeoutError:
                logger.error(
                    "Queued %s task exceeded %.1fs; the queue stays blocked until it finishes",
                    self._name,
                    self._timeout,
                )
                running.add_done_callback(_log_late_outcome)
                raise WriteTimeoutError(
                    f"Write did not complete within {self._timeout:.0f} seconds"
                ) from None
            except asyncio.CancelledError:
                running.add_done_callback(_log_late_outcome)
                raise
            except Exception:
                logger.exception("Queued %s task failed", self._name)
                raise
        finally:
            if not released:
                # cancelled while waiting: hand the slot over once the predecessor is done
                if previous is not None and not previous.done():
                    previous.add_done_callback(_release)
                else:
                    _release()


def _log_late_outcome(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error("Abandoned write failed after its caller gave up: %s", error)
    else:
        logger.info("Abandoned write finished after its caller gave up")


__all__ = ["WriteSerializer", "WriteTimeoutError"]
