"""Bounded-concurrency queue for outbound vendor requests.

Every catalog fetch and every operator connection test goes through the same
process-wide queue so that concurrent syncs cannot exhaust the shared egress
path. At most max_concurrent tasks run at once; the rest wait in FIFO order.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from catalog_sync import metrics
from catalog_sync.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueClearedError(RuntimeError):
    """Waiting task was rejected by clear()."""


@dataclass
class QueueStatus:
    queue_length: int
    running: int
    max_concurrent: int

    def to_dict(self) -> dict:
        return asdict(self)


class RequestQueue:
    """FIFO gate that runs at most max_concurrent tasks at a time.

    A finishing task hands its slot directly to the oldest waiter, so a newly
    arriving task can never overtake one that is already waiting.
    """

    def __init__(self, max_concurrent: Optional[int] = None, name: str = "vendor"):
        limit = max_concurrent if max_concurrent is not None else settings.vendor_request_concurrency
        if limit < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {limit}")
        self.max_concurrent = limit
        self.name = name
        self._running = 0
        self._waiters: deque[asyncio.Future] = deque()

    async def enqueue(self, task: Callable[[], Awaitable[T]]) -> T:
        """
        Run a task once a slot is free.

        Args:
            task: Zero-argument coroutine function

        Returns:
            The task's result; its exception propagates unchanged

        Raises:
            QueueClearedError: The queue was cleared while the task waited
        """
        queued_at = time.monotonic()
        await self._acquire()
        metrics.record_queue_wait(time.monotonic() - queued_at)
        logger.debug(
            f"{self.name} queue: running ({self._running}/{self.max_concurrent} concurrent, "
            f"{len(self._waiters)} queued)"
        )
        try:
            return await task()
        finally:
            self._release()

    def status(self) -> QueueStatus:
        return QueueStatus(
            queue_length=len(self._waiters),
            running=self._running,
            max_concurrent=self.max_concurrent,
        )

    def clear(self) -> int:
        """Reject every waiting task. Running tasks are unaffected."""
        waiters = list(self._waiters)
        self._waiters.clear()
        rejected = 0
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(QueueClearedError(f"{self.name} queue cleared"))
                rejected += 1
        self._publish()
        logger.info(f"{self.name} queue: cleared {rejected} pending requests")
        return rejected

    async def _acquire(self) -> None:
        if self._running < self.max_concurrent and not self._waiters:
            self._running += 1
            self._publish()
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._publish()
        try:
            # The releasing task keeps _running unchanged and passes its slot here
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
                self._publish()
            elif waiter.done() and not waiter.cancelled() and waiter.exception() is None:
                self._release()
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                self._publish()
                return
        self._running -= 1
        self._publish()

    def _publish(self) -> None:
        metrics.update_request_queue(self._running, len(self._waiters))


# Process-wide queue for all outbound vendor calls
vendor_request_queue = RequestQueue(name="vendor")
