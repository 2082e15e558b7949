"""
Outbox - retry queue for mirrored gateway writes.

Local state is updated first and the matching gateway write is queued here.
drain() attempts every pending write once; a failed write goes back to the end
of the queue until it has used up max_attempts, then it is dropped with an
error log and local state stays divergent until the next reload.

Writes sharing a key are coalesced: only the newest one is kept, so an old
absolute balance write can never land after a newer one.
"""

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from structlog import get_logger

from ledger.exceptions import GatewayError
from ledger.observability.metrics import metrics

logger = get_logger(__name__)

WriteAction = Callable[[], Awaitable[None]]


@dataclass
class PendingWrite:
    """A gateway write waiting to be applied."""

    operation: str
    action: WriteAction
    key: Hashable | None = None
    attempts: int = 0


class Outbox:
    """FIFO of pending gateway writes with bounded retries."""

    def __init__(self, max_attempts: int = 5, auto_flush: bool = True) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1: {max_attempts}")
        self._max_attempts = max_attempts
        self._auto_flush = auto_flush
        self._pending: deque[PendingWrite] = deque()
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[int]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_operations(self) -> list[str]:
        return [write.operation for write in self._pending]

    def has_pending(self, key: Hashable) -> bool:
        return any(write.key == key for write in self._pending)

    def enqueue(self, operation: str, action: WriteAction, key: Hashable | None = None) -> None:
        """
        Queue a write. A pending write with the same key is replaced.

        When auto flush is on and an event loop is running, a background
        drain is scheduled.
        """
        if key is not None:
            self._pending = deque(w for w in self._pending if w.key != key)
        self._pending.append(PendingWrite(operation=operation, action=action, key=key))
        metrics.outbox_pending.set(len(self._pending))
        logger.debug("outbox_write_queued", operation=operation, pending=len(self._pending))

        if self._auto_flush:
            self._schedule_drain()

    def _schedule_drain(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): writes wait for the next explicit drain
            return
        task = loop.create_task(self.drain())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """
        Hold off draining while a direct gateway write runs.

        A drain already in flight finishes first, so no queued absolute
        write can land between the direct write and the caller's check of
        what is still pending. Never drain inside this block.
        """
        async with self._lock:
            yield

    async def drain(self) -> int:
        """
        Attempt every currently pending write once.

        Returns:
            Number of writes applied successfully
        """
        async with self._lock:
            applied = 0
            for _ in range(len(self._pending)):
                if not self._pending:
                    break
                write = self._pending.popleft()
                write.attempts += 1
                try:
                    await write.action()
                except GatewayError as exc:
                    self._handle_failure(write, exc)
                    continue
                applied += 1
                metrics.record_outbox_write(write.operation, "applied", len(self._pending))

            return applied

    def _handle_failure(self, write: PendingWrite, exc: GatewayError) -> None:
        superseded = write.key is not None and any(w.key == write.key for w in self._pending)
        if superseded:
            logger.info("outbox_write_superseded", operation=write.operation)
            metrics.record_outbox_write(write.operation, "superseded", len(self._pending))
            return

        if write.attempts >= self._max_attempts:
            logger.error(
                "outbox_write_dropped",
                operation=write.operation,
                attempts=write.attempts,
                error=exc.message,
            )
            metrics.record_outbox_write(write.operation, "dropped", len(self._pending))
            return

        self._pending.append(write)
        logger.warning(
            "outbox_write_failed",
            operation=write.operation,
            attempts=write.attempts,
            error=exc.message,
        )
        metrics.record_outbox_write(write.operation, "retry", len(self._pending))

    async def wait_idle(self) -> None:
        """Wait for scheduled background drains to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
