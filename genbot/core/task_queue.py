"""Bounded FIFO task queue shared by the ingress pump and the worker pool.

Provides:
- Non-blocking admission: a full queue refuses instead of waiting
- Blocking dequeue for workers via asyncio.Condition
- Shutdown signalling that releases every waiting worker
- Wait-time metrics
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Hashable, List, Optional

from .exceptions import OverloadedError
from .interfaces.queue import QueueMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Task:
    """A free-text generation request waiting for a worker."""

    session_key: Hashable
    message_id: int
    text: str
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class TaskQueue:
    """Fixed-capacity FIFO of ``Task`` values.

    Implements ITaskSubmitter for the pump and ITaskSource for workers.
    The lock is never held across an await other than ``Condition.wait``,
    so ``try_put`` returns immediately.
    """

    def __init__(self, capacity: int):
        """Initialize the queue.

        Args:
            capacity: Maximum number of pending tasks.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self._capacity = capacity
        self._items: Deque[Task] = deque()

        # Synchronization
        self._lock = asyncio.Lock()
        self._not_empty = asyncio.Condition(self._lock)
        self._closed = False

        # Metrics
        self._total_enqueued = 0
        self._total_dequeued = 0
        self._total_rejected = 0
        self._wait_times: List[float] = []  # Last N wait times in ms
        self._max_metrics_samples = 100

    @property
    def capacity(self) -> int:
        """Maximum number of pending tasks."""
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # ITaskSubmitter interface
    # =========================================================================

    async def try_put(self, task: Task) -> None:
        """Enqueue a task, refusing instead of waiting when full.

        Raises:
            OverloadedError: If the queue is at capacity or closed.
        """
        async with self._lock:
            if self._closed:
                self._total_rejected += 1
                raise OverloadedError("Task queue is closed")

            if len(self._items) >= self._capacity:
                self._total_rejected += 1
                raise OverloadedError(
                    f"Task queue is full ({len(self._items)}/{self._capacity})"
                )

            self._items.append(task)
            self._total_enqueued += 1

            logger.debug(
                f"Queued task from session {task.session_key} "
                f"(depth={len(self._items)})"
            )

            self._not_empty.notify()

    def size(self) -> int:
        """Number of pending tasks."""
        return len(self._items)

    def is_overloaded(self, threshold: Optional[int] = None) -> bool:
        """Whether pending tasks reached ``threshold`` (default: capacity)."""
        if threshold is None:
            threshold = self._capacity
        return len(self._items) >= threshold

    # =========================================================================
    # ITaskSource interface
    # =========================================================================

    async def get(self) -> Optional[Task]:
        """Get the oldest pending task.

        Blocks while the queue is empty.

        Returns:
            The next task, or None if the queue was closed.
        """
        async with self._not_empty:
            while True:
                if self._closed:
                    return None

                if self._items:
                    task = self._items.popleft()
                    self._total_dequeued += 1

                    wait_ms = (
                        datetime.now(timezone.utc) - task.queued_at
                    ).total_seconds() * 1000
                    self._wait_times.append(wait_ms)
                    if len(self._wait_times) > self._max_metrics_samples:
                        self._wait_times.pop(0)

                    return task

                await self._not_empty.wait()

    async def close(self) -> int:
        """Refuse new tasks and release every waiting worker.

        Returns:
            Number of pending tasks dropped.
        """
        async with self._lock:
            self._closed = True
            dropped = len(self._items)
            self._items.clear()
            self._not_empty.notify_all()

        logger.info(f"Task queue closed ({dropped} pending tasks dropped)")
        return dropped

    # =========================================================================
    # Monitoring
    # =========================================================================

    def get_metrics(self) -> QueueMetrics:
        """Get current queue metrics."""
        return QueueMetrics(
            queue_depth=len(self._items),
            capacity=self._capacity,
            total_enqueued=self._total_enqueued,
            total_dequeued=self._total_dequeued,
            total_rejected=self._total_rejected,
            avg_wait_time_ms=self._avg(self._wait_times),
        )

    def _avg(self, values: List[float]) -> float:
        if not values:
            return 0.0
        return sum(values) / len(values)
