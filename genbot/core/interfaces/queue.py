"""Task queue interfaces.

- ITaskSubmitter: for the ingress pump (non-blocking admission)
- ITaskSource: for workers (blocking dequeue)
- QueueMetrics: for the health endpoint and the ``stats`` view
"""
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from ..task_queue import Task


@dataclass
class QueueMetrics:
    """Queue health and performance metrics."""

    queue_depth: int
    capacity: int
    total_enqueued: int
    total_dequeued: int
    total_rejected: int
    avg_wait_time_ms: float


class ITaskSubmitter(Protocol):
    """Admission side of the queue."""

    async def try_put(self, task: "Task") -> None:
        """Enqueue without waiting for space.

        Raises:
            OverloadedError: If the queue is at capacity or closed.
        """
        ...

    def size(self) -> int:
        """Number of pending tasks."""
        ...

    def is_overloaded(self, threshold: Optional[int] = None) -> bool:
        """Whether pending tasks reached ``threshold`` (default: capacity)."""
        ...


class ITaskSource(Protocol):
    """Consumer side of the queue."""

    async def get(self) -> Optional["Task"]:
        """Next task in FIFO order.

        Blocks while the queue is empty.

        Returns:
            The task, or None once the queue is closed and drained.
        """
        ...
