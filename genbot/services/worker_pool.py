"""Worker pool consuming the task queue.

- QueueWorker: processes tasks one at a time
- WorkerPool: manages worker lifecycle
"""
import asyncio
import logging
from typing import List, Optional

from ..core.dispatch import ControlTask, DispatchTable
from ..core.exceptions import SessionNotFoundError
from ..core.interfaces.queue import ITaskSource
from ..core.interfaces.storage import IStatsSink
from ..core.interfaces.transport import IMessenger
from ..core.jobs import JobRunner
from ..core.responses import Reply
from ..core.session_registry import SessionRegistry
from ..core.task_queue import Task
from ..core import responses

logger = logging.getLogger(__name__)


class QueueWorker:
    """Worker that processes tasks from the queue.

    Each worker runs in an asyncio task. An exception raised while
    processing one task is logged and the worker moves on to the next.
    """

    def __init__(
        self,
        worker_id: int,
        source: ITaskSource,
        registry: SessionRegistry,
        dispatch: DispatchTable,
        runner: JobRunner,
        messenger: IMessenger,
        stats: IStatsSink,
    ):
        """Initialize the worker.

        Args:
            worker_id: Unique identifier for this worker.
            source: Queue to take tasks from.
            registry: Session registry.
            dispatch: Command dispatch table.
            runner: Job lifecycle executor.
            messenger: Reply side of the transport.
            stats: Statistics store.
        """
        self._id = worker_id
        self._source = source
        self._registry = registry
        self._dispatch = dispatch
        self._runner = runner
        self._messenger = messenger
        self._stats = stats
        self._running = False
        self._current_task: Optional[Task] = None

    @property
    def worker_id(self) -> int:
        """Get worker ID."""
        return self._id

    @property
    def is_busy(self) -> bool:
        """Check if worker is processing a task."""
        return self._current_task is not None

    @property
    def current_session(self):
        """Session key of the task being processed, if any."""
        if self._current_task is None:
            return None
        return self._current_task.session_key

    async def run(self) -> None:
        """Run the worker loop until the queue is closed."""
        self._running = True
        logger.info(f"Worker {self._id} started")

        while self._running:
            try:
                task = await self._source.get()

                if task is None:
                    # Queue closed
                    break

                await self._process(task)

            except Exception as e:
                logger.error(f"Worker {self._id} error: {e}", exc_info=True)
                # Continue processing - don't let one error stop the worker
                await asyncio.sleep(0.1)

        logger.info(f"Worker {self._id} stopped")

    async def _process(self, task: Task) -> None:
        """Execute a task and deliver its reply."""
        self._current_task = task
        try:
            logger.debug(f"Worker {self._id} processing message {task.message_id} of session {task.session_key}")
            try:
                reply = await self._execute(task)
            except Exception as e:
                logger.error(
                    f"Worker {self._id} failed on message {task.message_id} "
                    f"of session {task.session_key}: {e}",
                    exc_info=True,
                )
                reply = Reply(responses.TRY_AGAIN)
            await self._deliver(task, reply)
        finally:
            self._current_task = None

    async def _execute(self, task: Task) -> Reply:
        key = task.session_key
        try:
            command = self._registry.get_command(key)
            username = self._registry.get_username(key)
        except SessionNotFoundError:
            return Reply(responses.SESSION_NOT_ACTIVE)

        route = self._dispatch.resolve(command)
        if route is None:
            return Reply(responses.NO_GENERATION_MODE)

        if isinstance(route, ControlTask):
            return await route.handler(key, task.text.strip())

        outcome = await self._runner.run(key, route, task.text)
        self._stats.record(username, command, task.text, outcome.response_text)
        return outcome.reply

    async def _deliver(self, task: Task, reply: Reply) -> None:
        try:
            if reply.is_file:
                await self._messenger.reply_file(
                    task.message_id, task.session_key, reply.body, reply.filename
                )
            else:
                await self._messenger.reply_text(task.message_id, task.session_key, reply.text)
        except Exception as e:
            logger.error(
                f"Worker {self._id} reply to session {task.session_key} failed: {e}",
                exc_info=True,
            )

    async def stop(self) -> None:
        """Signal the worker to stop."""
        self._running = False
        logger.debug(f"Worker {self._id} stop requested")


class WorkerPool:
    """Manages a fixed pool of queue workers.

    Handles worker lifecycle: creation, startup, and graceful shutdown.
    """

    def __init__(
        self,
        worker_count: int,
        source: ITaskSource,
        registry: SessionRegistry,
        dispatch: DispatchTable,
        runner: JobRunner,
        messenger: IMessenger,
        stats: IStatsSink,
    ):
        if worker_count <= 0:
            raise ValueError(f"worker_count must be positive, got {worker_count}")

        self._count = worker_count
        self._source = source
        self._registry = registry
        self._dispatch = dispatch
        self._runner = runner
        self._messenger = messenger
        self._stats = stats
        self._workers: List[QueueWorker] = []
        self._worker_tasks: List[asyncio.Task] = []

    @property
    def total_workers(self) -> int:
        """Get total worker count."""
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        """Get count of workers currently processing."""
        return sum(1 for w in self._workers if w.is_busy)

    @property
    def idle_workers(self) -> int:
        """Get count of idle workers."""
        return self.total_workers - self.busy_workers

    def get_worker_status(self) -> List[dict]:
        """Get status of all workers."""
        return [
            {
                "id": w.worker_id,
                "busy": w.is_busy,
                "current_session": w.current_session,
            }
            for w in self._workers
        ]

    async def start(self) -> None:
        """Start all workers."""
        for i in range(self._count):
            worker = QueueWorker(
                worker_id=i,
                source=self._source,
                registry=self._registry,
                dispatch=self._dispatch,
                runner=self._runner,
                messenger=self._messenger,
                stats=self._stats,
            )
            self._workers.append(worker)

            task = asyncio.create_task(
                worker.run(),
                name=f"queue-worker-{i}",
            )
            self._worker_tasks.append(task)

        logger.info(f"Started {self._count} queue workers")

    async def stop(self, timeout: float = 30.0) -> None:
        """Gracefully shutdown all workers.

        Workers exit once the queue is closed and their current task is
        done; those still busy after ``timeout`` are cancelled.

        Args:
            timeout: Maximum seconds to wait for workers to finish.
        """
        logger.info("Stopping worker pool...")

        for worker in self._workers:
            await worker.stop()

        if self._worker_tasks:
            try:
                await asyncio.wait_for(
                    asyncio.gather(*self._worker_tasks, return_exceptions=True),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Worker shutdown timed out after {timeout}s, "
                    "cancelling remaining tasks"
                )
                for task in self._worker_tasks:
                    if not task.done():
                        task.cancel()

        self._workers.clear()
        self._worker_tasks.clear()
        logger.info("Worker pool stopped")
