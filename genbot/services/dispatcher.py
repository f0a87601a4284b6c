"""Dispatcher facade.

Wires the session registry, task queue, worker pool, ingress pump,
statistics and blacklist together and owns their lifecycle.
"""
import asyncio
import logging
from typing import Callable, Dict, Hashable, Mapping, Optional

from ..core.commands import Command, JobKind
from ..core.config import Config
from ..core.dispatch import ControlTask, DispatchTable, build_generation_routes
from ..core.exceptions import (
    AlreadyExistsError,
    JobNotFoundError,
    NotFoundError,
    SessionNotFoundError,
)
from ..core.interfaces.backend import IGenerationBackend
from ..core.interfaces.transport import IMessenger, InboundMessage
from ..core.jobs import JobRunner
from ..core.permissions import RoleSource
from ..core.pump import IngressPump
from ..core.responses import Reply
from ..core.session_registry import SessionRegistry
from ..core.task_queue import TaskQueue
from ..core import responses
from .blacklist import Blacklist
from .stats import StatsRecorder
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class Dispatcher:
    """Owns every orchestration component.

    Thin facade providing:
    - start/stop lifecycle
    - control-command handlers (cancelJob, ban, unban)
    - status for the health server
    """

    def __init__(
        self,
        config: Config,
        inbound: "asyncio.Queue[InboundMessage]",
        messenger: IMessenger,
        backends: Mapping[JobKind, IGenerationBackend],
        log_source: Callable[[], str] = lambda: "",
        registry: Optional[SessionRegistry] = None,
        blacklist: Optional[Blacklist] = None,
        stats: Optional[StatsRecorder] = None,
    ):
        """Build the component graph.

        Args:
            config: Application configuration.
            inbound: Channel the transport pushes messages onto.
            messenger: Reply side of the transport.
            backends: Backend instance per job kind.
            log_source: Returns the latest log lines for the ``logs`` command.
            registry: Session registry (created when omitted).
            blacklist: Banned users (created from config when omitted).
            stats: Statistics recorder (created from config when omitted).

        Raises:
            ValueError: If the dispatch table is incomplete.
        """
        self._config = config
        self._backends = dict(backends)
        self._registry = registry or SessionRegistry()
        self._queue = TaskQueue(config.queue.capacity)
        self._blacklist = blacklist or Blacklist(config.blacklist_path)
        self._stats = stats or StatsRecorder(config.stats)
        self._roles = RoleSource(config.access)

        routes = build_generation_routes(
            self._backends,
            timeouts=config.job_timeouts(),
            max_jobs=config.limits.max_jobs,
        )
        self._dispatch = DispatchTable(routes, self._control_tasks())
        self._runner = JobRunner(self._registry)

        self._pool = WorkerPool(
            worker_count=config.queue.worker_count,
            source=self._queue,
            registry=self._registry,
            dispatch=self._dispatch,
            runner=self._runner,
            messenger=messenger,
            stats=self._stats,
        )
        self._pump = IngressPump(
            inbound=inbound,
            registry=self._registry,
            queue=self._queue,
            dispatch=self._dispatch,
            messenger=messenger,
            roles=self._roles,
            blocklist=self._blacklist,
            stats=self._stats,
            log_source=log_source,
            overload_threshold=config.queue.effective_overload_threshold,
        )
        self._started = False

    def _control_tasks(self) -> Dict[Command, ControlTask]:
        return {
            Command.CANCEL_JOB: ControlTask(Command.CANCEL_JOB, self._cancel_job),
            Command.BAN: ControlTask(Command.BAN, self._ban),
            Command.UNBAN: ControlTask(Command.UNBAN, self._unban),
        }

    # =========================================================================
    # Components
    # =========================================================================

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def queue(self) -> TaskQueue:
        return self._queue

    @property
    def dispatch(self) -> DispatchTable:
        return self._dispatch

    @property
    def is_running(self) -> bool:
        return self._started

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Load persisted state and start workers and the pump."""
        if self._started:
            logger.warning("Dispatcher already started")
            return

        self._blacklist.load()
        await self._stats.start()
        await self._pool.start()
        self._pump.start()
        self._started = True

        logger.info(
            f"Dispatcher started with {self._config.queue.worker_count} workers, "
            f"queue capacity {self._queue.capacity}"
        )

    async def stop(self) -> None:
        """Shut down: no new messages, no pending tasks, no running jobs."""
        if not self._started:
            return
        self._started = False

        await self._pump.stop()
        await self._queue.close()

        cancelled = 0
        for key in self._registry.session_keys():
            try:
                cancelled += self._registry.close_session(key)
            except SessionNotFoundError:
                pass
        logger.info(f"Closed all sessions, {cancelled} running jobs cancelled")

        await self._pool.stop(self._config.queue.shutdown_timeout_seconds)
        await self._stats.stop()

        for backend in self._backends.values():
            try:
                await backend.close()
            except Exception as e:
                logger.error(f"Closing {backend.name} failed: {e}", exc_info=True)

        logger.info("Dispatcher stopped")

    # =========================================================================
    # Control commands
    # =========================================================================

    async def _cancel_job(self, session_key: Hashable, text: str) -> Reply:
        try:
            job_id = int(text)
        except ValueError:
            return Reply(responses.INVALID_JOB_ID)

        try:
            kind = self._registry.cancel_job_by_id(session_key, job_id)
        except SessionNotFoundError:
            return Reply(responses.SESSION_NOT_ACTIVE)
        except JobNotFoundError:
            return Reply(responses.job_not_found(job_id))

        logger.info(f"{kind.label} job #{job_id} cancelled by session {session_key}")
        return Reply(responses.job_canceled(kind, job_id))

    async def _ban(self, session_key: Hashable, text: str) -> Reply:
        try:
            self._blacklist.ban(text)
        except AlreadyExistsError:
            return Reply(responses.already_banned(text))
        except OSError as e:
            logger.error(f"Failed to write blacklist: {e}", exc_info=True)
            return Reply(responses.blacklist_failed(text))
        return Reply(responses.banned(text))

    async def _unban(self, session_key: Hashable, text: str) -> Reply:
        try:
            self._blacklist.unban(text)
        except NotFoundError:
            return Reply(responses.not_banned(text))
        except OSError as e:
            logger.error(f"Failed to write blacklist: {e}", exc_info=True)
            return Reply(responses.blacklist_failed(text))
        return Reply(responses.unbanned(text))

    # =========================================================================
    # Monitoring
    # =========================================================================

    def is_overloaded(self) -> bool:
        return self._queue.is_overloaded(self._config.queue.effective_overload_threshold)

    def get_worker_status(self) -> dict:
        """Get worker pool status."""
        return {
            "total": self._pool.total_workers,
            "busy": self._pool.busy_workers,
            "idle": self._pool.idle_workers,
            "workers": self._pool.get_worker_status(),
        }

    def get_status(self) -> dict:
        """Get full dispatcher status."""
        metrics = self._queue.get_metrics()
        return {
            "sessions": len(self._registry),
            "queue_depth": metrics.queue_depth,
            "capacity": metrics.capacity,
            "workers": self.get_worker_status(),
            "metrics": {
                "total_enqueued": metrics.total_enqueued,
                "total_dequeued": metrics.total_dequeued,
                "total_rejected": metrics.total_rejected,
                "avg_wait_time_ms": round(metrics.avg_wait_time_ms, 1),
            },
        }
