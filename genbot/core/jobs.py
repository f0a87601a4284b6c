"""Job lifecycle: draw an id, register, run the backend call, unregister.

States: CREATED -> REGISTERED -> RUNNING -> COMPLETED | CANCELED | FAILED.

The backend call runs in its own ``asyncio.Task``. Its ``cancel`` is the
job's only cancel capability and is handed to the session registry, so
``cancelJob``, ``stop`` and shutdown all reach the call the same way a
timeout does.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Hashable, Optional

from .dispatch import GenerationRoute, OutputMode
from .exceptions import JobAlreadyUsedError, JobCanceledError, JobNotFoundError, SessionNotFoundError
from .responses import Reply
from .session_registry import SessionRegistry
from . import responses

logger = logging.getLogger(__name__)

MIN_JOB_ID = 100000
MAX_JOB_ID = 999999  # Exclusive

DEFAULT_ID_ATTEMPTS = 5


class JobState(str, Enum):
    CREATED = "created"
    REGISTERED = "registered"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELED = "canceled"
    FAILED = "failed"


def _log_state(route: GenerationRoute, session_key: Hashable, job_id: Optional[int], state: JobState) -> None:
    job = f"#{job_id}" if job_id is not None else "(no id)"
    level = logging.DEBUG if state in (JobState.CREATED, JobState.RUNNING) else logging.INFO
    logger.log(level, f"{route.kind.label} job {job} {state.value} for session {session_key}")


def new_job_id() -> int:
    """Random job id in ``[MIN_JOB_ID, MAX_JOB_ID)``."""
    return random.randrange(MIN_JOB_ID, MAX_JOB_ID)


@dataclass
class JobOutcome:
    """Terminal state of a job and the reply it produced."""

    state: JobState
    reply: Reply
    job_id: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def response_text(self) -> str:
        """Text recorded in statistics (empty for file replies)."""
        if self.reply.is_file:
            return ""
        return self.reply.text


class _CancelHandle:
    """Cancel capability registered for one job."""

    __slots__ = ("_task", "requested")

    def __init__(self, task: asyncio.Task):
        self._task = task
        self.requested = False

    def __call__(self) -> None:
        self.requested = True
        self._task.cancel()


class JobRunner:
    """Runs generation jobs against the session registry."""

    def __init__(
        self,
        registry: SessionRegistry,
        id_factory: Callable[[], int] = new_job_id,
        max_id_attempts: int = DEFAULT_ID_ATTEMPTS,
    ):
        self._registry = registry
        self._id_factory = id_factory
        self._max_id_attempts = max_id_attempts

    async def run(self, session_key: Hashable, route: GenerationRoute, prompt: str) -> JobOutcome:
        """Execute one job to completion.

        Never raises for backend failures: they become a FAILED outcome
        with the backend's generic error reply. Cancellation of the
        calling worker propagates after the job is cancelled and
        unregistered.
        """
        task = asyncio.create_task(
            self._call(route, prompt),
            name=f"job-{route.kind.value}-{session_key}",
        )
        handle = _CancelHandle(task)
        _log_state(route, session_key, None, JobState.CREATED)

        try:
            job_id = self._register(session_key, route, handle)
        except SessionNotFoundError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.warning(f"Session {session_key} vanished before {route.kind.label} job registration")
            return JobOutcome(JobState.FAILED, Reply(responses.SESSION_NOT_ACTIVE))
        except JobAlreadyUsedError as e:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            logger.error(f"No free {route.kind.label} job id for session {session_key}")
            return JobOutcome(JobState.FAILED, Reply(responses.backend_error(route.kind)), error=e)

        _log_state(route, session_key, job_id, JobState.REGISTERED)

        try:
            _log_state(route, session_key, job_id, JobState.RUNNING)
            timed_out = await self._wait(task, route.timeout)
            outcome = self._outcome(task, handle, route, job_id, timed_out)
        except asyncio.CancelledError:
            # Worker itself is being cancelled (shutdown)
            task.cancel()
            raise
        finally:
            self._unregister(session_key, route, job_id)

        _log_state(route, session_key, job_id, outcome.state)
        return outcome

    def _register(self, session_key: Hashable, route: GenerationRoute, handle: _CancelHandle) -> int:
        """Install the cancel capability under a fresh id.

        Raises:
            SessionNotFoundError: If the session is gone.
            JobAlreadyUsedError: If every drawn id collided.
        """
        last_error: Optional[JobAlreadyUsedError] = None
        for _ in range(self._max_id_attempts):
            job_id = self._id_factory()
            try:
                self._registry.add_job(session_key, route.kind, job_id, handle)
                return job_id
            except JobAlreadyUsedError as e:
                logger.debug(f"{e}, drawing another id")
                last_error = e
        raise last_error

    def _unregister(self, session_key: Hashable, route: GenerationRoute, job_id: int) -> None:
        try:
            self._registry.cancel_job(session_key, route.kind, job_id)
        except (JobNotFoundError, SessionNotFoundError):
            # Already removed by cancelJob, stop or shutdown
            pass

    @staticmethod
    async def _call(route: GenerationRoute, prompt: str):
        if route.mode is OutputMode.TEXT:
            return await route.backend.generate_text(prompt)
        return await route.backend.generate_image(prompt)

    @staticmethod
    async def _wait(task: asyncio.Task, timeout: float) -> bool:
        """Wait for the backend task. Returns True on timeout."""
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if done:
            return False

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    @staticmethod
    def _outcome(
        task: asyncio.Task,
        handle: _CancelHandle,
        route: GenerationRoute,
        job_id: int,
        timed_out: bool,
    ) -> JobOutcome:
        if timed_out:
            logger.warning(f"{route.kind.label} job #{job_id} timed out after {route.timeout}s")
            return JobOutcome(
                JobState.FAILED,
                Reply(responses.backend_error(route.kind)),
                job_id,
                asyncio.TimeoutError(),
            )

        if task.cancelled():
            return JobOutcome(
                JobState.CANCELED,
                Reply(responses.JOB_CANCELED),
                job_id,
                JobCanceledError(f"{route.kind.label} job '{job_id}' was cancelled"),
            )

        error = task.exception()
        if error is not None:
            if handle.requested:
                # Backend converted the cancellation into its own error
                return JobOutcome(JobState.CANCELED, Reply(responses.JOB_CANCELED), job_id, error)
            logger.error(f"{route.kind.label} job #{job_id} failed: {error}", exc_info=error)
            return JobOutcome(
                JobState.FAILED,
                Reply(responses.backend_error(route.kind, error)),
                job_id,
                error,
            )

        result = task.result()
        if route.mode is OutputMode.TEXT:
            return JobOutcome(JobState.COMPLETED, Reply(result), job_id)
        body, filename = result
        return JobOutcome(JobState.COMPLETED, Reply.file(body, filename), job_id)
