"""Registry of chat sessions and their outstanding jobs.

Locking granularity:
- ``SessionRegistry._lock`` guards the session map (add/delete/lookup).
- ``Session.lock`` guards one session's command and job tables.

The registry lock is never held while waiting for a session lock, so a
long job mutation on one session does not block lookups of another.
Cancel capabilities are always invoked after the session lock is released.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

from .commands import Command, JobKind
from .exceptions import (
    JobAlreadyUsedError,
    JobNotFoundError,
    SessionAlreadyExistsError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

CancelFn = Callable[[], Any]


class Job:
    """A registered job and its single cancel capability.

    The capability is private to the job and fires at most once.
    """

    __slots__ = ("kind", "job_id", "_cancel", "_fired")

    def __init__(self, kind: JobKind, job_id: int, cancel: CancelFn):
        self.kind = kind
        self.job_id = job_id
        self._cancel = cancel
        self._fired = False

    def cancel(self) -> bool:
        """Invoke the cancel capability.

        Returns:
            False if it was already invoked.
        """
        if self._fired:
            return False
        self._fired = True
        self._cancel()
        return True

    def __repr__(self) -> str:
        return f"Job(kind={self.kind.value}, job_id={self.job_id})"


@dataclass
class Session:
    """State of one chat conversation."""

    key: Hashable
    username: str
    command: Command = Command.START
    jobs: Dict[JobKind, Dict[int, Job]] = field(
        default_factory=lambda: {kind: {} for kind in JobKind}
    )
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class SessionRegistry:
    """Concurrency-safe mapping of session key to session state."""

    def __init__(self):
        self._sessions: Dict[Hashable, Session] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def add_session(self, key: Hashable, username: str) -> None:
        """Create a session with the initial ``start`` command.

        Raises:
            SessionAlreadyExistsError: If the key is already active.
        """
        with self._lock:
            if key in self._sessions:
                raise SessionAlreadyExistsError(key)
            self._sessions[key] = Session(key=key, username=username)

        logger.debug(f"Session {key} created for {username}")

    def delete_session(self, key: Hashable) -> None:
        """Remove a session without cancelling its jobs.

        Callers cancel jobs first (see ``close_session``). The removed
        session is marked closed so later registrations against it fail.

        Raises:
            SessionNotFoundError: If the key is not active.
        """
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            raise SessionNotFoundError(key)

        with session.lock:
            session.closed = True
            leftover = sum(len(table) for table in session.jobs.values())

        if leftover:
            logger.warning(f"Session {key} deleted with {leftover} registered jobs")
        logger.debug(f"Session {key} deleted")

    def close_session(self, key: Hashable) -> int:
        """Cancel every job of a session and remove it in one step.

        A job registered concurrently either lands before the close and
        is cancelled here, or lands after and is refused.

        Returns:
            Number of jobs cancelled.

        Raises:
            SessionNotFoundError: If the key is not active.
        """
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            raise SessionNotFoundError(key)

        with session.lock:
            session.closed = True
            jobs = self._drain(session)

        cancelled = self._fire(jobs)
        logger.debug(f"Session {key} closed, {cancelled} jobs cancelled")
        return cancelled

    def has_session(self, key: Hashable) -> bool:
        """Check whether a session is active."""
        with self._lock:
            return key in self._sessions

    def session_keys(self) -> List[Hashable]:
        """Snapshot of active session keys."""
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # =========================================================================
    # Session attributes
    # =========================================================================

    def set_command(self, key: Hashable, command: Command) -> None:
        """Set the session's current command."""
        with self._session(key) as session:
            session.command = command

    def get_command(self, key: Hashable) -> Command:
        """Get the session's current command."""
        with self._session(key) as session:
            return session.command

    def get_username(self, key: Hashable) -> str:
        """Get the display identity that started the session."""
        with self._session(key) as session:
            return session.username

    # =========================================================================
    # Job table
    # =========================================================================

    def add_job(
        self,
        key: Hashable,
        kind: JobKind,
        job_id: int,
        cancel: CancelFn,
    ) -> None:
        """Register a job's cancel capability.

        Raises:
            SessionNotFoundError: If the session is missing or closed.
            JobAlreadyUsedError: If ``(kind, job_id)`` is already registered.
        """
        with self._session(key) as session:
            table = session.jobs[kind]
            if job_id in table:
                raise JobAlreadyUsedError(kind, job_id)
            table[job_id] = Job(kind, job_id, cancel)

    def cancel_job(self, key: Hashable, kind: JobKind, job_id: int) -> None:
        """Invoke a job's cancel capability and remove it.

        Raises:
            SessionNotFoundError: If the session is missing.
            JobNotFoundError: If the job is not registered.
        """
        with self._session(key) as session:
            job = session.jobs[kind].pop(job_id, None)
        if job is None:
            raise JobNotFoundError(kind, job_id)
        job.cancel()

    def cancel_job_by_id(self, key: Hashable, job_id: int) -> JobKind:
        """Cancel a job by id regardless of its kind.

        Kinds are searched in ``JobKind`` order.

        Returns:
            The kind the job was registered under.

        Raises:
            SessionNotFoundError: If the session is missing.
            JobNotFoundError: If no kind has the job.
        """
        job: Optional[Job] = None
        with self._session(key) as session:
            for kind in JobKind:
                job = session.jobs[kind].pop(job_id, None)
                if job is not None:
                    break
        if job is None:
            raise JobNotFoundError(None, job_id)
        job.cancel()
        return job.kind

    def cancel_all_jobs(self, key: Hashable) -> int:
        """Cancel every job of every kind and clear the tables.

        Returns:
            Number of jobs cancelled.
        """
        with self._session(key) as session:
            jobs = self._drain(session)
        return self._fire(jobs)

    def count_jobs(self, key: Hashable, kind: JobKind) -> int:
        """Number of registered jobs of one kind."""
        with self._session(key) as session:
            return len(session.jobs[kind])

    def list_job_ids(self, key: Hashable, kind: JobKind) -> List[int]:
        """Registered job ids of one kind, in registration order."""
        with self._session(key) as session:
            return list(session.jobs[kind])

    # =========================================================================
    # Internal
    # =========================================================================

    @contextmanager
    def _session(self, key: Hashable) -> Iterator[Session]:
        """Yield a live session with its lock held."""
        with self._lock:
            session: Optional[Session] = self._sessions.get(key)
        if session is None:
            raise SessionNotFoundError(key)

        with session.lock:
            if session.closed:
                raise SessionNotFoundError(key)
            yield session

    @staticmethod
    def _drain(session: Session) -> List[Job]:
        """Empty all job tables. Caller holds ``session.lock``."""
        jobs: List[Job] = []
        for kind in JobKind:
            jobs.extend(session.jobs[kind].values())
            session.jobs[kind] = {}
        return jobs

    @staticmethod
    def _fire(jobs: List[Job]) -> int:
        cancelled = 0
        for job in jobs:
            try:
                if job.cancel():
                    cancelled += 1
            except Exception as e:
                logger.error(f"Cancelling {job} failed: {e}", exc_info=True)
        return cancelled
