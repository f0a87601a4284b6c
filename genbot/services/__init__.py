"""
genbot services.

Runtime components around the core: the worker pool, persisted
statistics and blacklist, and the dispatcher facade wiring them up.
"""

from .blacklist import Blacklist
from .dispatcher import Dispatcher
from .stats import StatsRecorder
from .worker_pool import QueueWorker, WorkerPool

__all__ = [
    "Blacklist",
    "Dispatcher",
    "QueueWorker",
    "StatsRecorder",
    "WorkerPool",
]
