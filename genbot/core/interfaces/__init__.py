"""Interfaces consumed by the dispatcher core."""
from .backend import IGenerationBackend
from .queue import ITaskSource, ITaskSubmitter, QueueMetrics
from .storage import IBlocklist, IStatsSink
from .transport import IMessenger, InboundMessage

__all__ = [
    "IBlocklist",
    "IGenerationBackend",
    "IMessenger",
    "IStatsSink",
    "InboundMessage",
    "ITaskSource",
    "ITaskSubmitter",
    "QueueMetrics",
]
