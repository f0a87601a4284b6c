"""genbot core: sessions, admission, dispatch and job lifecycle."""
from .commands import COMMAND_PREFIXES, Command, JobKind, Role, parse_command
from .config import BotSettings, Config
from .dispatch import (
    CONTROL_COMMANDS,
    GENERATION_COMMANDS,
    SESSION_COMMANDS,
    ControlTask,
    DispatchTable,
    GenerationRoute,
    OutputMode,
    build_generation_routes,
)
from .exceptions import GenBotError
from .jobs import JobOutcome, JobRunner, JobState
from .permissions import RoleSource
from .pump import IngressPump
from .responses import Reply
from .session_registry import Job, Session, SessionRegistry
from .task_queue import Task, TaskQueue

__all__ = [
    # Commands
    "COMMAND_PREFIXES",
    "Command",
    "JobKind",
    "Role",
    "parse_command",
    # Configuration
    "BotSettings",
    "Config",
    # Dispatch
    "CONTROL_COMMANDS",
    "GENERATION_COMMANDS",
    "SESSION_COMMANDS",
    "ControlTask",
    "DispatchTable",
    "GenerationRoute",
    "OutputMode",
    "build_generation_routes",
    # Exceptions
    "GenBotError",
    # Jobs
    "JobOutcome",
    "JobRunner",
    "JobState",
    # Admission
    "IngressPump",
    "RoleSource",
    "Reply",
    # State
    "Job",
    "Session",
    "SessionRegistry",
    "Task",
    "TaskQueue",
]
