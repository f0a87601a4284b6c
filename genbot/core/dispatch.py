"""Command dispatch table.

Every ``Command`` belongs to exactly one category:

- session commands, handled synchronously by the ingress pump;
- generation commands, which select a backend for subsequent free text;
- control commands, which select a handler for the next free-text
  argument (``cancelJob <id>``, ``ban <username>``, ...).

The table is built once at startup and never mutated. Construction fails
if a generation or control command has no entry, so a command added to
the enum without wiring is caught before the bot connects.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, FrozenSet, Hashable, Mapping, Optional, Union

from .commands import Command, JobKind
from .interfaces.backend import IGenerationBackend
from .responses import Reply

logger = logging.getLogger(__name__)


class OutputMode(str, Enum):
    TEXT = "text"
    IMAGE = "image"


GENERATION_COMMANDS: Dict[Command, tuple] = {
    Command.CHATGPT: (JobKind.CHATGPT, OutputMode.TEXT),
    Command.OPENAI_TEXT: (JobKind.OPENAI, OutputMode.TEXT),
    Command.OPENAI_IMAGE: (JobKind.OPENAI, OutputMode.IMAGE),
    Command.DREAMBOOTH: (JobKind.DREAMBOOTH, OutputMode.IMAGE),
    Command.FUSIONBRAIN: (JobKind.FUSIONBRAIN, OutputMode.IMAGE),
}

CONTROL_COMMANDS: FrozenSet[Command] = frozenset({
    Command.CANCEL_JOB,
    Command.BAN,
    Command.UNBAN,
})

SESSION_COMMANDS: FrozenSet[Command] = frozenset({
    Command.START,
    Command.STOP,
    Command.HELP,
    Command.DREAMBOOTH_EXAMPLE,
    Command.FUSIONBRAIN_EXAMPLE,
    Command.LIST_JOBS,
    Command.STATS,
    Command.LOGS,
    Command.BLACKLIST,
})


@dataclass(frozen=True)
class GenerationRoute:
    """How free text is served while a generation command is selected."""

    command: Command
    kind: JobKind
    backend: IGenerationBackend
    mode: OutputMode
    timeout: float
    max_jobs: int


# (session_key, argument text) -> reply
ControlHandler = Callable[[Hashable, str], Awaitable[Reply]]


@dataclass(frozen=True)
class ControlTask:
    """Handler for the argument that follows a control command."""

    command: Command
    handler: ControlHandler


Route = Union[GenerationRoute, ControlTask]


class DispatchTable:
    """Read-only mapping from command to route."""

    def __init__(
        self,
        routes: Mapping[Command, GenerationRoute],
        controls: Mapping[Command, ControlTask],
    ):
        """Validate and freeze the table.

        Raises:
            ValueError: If a command is unclassified, misclassified or unmapped.
        """
        self._validate_categories()

        missing = [c.value for c in GENERATION_COMMANDS if c not in routes]
        missing += [c.value for c in CONTROL_COMMANDS if c not in controls]
        if missing:
            raise ValueError(f"Dispatch table has no route for: {', '.join(missing)}")

        for command, route in routes.items():
            if command not in GENERATION_COMMANDS:
                raise ValueError(f"'{command.value}' is not a generation command")
            if route.command is not command:
                raise ValueError(f"Route for '{command.value}' is bound to '{route.command.value}'")
        for command in controls:
            if command not in CONTROL_COMMANDS:
                raise ValueError(f"'{command.value}' is not a control command")

        self._routes: Dict[Command, Route] = {**routes, **controls}
        logger.info(
            f"Dispatch table built: {len(routes)} generation routes, "
            f"{len(controls)} control tasks"
        )

    @staticmethod
    def _validate_categories() -> None:
        for command in Command:
            owners = [
                command in GENERATION_COMMANDS,
                command in CONTROL_COMMANDS,
                command in SESSION_COMMANDS,
            ]
            if sum(owners) != 1:
                raise ValueError(
                    f"Command '{command.value}' must belong to exactly one category"
                )

    def resolve(self, command: Command) -> Optional[Route]:
        """Route for free text under ``command``, None for session commands."""
        return self._routes.get(command)

    def generation_route(self, command: Command) -> Optional[GenerationRoute]:
        route = self._routes.get(command)
        if isinstance(route, GenerationRoute):
            return route
        return None


def build_generation_routes(
    backends: Mapping[JobKind, IGenerationBackend],
    timeouts: Mapping[JobKind, float],
    max_jobs: Mapping[JobKind, int],
) -> Dict[Command, GenerationRoute]:
    """Build one route per generation command.

    Args:
        backends: Backend instance per job kind.
        timeouts: Per-kind job timeout in seconds.
        max_jobs: Per-kind, per-session job ceiling.

    Raises:
        ValueError: If a kind has no backend.
    """
    routes: Dict[Command, GenerationRoute] = {}
    for command, (kind, mode) in GENERATION_COMMANDS.items():
        backend = backends.get(kind)
        if backend is None:
            raise ValueError(f"No backend configured for {kind.label}")
        routes[command] = GenerationRoute(
            command=command,
            kind=kind,
            backend=backend,
            mode=mode,
            timeout=timeouts[kind],
            max_jobs=max_jobs[kind],
        )
    return routes
