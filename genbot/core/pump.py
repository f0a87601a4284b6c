"""Ingress pump: the single consumer of inbound chat messages.

One consumer keeps per-session ordering: a mode selection is applied to
the registry before the next free-text message of that session is
evaluated against it.

Per message:
1. blocklist
2. overload (queue depth at or above the threshold)
3. commands: permission check, then a synchronous registry transition
4. free text: session exists, a route is selected, the job ceiling of
   the route's kind is not reached, then enqueue and acknowledge
"""
import asyncio
import logging
from typing import Callable, Dict, Optional

from .commands import Command, JobKind
from .dispatch import DispatchTable, GenerationRoute
from .exceptions import OverloadedError, SessionAlreadyExistsError, SessionNotFoundError
from .interfaces.queue import ITaskSubmitter
from .interfaces.storage import IBlocklist, IStatsSink
from .interfaces.transport import IMessenger, InboundMessage
from .permissions import RoleSource
from .responses import Reply
from .session_registry import SessionRegistry
from .task_queue import Task
from . import responses

logger = logging.getLogger(__name__)

Handler = Callable[[InboundMessage, Command], Reply]

STATS_FILENAME = "stats.csv"


class IngressPump:
    """Admission control between the transport and the task queue."""

    def __init__(
        self,
        inbound: "asyncio.Queue[InboundMessage]",
        registry: SessionRegistry,
        queue: ITaskSubmitter,
        dispatch: DispatchTable,
        messenger: IMessenger,
        roles: RoleSource,
        blocklist: IBlocklist,
        stats: IStatsSink,
        log_source: Callable[[], str],
        overload_threshold: int,
    ):
        """Initialize the pump.

        Args:
            inbound: Channel the transport pushes messages onto.
            registry: Session registry.
            queue: Task queue admission side.
            dispatch: Command dispatch table.
            messenger: Reply side of the transport.
            roles: Role and permission source.
            blocklist: Banned usernames.
            stats: Statistics store (for the ``stats`` command).
            log_source: Returns the latest log lines (for ``logs``).
            overload_threshold: Queue depth at which messages are refused.
        """
        self._inbound = inbound
        self._registry = registry
        self._queue = queue
        self._dispatch = dispatch
        self._messenger = messenger
        self._roles = roles
        self._blocklist = blocklist
        self._stats = stats
        self._log_source = log_source
        self._overload_threshold = overload_threshold
        self._task: Optional[asyncio.Task] = None

        self._handlers = self._build_handlers()

    def _build_handlers(self) -> Dict[Command, Handler]:
        handlers: Dict[Command, Handler] = {
            Command.START: self._start,
            Command.STOP: self._stop,
            Command.HELP: self._help,
            Command.DREAMBOOTH_EXAMPLE: lambda m, c: Reply(responses.DREAMBOOTH_EXAMPLE),
            Command.FUSIONBRAIN_EXAMPLE: lambda m, c: Reply(responses.FUSIONBRAIN_EXAMPLE),
            Command.LIST_JOBS: self._list_jobs,
            Command.STATS: self._stats_file,
            Command.LOGS: self._logs,
            Command.BLACKLIST: self._blacklist,
        }
        for command in Command:
            if command not in handlers and self._dispatch.resolve(command) is not None:
                handlers[command] = self._select
        missing = [c.value for c in Command if c not in handlers]
        if missing:
            raise ValueError(f"No pump handler for: {', '.join(missing)}")
        return handlers

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start consuming the inbound channel."""
        if self.is_running:
            logger.warning("Ingress pump already started")
            return
        self._task = asyncio.create_task(self.run(), name="ingress-pump")

    async def stop(self) -> None:
        """Stop consuming. Messages still in the channel are dropped."""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

        dropped = 0
        while not self._inbound.empty():
            self._inbound.get_nowait()
            dropped += 1
        logger.info(f"Ingress pump stopped ({dropped} inbound messages dropped)")

    async def run(self) -> None:
        """Consume messages until cancelled."""
        logger.info("Ingress pump started")
        while True:
            message = await self._inbound.get()
            try:
                await self.handle(message)
            except Exception as e:
                logger.error(
                    f"Failed to handle message {message.message_id} "
                    f"from session {message.session_key}: {e}",
                    exc_info=True,
                )
            finally:
                self._inbound.task_done()

    # =========================================================================
    # Message handling
    # =========================================================================

    async def handle(self, message: InboundMessage) -> None:
        """Admit one message and send the immediate reply, if any."""
        logger.debug(
            f"Received message from {message.username} "
            f"(session={message.session_key}, command={message.command})"
        )

        reply = await self._process(message)
        if reply is None:
            return

        try:
            if reply.is_file:
                await self._messenger.reply_file(
                    message.message_id, message.session_key, reply.body, reply.filename
                )
            else:
                await self._messenger.reply_text(
                    message.message_id, message.session_key, reply.text
                )
        except Exception as e:
            logger.error(f"Reply to session {message.session_key} failed: {e}", exc_info=True)

    async def _process(self, message: InboundMessage) -> Optional[Reply]:
        if self._blocklist.is_banned(message.username):
            logger.info(f"Refused message from banned user {message.username}")
            return Reply(responses.ACCESS_DENIED)

        if self._queue.is_overloaded(self._overload_threshold):
            logger.warning(f"Queue overloaded ({self._queue.size()} pending), refusing message")
            return Reply(responses.OVERLOADED)

        if message.command is not None:
            return self._process_command(message)

        if not message.text.strip():
            return None

        return await self._admit(message)

    def _process_command(self, message: InboundMessage) -> Reply:
        command = Command.lookup(message.command)
        if command is None:
            return Reply(responses.UNSUPPORTED_COMMAND)

        if not self._roles.is_allowed(message.username, command):
            logger.info(f"User {message.username} is not allowed to use '{command.value}'")
            return Reply(responses.ACCESS_DENIED)

        return self._handlers[command](message, command)

    async def _admit(self, message: InboundMessage) -> Reply:
        key = message.session_key
        try:
            command = self._registry.get_command(key)
        except SessionNotFoundError:
            return Reply(responses.SESSION_NOT_ACTIVE)

        route = self._dispatch.resolve(command)
        if route is None:
            return Reply(responses.NO_GENERATION_MODE)

        if isinstance(route, GenerationRoute):
            try:
                running = self._registry.count_jobs(key, route.kind)
            except SessionNotFoundError:
                return Reply(responses.SESSION_NOT_ACTIVE)
            if running >= route.max_jobs:
                return Reply(responses.JOB_LIMIT)

        try:
            await self._queue.try_put(Task(key, message.message_id, message.text))
        except OverloadedError as e:
            logger.warning(f"Task from session {key} refused: {e}")
            return Reply(responses.OVERLOADED)

        return Reply(responses.REQUEST_QUEUED)

    # =========================================================================
    # Command handlers
    # =========================================================================

    def _start(self, message: InboundMessage, command: Command) -> Reply:
        try:
            self._registry.add_session(message.session_key, message.username)
        except SessionAlreadyExistsError:
            return Reply(responses.SESSION_ALREADY_ACTIVE)
        logger.info(f"Session {message.session_key} started by {message.username}")
        return Reply(responses.SESSION_CREATED)

    def _stop(self, message: InboundMessage, command: Command) -> Reply:
        try:
            cancelled = self._registry.close_session(message.session_key)
        except SessionNotFoundError:
            return Reply(responses.SESSION_NOT_ACTIVE)
        logger.info(f"Session {message.session_key} stopped, {cancelled} jobs cancelled")
        return Reply(responses.SESSION_REMOVED)

    def _help(self, message: InboundMessage, command: Command) -> Reply:
        role = self._roles.role_of(message.username)
        return Reply(responses.help_text(self._roles.commands_for(role)))

    def _select(self, message: InboundMessage, command: Command) -> Reply:
        """Generation and control commands: remember the mode for later text."""
        try:
            self._registry.set_command(message.session_key, command)
        except SessionNotFoundError:
            return Reply(responses.SESSION_NOT_ACTIVE)
        return Reply(responses.MODE_DESCRIPTIONS[command])

    def _list_jobs(self, message: InboundMessage, command: Command) -> Reply:
        try:
            jobs = {
                kind: self._registry.list_job_ids(message.session_key, kind)
                for kind in JobKind
            }
        except SessionNotFoundError:
            return Reply(responses.SESSION_NOT_ACTIVE)
        return Reply(responses.list_jobs(jobs))

    def _stats_file(self, message: InboundMessage, command: Command) -> Reply:
        body = self._stats.snapshot()
        if not body:
            return Reply(responses.EMPTY_STATS)
        return Reply.file(body, STATS_FILENAME)

    def _logs(self, message: InboundMessage, command: Command) -> Reply:
        text = self._log_source()
        return Reply(text or responses.EMPTY_LOGS)

    def _blacklist(self, message: InboundMessage, command: Command) -> Reply:
        return Reply(responses.blacklist(self._blocklist.usernames()))