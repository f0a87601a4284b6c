"""Chat commands and backend job kinds.

Both sets are closed: the dispatch table is validated against them at
startup, so adding a member here without wiring it fails fast.
"""
from enum import Enum
from typing import Iterable, Optional, Tuple

COMMAND_PREFIXES = ("/", "!")


class Command(str, Enum):
    """Every command a chat session can issue."""

    START = "start"
    STOP = "stop"
    HELP = "help"
    CHATGPT = "chatGPT"
    OPENAI_TEXT = "openAIText"
    OPENAI_IMAGE = "openAIImage"
    DREAMBOOTH = "dreamBooth"
    DREAMBOOTH_EXAMPLE = "dreamBoothExample"
    FUSIONBRAIN = "fusionBrain"
    FUSIONBRAIN_EXAMPLE = "fusionBrainExample"
    CANCEL_JOB = "cancelJob"
    LIST_JOBS = "listJobs"
    STATS = "stats"
    LOGS = "logs"
    BAN = "ban"
    UNBAN = "unban"
    BLACKLIST = "blacklist"

    @classmethod
    def lookup(cls, name: str) -> Optional["Command"]:
        """Find a command by its chat name (case-sensitive, like the chat UI)."""
        try:
            return cls(name)
        except ValueError:
            return None


class JobKind(str, Enum):
    """Backend kinds that own a job table inside each session."""

    CHATGPT = "chatgpt"
    OPENAI = "openai"
    DREAMBOOTH = "dreambooth"
    FUSIONBRAIN = "fusionbrain"

    @property
    def label(self) -> str:
        """Human-readable backend name used in replies."""
        return _KIND_LABELS[self]


_KIND_LABELS = {
    JobKind.CHATGPT: "ChatGPT",
    JobKind.OPENAI: "OpenAI",
    JobKind.DREAMBOOTH: "DreamBooth",
    JobKind.FUSIONBRAIN: "FusionBrain",
}


class Role(str, Enum):
    """Permission roles, checked in this order."""

    ADMIN = "admin"
    USER = "user"


def parse_command(
    text: str,
    prefixes: Iterable[str] = COMMAND_PREFIXES,
) -> Tuple[Optional[Command], Optional[str]]:
    """Extract a command from the first word of a chat message.

    Args:
        text: Raw message text.
        prefixes: Accepted command prefixes.

    Returns:
        ``(command, name)``. ``name`` is None when the text is not a
        command at all; ``command`` is None when the name is unknown.
    """
    stripped = text.strip()
    if not stripped:
        return None, None

    for prefix in prefixes:
        if stripped.startswith(prefix):
            word = stripped[len(prefix):].split(maxsplit=1)
            if not word:
                return None, None
            # "!help@genbot" addresses one bot when several share a channel
            name = word[0].split("@", 1)[0]
            return Command.lookup(name), name

    return None, None
