"""Chat transport adapters."""
from .discord_client import DiscordTransport
from .utils import split_message

__all__ = ["DiscordTransport", "split_message"]
