"""Chat transport interfaces.

The dispatcher is transport-agnostic: adapters push ``InboundMessage``
values onto the inbound queue and implement ``IMessenger`` for replies.
"""
from dataclasses import dataclass
from typing import Hashable, Optional, Protocol


@dataclass(frozen=True)
class InboundMessage:
    """A chat message as delivered by a transport adapter."""

    session_key: Hashable
    message_id: int
    text: str
    username: str
    command: Optional[str] = None  # Raw command name, None for free text


class IMessenger(Protocol):
    """Reply side of a chat transport."""

    async def reply_text(self, message_id: int, session_key: Hashable, text: str) -> None:
        """Reply to a message with text.

        Args:
            message_id: Message being answered.
            session_key: Conversation the message belongs to.
            text: Reply body.
        """
        ...

    async def reply_file(
        self,
        message_id: int,
        session_key: Hashable,
        body: bytes,
        filename: str,
    ) -> None:
        """Reply to a message with a file attachment.

        Args:
            message_id: Message being answered.
            session_key: Conversation the message belongs to.
            body: File contents.
            filename: Attachment name shown to the user.
        """
        ...

    @property
    def is_connected(self) -> bool:
        """Whether the transport is currently connected."""
        ...
