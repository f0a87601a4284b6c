"""Persistence interfaces for the blocklist and request statistics."""
from typing import List, Optional, Protocol

from ..commands import Command


class IBlocklist(Protocol):
    """Usernames refused by the ingress pump."""

    def is_banned(self, username: str) -> bool:
        ...

    def ban(self, username: str) -> None:
        """Raises AlreadyExistsError if the user is already banned."""
        ...

    def unban(self, username: str) -> None:
        """Raises NotFoundError if the user is not banned."""
        ...

    def usernames(self) -> List[str]:
        ...


class IStatsSink(Protocol):
    """Row-append statistics store."""

    def record(self, username: str, command: Command, request: str, response: str) -> None:
        """Buffer one row for a generation request."""
        ...

    def snapshot(self) -> Optional[bytes]:
        """Contents of the statistics file as of the last flush."""
        ...
