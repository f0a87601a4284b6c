"""Banned usernames, persisted one per line."""
import logging
import threading
from pathlib import Path
from typing import List, Set

from ..core.exceptions import AlreadyExistsError, NotFoundError

logger = logging.getLogger(__name__)


class Blacklist:
    """In-memory set of banned usernames mirrored to a text file."""

    def __init__(self, path: str):
        self._path = Path(path)
        self._usernames: Set[str] = set()
        self._lock = threading.Lock()

    def load(self) -> int:
        """Read the file, creating it when missing.

        Returns:
            Number of banned usernames.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)
        text = self._path.read_text(encoding="utf-8").replace("\r", "")
        with self._lock:
            self._usernames = {line.strip() for line in text.split("\n") if line.strip()}
            count = len(self._usernames)
        logger.info(f"Loaded {count} banned users from {self._path}")
        return count

    def is_banned(self, username: str) -> bool:
        with self._lock:
            return username in self._usernames

    def usernames(self) -> List[str]:
        with self._lock:
            return sorted(self._usernames)

    def ban(self, username: str) -> None:
        """Raises AlreadyExistsError if the user is already banned."""
        with self._lock:
            if username in self._usernames:
                raise AlreadyExistsError(f"User '{username}' is already banned")
            self._usernames.add(username)
            try:
                self._write()
            except OSError:
                self._usernames.discard(username)
                raise
        logger.info(f"Banned user {username}")

    def unban(self, username: str) -> None:
        """Raises NotFoundError if the user is not banned."""
        with self._lock:
            if username not in self._usernames:
                raise NotFoundError(f"User '{username}' is not banned")
            self._usernames.discard(username)
            try:
                self._write()
            except OSError:
                self._usernames.add(username)
                raise
        logger.info(f"Unbanned user {username}")

    def _write(self) -> None:
        """Rewrite the file. Caller holds the lock."""
        body = "".join(f"{name}\n" for name in sorted(self._usernames))
        self._path.write_text(body, encoding="utf-8")
