"""Request statistics persisted as CSV.

Rows are buffered in memory and appended to the file on a fixed interval
and on shutdown. Columns: timestamp, username, command, response, request.
"""
import asyncio
import csv
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from ..core.commands import Command
from ..core.config import StatsConfig
from ..core.dispatch import GENERATION_COMMANDS

logger = logging.getLogger(__name__)


def _one_line(text: str) -> str:
    return text.replace("\r", "").replace("\n", "")


class StatsRecorder:
    """Buffers generation requests and flushes them to a CSV file.

    Periodic flushes run in a worker thread, so the row buffer is guarded
    by a lock.
    """

    def __init__(self, config: StatsConfig):
        self._path = Path(config.filepath)
        self._interval = config.flush_interval_seconds
        self._tz = ZoneInfo(config.timezone)
        self._rows: List[List[str]] = []
        self._lock = threading.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        """Rows recorded but not yet flushed."""
        with self._lock:
            return len(self._rows)

    def record(self, username: str, command: Command, request: str, response: str) -> None:
        """Buffer one row. Commands other than generation commands are ignored."""
        if command not in GENERATION_COMMANDS:
            return
        row = [
            datetime.now(self._tz).isoformat(timespec="seconds"),
            username,
            command.value,
            _one_line(response),
            request,
        ]
        with self._lock:
            self._rows.append(row)

    def snapshot(self) -> Optional[bytes]:
        """Flushed file contents, or None if nothing was ever written."""
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None

    def flush(self) -> int:
        """Append buffered rows to the file.

        On failure the rows stay buffered for the next attempt.

        Returns:
            Number of rows written.
        """
        with self._lock:
            rows, self._rows = self._rows, []
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", newline="", encoding="utf-8") as f:
                csv.writer(f).writerows(rows)
        except OSError:
            with self._lock:
                self._rows = rows + self._rows
            raise
        if rows:
            logger.debug(f"Flushed {len(rows)} stats rows to {self._path}")
        return len(rows)

    async def start(self) -> None:
        """Create the file if needed and start periodic flushing."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)
        self._task = asyncio.create_task(self._run(), name="stats-flusher")
        logger.info(f"Stats recorder started ({self._path}, every {self._interval}s)")

    async def stop(self) -> None:
        """Stop periodic flushing and write what is left."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        try:
            await asyncio.to_thread(self.flush)
        except OSError as e:
            logger.error(f"Final stats flush failed: {e}", exc_info=True)
        logger.info("Stats recorder stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await asyncio.to_thread(self.flush)
            except OSError as e:
                logger.error(f"Stats flush failed: {e}", exc_info=True)
