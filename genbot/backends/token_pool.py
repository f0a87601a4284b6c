"""Round-robin credential pool with quota failover.

A request starts at the shared rotation cursor and walks forward through
the tokens, wrapping after the last, skipping every token whose call
raises ``QuotaExhaustedError``. The first success or non-quota error ends
the walk and leaves the cursor on the token that produced it, so the next
request starts there. If the walk runs out, the cursor stays on the last
token tried and the last quota error is re-raised.
"""
import logging
import threading
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from ..core.exceptions import NoCredentialsError, QuotaExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RotationCursor:
    """Index shared by every concurrent caller of a pool."""

    def __init__(self, value: int = 0):
        self._value = value
        self._lock = threading.Lock()

    def load(self) -> int:
        with self._lock:
            return self._value

    def store(self, value: int) -> None:
        with self._lock:
            self._value = value


class TokenPool:
    """Ordered credentials plus their rotation cursor."""

    def __init__(
        self,
        tokens: Sequence[str],
        max_attempts: Optional[int] = None,
        cursor: Optional[RotationCursor] = None,
        name: str = "token pool",
    ):
        """Initialize the pool.

        Args:
            tokens: Credentials in rotation order.
            max_attempts: Upper bound on tokens tried per request
                (default: every token once).
            cursor: Shared cursor, created when omitted.
            name: Label used in log messages.
        """
        self._tokens: List[str] = list(tokens)
        self._max_attempts = max_attempts
        self._cursor = cursor or RotationCursor()
        self._name = name

    @property
    def tokens(self) -> List[str]:
        return list(self._tokens)

    @property
    def cursor(self) -> RotationCursor:
        return self._cursor

    def __len__(self) -> int:
        return len(self._tokens)

    def _attempts(self) -> int:
        if self._max_attempts is None:
            return len(self._tokens)
        return max(1, min(self._max_attempts, len(self._tokens)))

    async def run(self, call: Callable[[str], Awaitable[T]]) -> T:
        """Call ``call(token)`` with failover on quota exhaustion.

        Raises:
            NoCredentialsError: If the pool is empty.
            QuotaExhaustedError: If every attempted token is exhausted.
            Exception: Whatever ``call`` raised for a non-quota failure.
        """
        if not self._tokens:
            raise NoCredentialsError(f"{self._name} has no credentials configured")

        count = len(self._tokens)
        index = self._cursor.load() % count
        last_error: Optional[QuotaExhaustedError] = None

        for attempt in range(self._attempts()):
            if attempt:
                index = (index + 1) % count
            try:
                result = await call(self._tokens[index])
            except QuotaExhaustedError as e:
                logger.warning(f"{self._name}: token #{index} quota exhausted, rotating")
                last_error = e
                continue
            except BaseException:
                self._cursor.store(index)
                raise

            self._cursor.store(index)
            return result

        self._cursor.store(index)
        logger.error(f"{self._name}: all {self._attempts()} attempted tokens exhausted")
        raise last_error
