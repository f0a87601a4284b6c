"""Shared test fixtures for genbot tests."""
import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from genbot.core.commands import Command, JobKind
from genbot.core.config import Config
from genbot.core.dispatch import GENERATION_COMMANDS, GenerationRoute
from genbot.core.interfaces.transport import InboundMessage


# =============================================================================
# Mock HTTP
# =============================================================================

class MockResponse:
    """Mock aiohttp response."""

    def __init__(self, status: int = 200, json_data: Any = None, text: str = "", body: bytes = b""):
        self.status = status
        self._json_data = json_data if json_data is not None else {}
        self._text = text
        self._body = body

    async def json(self, content_type=None):
        return self._json_data

    async def text(self):
        return self._text

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class MockSession:
    """Mock aiohttp ClientSession serving queued responses in order.

    ``responses`` maps a URL substring to a list of responses; the first
    matching key wins and its list is consumed front to back, repeating
    the last response once exhausted.
    """

    def __init__(self, responses: Optional[Dict[str, List[MockResponse]]] = None):
        self._responses = responses or {}
        self.closed = False
        self.post_calls: List[Dict[str, Any]] = []
        self.get_calls: List[Dict[str, Any]] = []

    def _next(self, url: str) -> MockResponse:
        for pattern, queue in self._responses.items():
            if pattern in url:
                if len(queue) > 1:
                    return queue.pop(0)
                return queue[0]
        return MockResponse(404, text="not found")

    def post(self, url, json=None, data=None, headers=None, **kwargs):
        self.post_calls.append({"url": url, "json": json, "data": data, "headers": headers})
        return self._next(url)

    def get(self, url, headers=None, **kwargs):
        self.get_calls.append({"url": url, "headers": headers})
        return self._next(url)

    async def close(self):
        self.closed = True


# =============================================================================
# Fakes for the transport and backends
# =============================================================================

class FakeMessenger:
    """Records every reply instead of sending it."""

    def __init__(self):
        self.texts: List[Tuple[int, Any, str]] = []
        self.files: List[Tuple[int, Any, bytes, str]] = []
        self.replied = asyncio.Event()
        self.fail = False

    @property
    def is_connected(self) -> bool:
        return True

    async def reply_text(self, message_id, session_key, text):
        if self.fail:
            raise RuntimeError("transport down")
        self.texts.append((message_id, session_key, text))
        self.replied.set()

    async def reply_file(self, message_id, session_key, body, filename):
        if self.fail:
            raise RuntimeError("transport down")
        self.files.append((message_id, session_key, body, filename))
        self.replied.set()

    def last_text(self) -> Optional[str]:
        return self.texts[-1][2] if self.texts else None

    async def wait_for(self, count: int, timeout: float = 2.0) -> None:
        """Wait until at least ``count`` replies (text or file) were sent."""
        async def _wait():
            while len(self.texts) + len(self.files) < count:
                self.replied.clear()
                await self.replied.wait()
        await asyncio.wait_for(_wait(), timeout)


class FakeBackend:
    """Generation backend controlled by the test.

    When ``gate`` is set, calls block until it is released.
    """

    def __init__(
        self,
        name: str = "Fake",
        text: str = "generated text",
        image: Tuple[bytes, str] = (b"\x89PNG", "image.png"),
        error: Optional[BaseException] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.name = name
        self._text = text
        self._image = image
        self._error = error
        self.gate = gate
        self.prompts: List[str] = []
        self.started = asyncio.Event()
        self.cancelled = False
        self.closed = False

    async def _work(self):
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error

    async def generate_text(self, prompt: str) -> str:
        self.prompts.append(prompt)
        await self._work()
        return self._text

    async def generate_image(self, prompt: str) -> Tuple[bytes, str]:
        self.prompts.append(prompt)
        await self._work()
        return self._image

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Builders
# =============================================================================

def make_route(
    command: Command = Command.CHATGPT,
    backend=None,
    timeout: float = 5.0,
    max_jobs: int = 1,
) -> GenerationRoute:
    kind, mode = GENERATION_COMMANDS[command]
    return GenerationRoute(
        command=command,
        kind=kind,
        backend=backend or FakeBackend(),
        mode=mode,
        timeout=timeout,
        max_jobs=max_jobs,
    )


def make_message(
    text: str = "",
    command: Optional[str] = None,
    session_key: Any = 1,
    message_id: int = 10,
    username: str = "alice",
) -> InboundMessage:
    return InboundMessage(
        session_key=session_key,
        message_id=message_id,
        text=text,
        username=username,
        command=command,
    )


def make_backends(**overrides) -> Dict[JobKind, FakeBackend]:
    backends = {kind: FakeBackend(name=kind.label) for kind in JobKind}
    for name, backend in overrides.items():
        backends[JobKind(name)] = backend
    return backends


@pytest.fixture
def config_data(tmp_path) -> Dict[str, Any]:
    """Minimal configuration writing its files under ``tmp_path``."""
    return {
        "queue": {"worker_count": 2, "capacity": 10, "shutdown_timeout_seconds": 2},
        "roles": {"admin": ["root"], "user": ["*"]},
        "permissions": {
            "admin": ["*"],
            "user": ["start", "stop", "help", "chatGPT", "dreamBooth", "cancelJob", "listJobs"],
        },
        "stats": {"filepath": str(tmp_path / "stats.csv"), "flush_interval_seconds": 3600},
        "blacklist_path": str(tmp_path / "blacklist.txt"),
    }


@pytest.fixture
def config(config_data) -> Config:
    return Config.from_dict(config_data)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()
