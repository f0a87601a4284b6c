"""Shared plumbing for HTTP generation backends."""
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from ..core.exceptions import BackendUnavailableError, UnsupportedOperationError

logger = logging.getLogger(__name__)


class HTTPBackend:
    """Base class owning a lazily created aiohttp session.

    Subclasses never catch ``asyncio.CancelledError``: a cancelled job
    must unwind out of the pending request immediately.
    """

    name = "backend"

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post_json(
        self,
        url: str,
        payload: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        session = await self._get_session()
        async with session.post(url, json=payload, headers=headers) as response:
            return await self._read_json(response, url)

    async def _post_form(
        self,
        url: str,
        data: aiohttp.FormData,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        session = await self._get_session()
        async with session.post(url, data=data, headers=headers) as response:
            return await self._read_json(response, url)

    async def _get_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Any:
        session = await self._get_session()
        async with session.get(url, headers=headers) as response:
            return await self._read_json(response, url)

    async def _get_bytes(self, url: str) -> bytes:
        session = await self._get_session()
        async with session.get(url) as response:
            if response.status != 200:
                raise await self._unavailable(response, url)
            return await response.read()

    async def _read_json(self, response, url: str) -> Any:
        if response.status != 200:
            raise await self._unavailable(response, url)
        return await response.json(content_type=None)

    async def _unavailable(self, response, url: str) -> BackendUnavailableError:
        body = await response.text()
        logger.warning(f"{self.name}: {url} answered {response.status}: {body[:200]}")
        return BackendUnavailableError(
            f"{self.name} answered HTTP {response.status}",
            status=response.status,
        )


class TextOnlyMixin:
    """For backends that cannot produce images."""

    async def generate_image(self, prompt: str) -> Tuple[bytes, str]:
        raise UnsupportedOperationError(f"{self.name} does not generate images")


class ImageOnlyMixin:
    """For backends that cannot produce text."""

    async def generate_text(self, prompt: str) -> str:
        raise UnsupportedOperationError(f"{self.name} does not generate text")
