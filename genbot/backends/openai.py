"""OpenAI REST backend (chat completions and image generation)."""
import asyncio
import base64
import binascii
import logging
import random
import string
from typing import Any, Awaitable, Callable, Dict, Tuple

from ..core.config import OpenAIConfig
from ..core.exceptions import BackendError, BackendUnavailableError, NoCredentialsError
from .base import HTTPBackend

logger = logging.getLogger(__name__)

# Only these statuses are worth retrying
RETRY_STATUSES = frozenset({429, 503})

IMAGE_NAME_LENGTH = 20
_NAME_ALPHABET = string.ascii_letters + string.digits


def random_filename(length: int = IMAGE_NAME_LENGTH, suffix: str = ".png") -> str:
    return "".join(random.choices(_NAME_ALPHABET, k=length)) + suffix


class OpenAIBackend(HTTPBackend):
    """Text and image generation through api.openai.com."""

    name = "OpenAI"

    def __init__(self, config: OpenAIConfig):
        super().__init__(timeout_seconds=config.timeout_seconds)
        self._config = config
        self._url = config.base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self._config.token:
            raise NoCredentialsError("OpenAI token is not configured")
        return {"Authorization": f"Bearer {self._config.token}"}

    async def _with_retry(self, request: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``request``, retrying on HTTP 429/503 up to ``retry_count`` times."""
        attempts = max(1, self._config.retry_count)
        for attempt in range(attempts):
            try:
                return await request()
            except BackendUnavailableError as e:
                if e.status not in RETRY_STATUSES or attempt == attempts - 1:
                    raise
                logger.warning(
                    f"OpenAI answered {e.status}, retrying in "
                    f"{self._config.retry_interval_seconds}s ({attempt + 1}/{attempts})"
                )
                await asyncio.sleep(self._config.retry_interval_seconds)

    async def generate_text(self, prompt: str) -> str:
        payload = {
            "model": self._config.text_model,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = self._headers()
        data = await self._with_retry(
            lambda: self._post_json(f"{self._url}/chat/completions", payload, headers=headers)
        )
        choices = data.get("choices") or []
        if not choices:
            raise BackendError("OpenAI returned no choices")
        return choices[0]["message"]["content"]

    async def generate_image(self, prompt: str) -> Tuple[bytes, str]:
        payload = {
            "prompt": prompt,
            "n": 1,
            "size": self._config.image_size,
            "response_format": "b64_json",
        }
        headers = self._headers()
        data = await self._with_retry(
            lambda: self._post_json(f"{self._url}/images/generations", payload, headers=headers)
        )
        images = data.get("data") or []
        if not images:
            raise BackendError("OpenAI returned no image data")
        try:
            body = base64.b64decode(images[0]["b64_json"])
        except (binascii.Error, KeyError, ValueError) as e:
            raise BackendError(f"OpenAI returned an invalid image: {e}") from e
        return body, random_filename()
