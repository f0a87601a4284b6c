"""Keyless ChatGPT mirror exposing an OpenAI-compatible chat endpoint."""
import logging
from urllib.parse import urlparse

from ..core.config import ChatGPTConfig
from ..core.exceptions import BackendError
from .base import HTTPBackend, TextOnlyMixin

logger = logging.getLogger(__name__)


class ChatGPTFreeBackend(TextOnlyMixin, HTTPBackend):
    """Text generation without credentials."""

    name = "ChatGPT"

    def __init__(self, config: ChatGPTConfig):
        super().__init__(timeout_seconds=config.timeout_seconds)
        self._config = config
        parsed = urlparse(config.url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        # The mirror rejects requests that do not look like its own web UI
        self._headers = {
            "Accept": "application/json, text/event-stream",
            "Accept-Language": "en-US,en;q=0.9",
            "Content-Type": "application/json",
            "Origin": origin,
            "Referer": f"{origin}/",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-origin",
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
            ),
        }

    async def generate_text(self, prompt: str) -> str:
        payload = {
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "model": self._config.model,
            "temperature": 0.5,
            "presence_penalty": 0,
            "frequency_penalty": 0,
            "top_p": 1,
        }
        data = await self._post_json(self._config.url, payload, headers=self._headers)
        choices = data.get("choices") or []
        if not choices:
            raise BackendError("ChatGPT returned no choices")
        return choices[0]["message"]["content"]
