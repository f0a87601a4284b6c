"""DreamBooth (stablediffusionapi.com v4) image backend.

Docs: https://stablediffusionapi.com/docs/community-models-api-v4/dreamboothtext2img

Each API key has a monthly quota. Requests go through a ``TokenPool`` so
an exhausted key is skipped and the next request starts on the key that
last worked.
"""
import asyncio
import logging
from posixpath import basename
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel

from ..core.config import DreamBoothConfig
from ..core.exceptions import BackendError, InvalidPromptError, QuotaExhaustedError
from .base import HTTPBackend, ImageOnlyMixin
from .token_pool import TokenPool

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_PROCESSING = "processing"
STATUS_ERROR = "error"

QUOTA_MARKER = "limit exceeded"


class DreamBoothRequest(BaseModel):
    """text2img request body. Every field but ``key`` can be set from the prompt."""

    key: str = ""
    model_id: str = "midjourney"
    prompt: str = ""
    negative_prompt: str = ""
    width: str = "1024"
    height: str = "1024"
    samples: str = "1"
    num_inference_steps: str = "20"
    safety_checker: str = "no"
    enhance_prompt: str = "yes"
    guidance_scale: float = 7.5
    multi_lingual: str = "no"
    panorama: str = "no"
    self_attention: str = "no"
    upscale: str = "no"
    tomesd: str = "yes"
    clip_skip: str = "2"
    use_karras_sigmas: str = "yes"
    scheduler: str = "UniPCMultistepScheduler"

    @classmethod
    def from_prompt(cls, text: str, model_id: Optional[str] = None) -> "DreamBoothRequest":
        """Parse ``field: value`` lines.

        Unknown fields and unparsable values are ignored. Text without
        any recognised field is used as the prompt as a whole.

        Raises:
            InvalidPromptError: If no prompt results.
        """
        overrides: Dict[str, Any] = {}
        for line in text.replace("\r", "").split("\n"):
            field, sep, value = line.partition(":")
            field, value = field.strip(), value.strip()
            if not sep or not field or not value:
                continue
            if field == "key" or field not in cls.model_fields:
                continue
            if field == "guidance_scale":
                try:
                    overrides[field] = float(value)
                except ValueError:
                    continue
            else:
                overrides[field] = value

        if not overrides:
            overrides["prompt"] = text.strip()
        if model_id and "model_id" not in overrides:
            overrides["model_id"] = model_id
        if not overrides.get("prompt"):
            raise InvalidPromptError("DreamBooth prompt is empty")

        return cls(**overrides)


def is_quota_error(message: str) -> bool:
    return QUOTA_MARKER in message


class DreamBoothBackend(ImageOnlyMixin, HTTPBackend):
    """Image generation with failover across API keys."""

    name = "DreamBooth"

    def __init__(self, config: DreamBoothConfig, pool: Optional[TokenPool] = None):
        super().__init__(timeout_seconds=config.timeout_seconds)
        self._config = config
        self._url = config.base_url.rstrip("/")
        self._pool = pool or TokenPool(
            config.tokens,
            max_attempts=config.max_attempts,
            name=self.name,
        )

    @property
    def pool(self) -> TokenPool:
        return self._pool

    async def generate_image(self, prompt: str) -> Tuple[bytes, str]:
        request = DreamBoothRequest.from_prompt(prompt)
        return await self._pool.run(lambda key: self.text_to_image(request, key))

    async def text_to_image(self, request: DreamBoothRequest, key: str) -> Tuple[bytes, str]:
        """One text2img call with a single key.

        Raises:
            QuotaExhaustedError: If the key's quota is used up.
            BackendError: On any other API failure.
        """
        payload = request.model_copy(update={"key": key}).model_dump()
        logger.debug(f"DreamBooth request: model={request.model_id}, prompt={request.prompt[:80]}")

        data = await self._post_json(self._url, payload)
        status = data.get("status")

        if status == STATUS_SUCCESS:
            return await self._download(self._first_output(data))

        if status == STATUS_PROCESSING:
            request_id = data.get("id")
            if not request_id:
                raise BackendError("DreamBooth 'id' in processing response is empty")
            output_url = await self._wait_queued(str(request_id), key)
            return await self._download(output_url)

        if status == STATUS_ERROR:
            message = str(data.get("message", ""))
            if is_quota_error(message):
                raise QuotaExhaustedError(f"DreamBooth key quota exhausted: {message}")
            raise BackendError(f"DreamBooth error: {message}")

        raise BackendError(f"DreamBooth unsupported status '{status}'")

    async def fetch_queued(self, request_id: str, key: str) -> Optional[str]:
        """Poll a queued generation once. Returns the output URL when ready."""
        data = await self._post_json(
            f"{self._url}/fetch/{request_id}",
            {"key": key, "request_id": request_id},
        )
        if data.get("status") == STATUS_ERROR:
            raise BackendError(f"DreamBooth fetch error: {data.get('message', '')}")
        output = data.get("output") or []
        return output[0] if output else None

    async def _wait_queued(self, request_id: str, key: str) -> str:
        """Poll until the image is ready; only cancellation ends the wait early."""
        while True:
            try:
                output_url = await self.fetch_queued(request_id, key)
            except BackendError as e:
                logger.debug(f"DreamBooth fetch {request_id} not ready: {e}")
                output_url = None
            if output_url:
                return output_url
            await asyncio.sleep(self._config.retry_interval_seconds)

    @staticmethod
    def _first_output(data: Dict[str, Any]) -> str:
        output = data.get("output") or []
        if not output or not output[0]:
            raise BackendError("DreamBooth 'output' in response is empty")
        return output[0]

    async def _download(self, url: str) -> Tuple[bytes, str]:
        body = await self._get_bytes(url)
        if not body:
            raise BackendError("DreamBooth downloaded file is empty")
        filename = basename(urlparse(url).path)
        if not filename:
            raise BackendError(f"DreamBooth output URL has no file name: {url}")
        return body, filename
