"""FusionBrain (Kandinsky) image backend.

Docs: https://fusionbrain.ai/docs/en/doc/api-dokumentaciya/

Prompt format, one value per line, all but the first optional:

    prompt
    negative prompt
    width (1..1024, default 512)
    height (1..1024, default 512)
    style (one of the API's styles, default DEFAULT)
"""
import asyncio
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import aiohttp

from ..core.config import FusionBrainConfig
from ..core.exceptions import BackendError, BackendUnavailableError, InvalidPromptError, NoCredentialsError
from .base import HTTPBackend, ImageOnlyMixin

logger = logging.getLogger(__name__)

STATUS_INITIAL = "INITIAL"
STATUS_PROCESSING = "PROCESSING"
STATUS_DONE = "DONE"
STATUS_FAIL = "FAIL"
STATUS_DISABLED_BY_QUEUE = "DISABLED_BY_QUEUE"

DEFAULT_WIDTH = 512
DEFAULT_HEIGHT = 512
MAX_SIDE = 1024
DEFAULT_STYLE = "DEFAULT"


@dataclass
class FusionBrainRequest:
    prompt: str
    negative_prompt: str = ""
    width: int = DEFAULT_WIDTH
    height: int = DEFAULT_HEIGHT
    style: str = DEFAULT_STYLE

    def params(self) -> Dict[str, Any]:
        """``params`` part of the run request."""
        return {
            "type": "GENERATE",
            "style": self.style,
            "width": self.width,
            "height": self.height,
            "num_images": 1,
            "negativePromptUnclip": self.negative_prompt,
            "generateParams": {"query": self.prompt},
        }


def _side(value: str, default: int) -> int:
    try:
        side = int(value.strip())
    except ValueError:
        return default
    if side <= 0 or side > MAX_SIDE:
        return default
    return side


def parse_prompt(text: str, styles: Iterable[str]) -> FusionBrainRequest:
    """Build a request from prompt lines; invalid optional lines keep defaults.

    Raises:
        InvalidPromptError: If the first line is empty.
    """
    rows = text.replace("\r", "").split("\n")
    if not rows[0].strip():
        raise InvalidPromptError("FusionBrain prompt is empty")

    request = FusionBrainRequest(prompt=rows[0].strip())
    if len(rows) > 1:
        request.negative_prompt = rows[1].strip()
    if len(rows) > 2:
        request.width = _side(rows[2], DEFAULT_WIDTH)
    if len(rows) > 3:
        request.height = _side(rows[3], DEFAULT_HEIGHT)
    if len(rows) > 4 and rows[4].strip() in set(styles):
        request.style = rows[4].strip()
    return request


class FusionBrainBackend(ImageOnlyMixin, HTTPBackend):
    """Text-to-image via the FusionBrain key API."""

    name = "FusionBrain"

    def __init__(self, config: FusionBrainConfig):
        super().__init__(timeout_seconds=config.timeout_seconds)
        self._config = config
        self._url = config.base_url.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self._config.key or not self._config.secret_key:
            raise NoCredentialsError("FusionBrain key and secret are not configured")
        return {
            "X-Key": f"Key {self._config.key}",
            "X-Secret": f"Secret {self._config.secret_key}",
        }

    async def get_models(self) -> List[Dict[str, Any]]:
        return await self._get_json(f"{self._url}/models", headers=self._headers()) or []

    async def check_available(self) -> None:
        """Raises BackendUnavailableError while the service refuses new tasks."""
        data = await self._get_json(
            f"{self._url}/text2image/availability", headers=self._headers()
        )
        if data.get("model_status") == STATUS_DISABLED_BY_QUEUE:
            raise BackendUnavailableError("FusionBrain is disabled by queue")

    async def get_styles(self) -> List[str]:
        data = await self._get_json(self._config.styles_url) or []
        return [style.get("name") for style in data if style.get("name")]

    async def run(self, request: FusionBrainRequest, model_id: int) -> str:
        """Submit a generation. Returns its uuid."""
        form = aiohttp.FormData()
        form.add_field(
            "params",
            json.dumps(request.params()),
            content_type="application/json",
        )
        form.add_field("model_id", str(model_id))

        data = await self._post_form(f"{self._url}/text2image/run", form, headers=self._headers())
        status = data.get("status")
        if status == STATUS_DISABLED_BY_QUEUE:
            raise BackendUnavailableError("FusionBrain is disabled by queue")
        if status != STATUS_INITIAL:
            raise BackendError(f"FusionBrain run returned status '{status}'")
        uuid = data.get("uuid")
        if not uuid:
            raise BackendError("FusionBrain run returned an empty uuid")
        return uuid

    async def check_status(self, uuid: str) -> Dict[str, Any]:
        return await self._get_json(
            f"{self._url}/text2image/status/{uuid}", headers=self._headers()
        )

    async def generate_image(self, prompt: str) -> Tuple[bytes, str]:
        models = await self.get_models()
        if not models:
            raise BackendError("FusionBrain returned no models")
        model_id = models[0]["id"]

        await self.check_available()

        styles = await self.get_styles()
        if not styles:
            raise BackendError("FusionBrain returned no styles")

        request = parse_prompt(prompt, styles)
        uuid = await self.run(request, model_id)
        logger.debug(f"FusionBrain generation {uuid} started ({request.width}x{request.height}, {request.style})")

        while True:
            status = await self.check_status(uuid)
            state = status.get("status")
            if state == STATUS_DONE:
                return self._decode(status, uuid)
            if state == STATUS_FAIL:
                raise BackendError(
                    f"FusionBrain generation failed: {status.get('errorDescription', '')}"
                )
            await asyncio.sleep(self._config.retry_interval_seconds)

    @staticmethod
    def _decode(status: Dict[str, Any], uuid: str) -> Tuple[bytes, str]:
        images: Optional[List[str]] = status.get("images")
        if not images:
            raise BackendError("FusionBrain finished without images")
        try:
            body = base64.b64decode(images[0])
        except (binascii.Error, ValueError) as e:
            raise BackendError(f"FusionBrain returned an invalid image: {e}") from e
        return body, f"{status.get('uuid') or uuid}.png"
