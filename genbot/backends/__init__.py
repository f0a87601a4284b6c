"""Generation backends."""
from typing import Dict

from ..core.commands import JobKind
from ..core.config import Config
from ..core.interfaces.backend import IGenerationBackend
from .chatgpt_free import ChatGPTFreeBackend
from .dreambooth import DreamBoothBackend
from .fusionbrain import FusionBrainBackend
from .openai import OpenAIBackend
from .token_pool import RotationCursor, TokenPool


def build_backends(config: Config) -> Dict[JobKind, IGenerationBackend]:
    """One backend instance per job kind."""
    return {
        JobKind.CHATGPT: ChatGPTFreeBackend(config.chatgpt),
        JobKind.OPENAI: OpenAIBackend(config.openai),
        JobKind.DREAMBOOTH: DreamBoothBackend(config.dreambooth),
        JobKind.FUSIONBRAIN: FusionBrainBackend(config.fusionbrain),
    }


__all__ = [
    "ChatGPTFreeBackend",
    "DreamBoothBackend",
    "FusionBrainBackend",
    "OpenAIBackend",
    "RotationCursor",
    "TokenPool",
    "build_backends",
]
