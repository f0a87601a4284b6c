"""Generation backend interface.

Backends are awaited inside a job task. Cancelling that task (explicit
cancel or timeout) must make the backend return promptly by letting
``asyncio.CancelledError`` propagate out of its awaits; a backend that
swallows it breaks the job's cancellation guarantees.
"""
from typing import Protocol, Tuple


class IGenerationBackend(Protocol):
    """Text and/or image generation service."""

    name: str

    async def generate_text(self, prompt: str) -> str:
        """Generate a text answer.

        Raises:
            UnsupportedOperationError: If the backend only produces images.
            BackendError: On any backend failure.
        """
        ...

    async def generate_image(self, prompt: str) -> Tuple[bytes, str]:
        """Generate an image.

        Returns:
            Tuple of (image bytes, filename).

        Raises:
            UnsupportedOperationError: If the backend only produces text.
            QuotaExhaustedError: If the credential used is out of quota.
            BackendError: On any other backend failure.
        """
        ...

    async def close(self) -> None:
        """Release HTTP resources."""
        ...
