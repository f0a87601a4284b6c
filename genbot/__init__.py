"""genbot - chat bot front end for text and image generation services."""

__version__ = "1.0.0"
