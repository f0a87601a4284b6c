"""Helpers for the Discord transport."""
from typing import List

DISCORD_MESSAGE_LIMIT = 2000


def split_message(content: str, max_length: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """
    Split text into chunks Discord accepts, breaking on newlines where possible.

    Lines longer than ``max_length`` are broken on spaces, and words longer
    than ``max_length`` are cut.

    Args:
        content: Message content to split
        max_length: Maximum length per chunk

    Returns:
        Non-empty list of chunks, each at most ``max_length`` characters
    """
    if len(content) <= max_length:
        return [content]

    chunks: List[str] = []
    current = ""

    for line in content.split("\n"):
        pieces = [line] if len(line) <= max_length else _split_line(line, max_length)
        for piece in pieces:
            candidate = f"{current}\n{piece}" if current else piece
            if len(candidate) <= max_length:
                current = candidate
            else:
                if current:
                    chunks.append(current)
                current = piece

    if current:
        chunks.append(current)

    return chunks or [content[:max_length]]


def _split_line(line: str, max_length: int) -> List[str]:
    pieces: List[str] = []
    current = ""

    for word in line.split(" "):
        while len(word) > max_length:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:max_length])
            word = word[max_length:]

        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_length:
            current = candidate
        else:
            pieces.append(current)
            current = word

    if current:
        pieces.append(current)
    return pieces
