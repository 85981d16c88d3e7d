"""
RAG Chunker
===========

Splits extracted text into overlapping, boundary-aware fragments.

Rules:
- Windows of `size` characters
- A window prefers to end right after the last '.' or newline it contains,
  as long as that break lies past the window's midpoint
- The next window starts `overlap` characters before the previous end
- Stable chunking (same input = same fragments)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

BREAK_CHARS = (".", "\n")


@dataclass
class ChunkConfig:
    """Chunking configuration, in characters."""
    size: int = 500
    overlap: int = 100

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError("Chunk size must be positive")
        if self.overlap < 0:
            raise ValueError("Chunk overlap cannot be negative")
        if self.overlap >= self.size:
            raise ValueError("Chunk overlap must be smaller than chunk size")


def _find_break(text: str, start: int, end: int) -> int:
    """Index of the last break character in text[start:end], or -1."""
    return max(text.rfind(ch, start, end) for ch in BREAK_CHARS)


def chunk_windows(text: str, size: int, overlap: int) -> List[tuple]:
    """
    Compute the (start, end) windows chunk_text slices, before trimming.

    Consecutive windows overlap or touch, and the last one ends at len(text).
    """
    windows = []
    length = len(text)
    start = 0

    while start < length:
        end = start + size

        if end < length:
            break_point = _find_break(text, start, end)
            if break_point > start + size / 2:
                end = break_point + 1
        else:
            end = length

        windows.append((start, end))
        if end >= length:
            break

        next_start = max(end - overlap, 0)
        if next_start <= start:
            next_start = end
        start = next_start

    return windows


def chunk_text(text: str, size: int = 500, overlap: int = 100) -> List[str]:
    """
    Split text into ordered fragments of at most `size` characters.

    Fragments are stripped of surrounding whitespace; empty ones are dropped.
    """
    return [
        piece
        for piece in (text[s:e].strip() for s, e in chunk_windows(text, size, overlap))
        if piece
    ]


class RAGChunker:
    """Chunker bound to a configuration."""

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()

    def chunk(self, text: str) -> List[str]:
        """
        Split a document's text into fragments.

        Args:
            text: Extracted document text

        Returns:
            Ordered list of fragment strings
        """
        if not text.strip():
            logger.warning("Empty text passed to chunker")
            return []

        chunks = chunk_text(text, self.config.size, self.config.overlap)
        logger.debug(
            f"Chunked {len(text)} characters into {len(chunks)} fragments "
            f"(size={self.config.size}, overlap={self.config.overlap})"
        )
        return chunks
