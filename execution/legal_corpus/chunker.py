"""
Sliding-Window Chunker

Splits normalized page text into fixed-size overlapping windows. Chunk i of a
given text always covers the same character range, so re-chunking unchanged
text reproduces the same chunk set.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ChunkConfig:
    """Configuration for chunking parameters."""
    max_chars: int = 1200
    overlap_chars: int = 150


def chunk_text(text: str, max_chars: int = 1200, overlap_chars: int = 150) -> list[str]:
    """
    Split text into windows of max_chars advancing by max_chars - overlap_chars.

    Whitespace runs are collapsed to a single space first. The final window
    may be shorter than max_chars; whitespace-only windows are dropped.

    Args:
        text: Plain text to split
        max_chars: Window length
        overlap_chars: Characters shared by consecutive windows

    Returns:
        List of chunk strings (empty for empty input)
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")
    if overlap_chars < 0 or overlap_chars >= max_chars:
        raise ValueError("overlap_chars must be in [0, max_chars)")

    clean = re.sub(r"\s+", " ", text or "").strip()
    if not clean:
        return []

    step = max_chars - overlap_chars
    chunks = []
    start = 0
    while start < len(clean):
        end = min(start + max_chars, len(clean))
        window = clean[start:end]
        if window.strip():
            chunks.append(window)
        if end >= len(clean):
            break
        start += step
    return chunks


class TextChunker:
    """Chunker bound to a ChunkConfig; used by the crawler."""

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()
        if self.config.overlap_chars >= self.config.max_chars:
            raise ValueError("overlap_chars must be smaller than max_chars")

    def chunk(self, text: str) -> list[str]:
        chunks = chunk_text(
            text,
            max_chars=self.config.max_chars,
            overlap_chars=self.config.overlap_chars,
        )
        logger.debug(f"Created {len(chunks)} chunks from {len(text or '')} chars")
        return chunks
