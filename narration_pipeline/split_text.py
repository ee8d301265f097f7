from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

logger = logging.getLogger(__name__)

__all__ = ["TextChunk", "split_into_chunks", "build_text_chunks", "MAX_TEXT_LENGTH"]

MAX_TEXT_LENGTH = 200_000
SPLIT_TERMINATORS = (".", "\n")
MIN_SPLIT_RATIO = 0.5


@dataclass(frozen=True)
class TextChunk:
    index: int
    text: str
    start: int
    end: int

    def __len__(self) -> int:
        return len(self.text)


def split_into_chunks(text: str, max_chunk_size: int) -> List[str]:
    """
    Split text into pieces of at most ``max_chunk_size`` characters.

    Each piece prefers to end right after the last ``.`` or newline inside its
    window. A terminator that falls in the first half of the window is ignored
    and the window is cut hard at ``max_chunk_size`` instead, so pathological
    input never degrades into a flood of tiny chunks. Joining the result gives
    back the input exactly.
    """
    if max_chunk_size <= 0:
        raise ValueError("max_chunk_size must be positive.")
    if not text:
        return []

    chunks: List[str] = []
    remaining = text
    min_split = max_chunk_size * MIN_SPLIT_RATIO

    while len(remaining) > max_chunk_size:
        window = remaining[:max_chunk_size]
        split_index = max(window.rfind(t) for t in SPLIT_TERMINATORS)
        if split_index < 0 or split_index < min_split:
            cut = max_chunk_size
        else:
            cut = split_index + 1
        chunks.append(remaining[:cut])
        remaining = remaining[cut:]

    chunks.append(remaining)

    logger.debug(
        "Split %d characters into %d chunks (max %d).",
        len(text),
        len(chunks),
        max_chunk_size,
    )
    return chunks


def build_text_chunks(text: str, max_chunk_size: int) -> List[TextChunk]:
    result: List[TextChunk] = []
    offset = 0
    for index, piece in enumerate(split_into_chunks(text, max_chunk_size)):
        result.append(TextChunk(index=index, text=piece, start=offset, end=offset + len(piece)))
        offset += len(piece)
    return result
