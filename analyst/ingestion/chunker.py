"""
Chunker

Deterministic sliding window over character offsets. The same
(text, chunk_size, overlap) always yields the same chunks in the same order.
"""

import logging
from typing import List

logger = logging.getLogger("analyst.ingestion.chunker")

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_OVERLAP = 200


def chunk_text(text: str, chunk_size: int = DEFAULT_CHUNK_SIZE, overlap: int = DEFAULT_OVERLAP) -> List[str]:
    """
    Split text into overlapping fixed-size windows.

    Windows are ``[start, start + chunk_size)`` clipped to the text length.
    After each window, ``start`` moves to ``max(start + 1, end - overlap)``,
    so the loop always advances even when ``overlap >= chunk_size``.

    Args:
        text: Text to split
        chunk_size: Maximum characters per chunk (> 0)
        overlap: Characters shared by consecutive chunks (>= 0)

    Returns:
        Chunks in document order; empty for empty text
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0:
        raise ValueError(f"overlap must be non-negative, got {overlap}")
    if overlap >= chunk_size:
        logger.warning(
            "Chunk overlap (%d) >= chunk size (%d); advancing one character per chunk",
            overlap, chunk_size,
        )

    chunks = []
    start = 0
    length = len(text)

    while start < length:
        end = min(start + chunk_size, length)
        chunks.append(text[start:end])
        if end == length:
            break
        start = max(start + 1, end - overlap)

    return chunks
