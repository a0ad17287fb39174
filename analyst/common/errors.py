"""
Error taxonomy for the analyst pipeline.

Ingestion errors (extraction, embedding) abort the whole ingestion call.
Storage errors on chat-history reads are absorbed by the store; everything
else propagates to the caller with a readable message.
"""

from typing import Optional


class AnalystError(Exception):
    """Base class for analyst pipeline errors."""


class ExtractionError(AnalystError):
    """Source is not a parseable document, is empty, or a page failed to decode."""

    def __init__(self, message: str, page: Optional[int] = None):
        if page is not None:
            message = f"[page={page}] {message}"
        super().__init__(message)
        self.page = page


class NoExtractableTextError(ExtractionError):
    """Extraction finished but produced no text (usually image-only pages)."""


class ExtractionCancelled(ExtractionError):
    """Caller cancelled a windowed extraction before it finished."""


class EmbeddingError(AnalystError):
    """Embedding capability returned nothing usable, or is not configured."""

    def __init__(self, message: str, chunk_index: Optional[int] = None):
        if chunk_index is not None:
            message = f"[chunk={chunk_index}] {message}"
        super().__init__(message)
        self.chunk_index = chunk_index


class StorageError(AnalystError):
    """Read or write against the document store failed."""

    def __init__(self, message: str, chunk_index: Optional[int] = None):
        if chunk_index is not None:
            message = f"[chunk={chunk_index}] {message}"
        super().__init__(message)
        self.chunk_index = chunk_index


class SynthesisParseError(AnalystError):
    """Model response did not contain a valid JSON object."""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response


class GenerationError(AnalystError):
    """Generative capability is not available."""
