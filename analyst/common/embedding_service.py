"""
Embedding Service

Maps a text chunk to a fixed-length vector through an external embedding
provider (Gemini or OpenAI), truncating long inputs and validating every
returned vector before it can reach the store.
"""

import logging
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from .config import EmbeddingConfig
from .errors import EmbeddingError

logger = logging.getLogger("analyst.common.embedding_service")

DEFAULT_MAX_INPUT_CHARS = 2048


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Embedding capability: one text in, one vector out."""

    def embed(self, text: str) -> Sequence[float]:
        ...


class GoogleEmbeddingBackend:
    """Gemini embeddings via google-generativeai."""

    def __init__(self, api_key: str, model: str = "models/embedding-001", timeout: float = 30.0):
        import google.generativeai as genai

        genai.configure(api_key=api_key)
        self._genai = genai
        self._model = model
        self._timeout = timeout

    def embed(self, text: str) -> Sequence[float]:
        result = self._genai.embed_content(
            model=self._model,
            content=text,
            request_options={"timeout": self._timeout},
        )
        if isinstance(result, dict):
            return result.get("embedding")
        return getattr(result, "embedding", None)


class OpenAIEmbeddingBackend:
    """OpenAI embeddings."""

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", timeout: float = 30.0):
        from openai import OpenAI

        self._client = OpenAI(api_key=api_key)
        self._model = model
        self._timeout = timeout

    def embed(self, text: str) -> Sequence[float]:
        response = self._client.embeddings.create(
            model=self._model,
            input=text,
            timeout=self._timeout,
        )
        if not response.data:
            return None
        return response.data[0].embedding


def validate_embedding(vector) -> List[float]:
    """
    Check a provider response and return it as a plain list of floats.

    Raises:
        EmbeddingError: missing or empty vector, non-numeric element,
            or any NaN / infinite value.
    """
    if vector is None:
        raise EmbeddingError("Embedding provider returned no vector")

    if isinstance(vector, np.ndarray):
        if vector.ndim != 1:
            raise EmbeddingError(f"Expected a 1-D vector, got shape {vector.shape}")
        vector = vector.tolist()

    try:
        values = list(vector)
    except TypeError as e:
        raise EmbeddingError(f"Embedding is not a sequence: {type(vector).__name__}") from e

    if not values:
        raise EmbeddingError("Embedding provider returned an empty vector")

    for i, v in enumerate(values):
        if isinstance(v, bool) or not isinstance(v, (int, float, np.number)):
            raise EmbeddingError(f"Non-numeric embedding element at position {i}: {v!r}")

    arr = np.asarray(values, dtype=np.float64)
    if not np.isfinite(arr).all():
        bad = int(np.flatnonzero(~np.isfinite(arr))[0])
        raise EmbeddingError(f"Non-finite embedding value at position {bad}")

    return arr.tolist()


class EmbeddingService:
    """
    Validated embedding generation.

    Inputs longer than ``max_input_chars`` are truncated, not rejected.
    A ``backend`` may be injected directly; otherwise one is built for
    ``provider`` when an API key is available.
    """

    def __init__(
        self,
        provider: str = "google",
        model: str = "models/embedding-001",
        api_key: Optional[str] = None,
        max_input_chars: int = DEFAULT_MAX_INPUT_CHARS,
        timeout: float = 30.0,
        backend: Optional[EmbeddingProvider] = None,
    ):
        self.provider = (provider or "google").lower()
        self.model = model
        self.max_input_chars = max_input_chars
        self._backend = backend

        if backend is not None:
            return

        if not api_key:
            logger.info("%s embedding API key not provided, embedding service unavailable", self.provider)
            return

        try:
            if self.provider == "google":
                self._backend = GoogleEmbeddingBackend(api_key=api_key, model=model, timeout=timeout)
            elif self.provider == "openai":
                self._backend = OpenAIEmbeddingBackend(api_key=api_key, model=model, timeout=timeout)
            else:
                logger.warning("Unsupported embedding provider: %s", self.provider)
        except ImportError as e:
            logger.warning("Embedding provider package not installed: %s", e)

    @classmethod
    def from_config(cls, config: EmbeddingConfig, api_key: Optional[str]) -> "EmbeddingService":
        return cls(
            provider=config.provider,
            model=config.model,
            api_key=api_key,
            max_input_chars=config.max_input_chars,
            timeout=config.timeout,
        )

    @property
    def is_available(self) -> bool:
        """Check if embedding service is available"""
        return self._backend is not None

    def embed(self, text: str) -> List[float]:
        """
        Generate a validated embedding for a single text.

        Raises:
            EmbeddingError: service not configured, provider failure,
                or an invalid vector.
        """
        if not self.is_available:
            raise EmbeddingError(f"Embedding service not configured (provider={self.provider}, missing API key)")

        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        if len(text) > self.max_input_chars:
            text = text[:self.max_input_chars]

        try:
            vector = self._backend.embed(text)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding provider call failed: {e}") from e

        return validate_embedding(vector)
