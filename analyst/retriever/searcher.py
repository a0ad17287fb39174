"""
Searcher

Ranks one document's stored chunks against a query.

Two strategies behind one interface:
- vector: cosine similarity between the query embedding and chunk embeddings
- keyword: count of query-token occurrences in the chunk text

In "auto" mode the strategy is chosen per document: vector when every
scoped chunk carries an embedding, keyword otherwise.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..common.config import RetrieverConfig
from ..common.document_store import DocumentStore
from ..common.embedding_service import EmbeddingService
from ..common.schemas import Chunk

logger = logging.getLogger("analyst.retriever.searcher")

VECTOR = "vector"
KEYWORD = "keyword"
AUTO = "auto"
_MODES = (AUTO, VECTOR, KEYWORD)


@dataclass
class RetrievalResult:
    """A ranked chunk. ``score`` is a cosine similarity or a keyword hit count."""
    content: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)
    chunk_index: int = 0
    strategy: str = VECTOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "similarity": self.score,
            "metadata": self.metadata,
            "chunkIndex": self.chunk_index,
            "strategy": self.strategy,
        }


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``matrix``.

    Rows (or a query) with zero norm score 0. Results are clipped to [-1, 1]
    to absorb floating point drift.
    """
    q = np.asarray(query, dtype=np.float64)
    m = np.asarray(matrix, dtype=np.float64)
    if m.ndim == 1:
        m = m.reshape(1, -1)

    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    sims = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    return np.clip(sims, -1.0, 1.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    return float(cosine_similarities(a, np.asarray(b, dtype=np.float64))[0])


class Retriever:
    """
    Scoped chunk retrieval over the document store.

    Always scoped to a single document name. An unknown or empty document
    yields an empty list, never an error, and costs no embedding call.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_service: Optional[EmbeddingService] = None,
        mode: str = AUTO,
        default_topk: int = 5,
    ):
        mode = (mode or AUTO).lower()
        if mode not in _MODES:
            raise ValueError(f"Unknown retrieval mode {mode!r}; expected one of {_MODES}")
        self._store = store
        self._embedding = embedding_service
        self.mode = mode
        self.default_topk = default_topk

    @classmethod
    def from_config(
        cls,
        config: RetrieverConfig,
        store: DocumentStore,
        embedding_service: Optional[EmbeddingService],
    ) -> "Retriever":
        return cls(store, embedding_service, mode=config.mode, default_topk=config.topk)

    def strategy_for(self, chunks: List[Chunk]) -> str:
        """Ranking strategy that will be used for these chunks."""
        if self.mode != AUTO:
            return self.mode
        if chunks and all(c.has_embedding for c in chunks) and self._embedding is not None:
            return VECTOR
        return KEYWORD

    def search(self, query: str, document_name: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """
        Top-k chunks of ``document_name`` for ``query``, best first.

        Equal scores keep ascending chunk-index order.

        Raises:
            ValueError: no document name given
            EmbeddingError: vector strategy and the query could not be embedded
        """
        if not document_name:
            raise ValueError("document_name is required to scope retrieval")

        top_k = top_k or self.default_topk
        chunks = self._store.scan(document_name)
        if not chunks or not query or not query.strip():
            return []

        strategy = self.strategy_for(chunks)
        if strategy == VECTOR:
            results = self._rank_by_vector(query, chunks)
        else:
            results = self._rank_by_keyword(query, chunks)

        # Stable: ties stay in chunk-index order
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug(
            "%s search on %s: %d/%d chunks scored",
            strategy, document_name, len(results), len(chunks),
        )
        return results[:top_k]

    def _rank_by_vector(self, query: str, chunks: List[Chunk]) -> List[RetrievalResult]:
        if self._embedding is None:
            raise ValueError("Vector retrieval needs an embedding service")

        query_vector = self._embedding.embed(query)
        dim = len(query_vector)

        usable = []
        for chunk in chunks:
            if not chunk.has_embedding:
                logger.warning("Chunk %d of %s has no embedding, skipped", chunk.index, chunk.document_name)
            elif len(chunk.embedding) != dim:
                logger.warning(
                    "Chunk %d of %s has a %d-dim embedding, query has %d; skipped",
                    chunk.index, chunk.document_name, len(chunk.embedding), dim,
                )
            else:
                usable.append(chunk)

        if not usable:
            return []

        sims = cosine_similarities(query_vector, np.array([c.embedding for c in usable]))
        return [
            RetrievalResult(
                content=chunk.content,
                score=float(sim),
                metadata=chunk.metadata,
                chunk_index=chunk.index,
                strategy=VECTOR,
            )
            for chunk, sim in zip(usable, sims)
        ]

    def _rank_by_keyword(self, query: str, chunks: List[Chunk]) -> List[RetrievalResult]:
        # Tokens are matched literally, so "c++" or "$5" cannot break the pattern
        patterns = [re.compile(re.escape(token)) for token in query.lower().split()]

        results = []
        for chunk in chunks:
            content = chunk.content.lower()
            score = sum(len(p.findall(content)) for p in patterns)
            if score > 0:
                results.append(RetrievalResult(
                    content=chunk.content,
                    score=float(score),
                    metadata=chunk.metadata,
                    chunk_index=chunk.index,
                    strategy=KEYWORD,
                ))
        return results
