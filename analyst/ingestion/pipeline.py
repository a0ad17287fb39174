"""
Ingestion Pipeline

Extractor → Chunker → Embedder → Store.

Every chunk is embedded before anything is written, and all chunks of a
document go to the store in one all-or-nothing write, so a failed ingestion
leaves nothing searchable behind. Chunk indices are assigned here, 0..n-1 in
text order, and survive parallel embedding unchanged.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..common.config import AnalystConfig
from ..common.document_store import DocumentStore
from ..common.embedding_service import EmbeddingService
from ..common.errors import EmbeddingError, StorageError
from ..common.schemas import Chunk, utcnow
from .chunker import chunk_text
from .extractor import DocumentExtractor, ExtractionProgress, PageSource
from .text_utils import QuickStats, clean_extracted_text, extract_quick_stats

logger = logging.getLogger("analyst.ingestion.pipeline")


@dataclass
class IngestionResult:
    """Outcome of one ingestion call"""
    document_name: str
    chunk_count: int
    embedded: bool
    record_ids: List[str] = field(default_factory=list)
    page_count: Optional[int] = None
    processing_time: float = 0.0
    stats: Optional[QuickStats] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "documentName": self.document_name,
            "chunks": self.chunk_count,
            "embedded": self.embedded,
            "processingTime": round(self.processing_time, 3),
        }
        if self.page_count is not None:
            data["pageCount"] = self.page_count
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        return data


class IngestionPipeline:
    """
    Chunks, embeds and stores documents.

    With ``embed_chunks=False`` chunks are stored without vectors and the
    retriever falls back to keyword ranking for that document.
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_service: Optional[EmbeddingService] = None,
        chunk_size: int = 1000,
        overlap: int = 200,
        embed_chunks: bool = True,
        max_workers: int = 1,
        clean_text: bool = True,
        extractor: Optional[DocumentExtractor] = None,
    ):
        self._store = store
        self._embedding = embedding_service
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.embed_chunks = embed_chunks
        self.max_workers = max(1, max_workers)
        self.clean_text = clean_text
        self._extractor = extractor or DocumentExtractor()

    @classmethod
    def from_config(
        cls,
        config: AnalystConfig,
        store: DocumentStore,
        embedding_service: Optional[EmbeddingService],
    ) -> "IngestionPipeline":
        return cls(
            store=store,
            embedding_service=embedding_service,
            chunk_size=config.ingestion.chunk_size,
            overlap=config.ingestion.overlap,
            embed_chunks=config.ingestion.embed_chunks,
            max_workers=config.ingestion.max_workers,
            clean_text=config.ingestion.clean_text,
            extractor=DocumentExtractor.from_config(config.extraction),
        )

    def ingest_text(
        self,
        document_name: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionResult:
        """
        Chunk, embed and store one document.

        Raises:
            ValueError: missing document name or empty text
            EmbeddingError: a chunk could not be embedded (carries its index);
                nothing has been stored
            StorageError: the batch write failed; nothing has been stored
        """
        started = time.monotonic()
        if not document_name:
            raise ValueError("document_name is required")
        if not text or not text.strip():
            raise ValueError("Cannot ingest empty text")

        pieces = chunk_text(text, self.chunk_size, self.overlap)
        total = len(pieces)
        logger.info("Ingesting %s: %d characters into %d chunks", document_name, len(text), total)

        vectors = self._embed_all(pieces) if self.embed_chunks else [None] * total

        created_at = utcnow()
        chunks = [
            Chunk(
                document_name=document_name,
                content=content,
                index=index,
                total_chunks=total,
                embedding=vector,
                metadata=dict(metadata or {}),
                created_at=created_at,
            )
            for index, (content, vector) in enumerate(zip(pieces, vectors))
        ]
        try:
            record_ids = self._store.put_many(document_name, chunks)
        except StorageError as e:
            logger.error("Storing %d chunks of %s failed, nothing stored: %s", total, document_name, e)
            raise

        elapsed = time.monotonic() - started
        logger.info("Stored %d chunks for %s in %.2fs", total, document_name, elapsed)

        return IngestionResult(
            document_name=document_name,
            chunk_count=total,
            embedded=self.embed_chunks,
            record_ids=record_ids,
            processing_time=elapsed,
        )

    async def ingest_pdf(
        self,
        source,
        document_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        on_progress: Optional[Callable[[ExtractionProgress], None]] = None,
        cancelled: Optional[Callable[[], bool]] = None,
    ) -> IngestionResult:
        """
        Extract a PDF (bytes, path, URL or PageSource) and ingest its text.

        The document name defaults to the file name of the source.
        """
        name = document_name or _source_name(source)
        if not name:
            raise ValueError("document_name is required for in-memory sources")

        extraction = await self._extractor.extract_windowed(source, on_progress=on_progress, cancelled=cancelled)

        text = clean_extracted_text(extraction.text) if self.clean_text else extraction.text
        stats = extract_quick_stats(text)

        chunk_metadata = {
            "fileName": _source_name(source) or name,
            "pageCount": extraction.page_count,
            "processingTime": round(extraction.processing_time, 3),
            "stats": stats.to_dict(),
            **(metadata or {}),
        }
        if extraction.metadata:
            chunk_metadata["pdf"] = extraction.metadata

        result = self.ingest_text(name, text, chunk_metadata)
        result.page_count = extraction.page_count
        result.processing_time += extraction.processing_time
        result.stats = stats
        return result

    def _embed_all(self, pieces: List[str]) -> List[List[float]]:
        if self._embedding is None:
            raise EmbeddingError("No embedding service configured", chunk_index=0)

        if self.max_workers == 1 or len(pieces) == 1:
            return [self._embed_one(i, piece) for i, piece in enumerate(pieces)]

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._embed_one, i, piece) for i, piece in enumerate(pieces)]
            try:
                # Collected in submission order, which is chunk order
                return [future.result() for future in futures]
            except EmbeddingError:
                for future in futures:
                    future.cancel()
                raise

    def _embed_one(self, index: int, content: str) -> List[float]:
        try:
            return self._embedding.embed(content)
        except EmbeddingError as e:
            logger.error("Embedding chunk %d failed: %s", index, e)
            raise EmbeddingError(str(e), chunk_index=index) from e


def _source_name(source) -> Optional[str]:
    if isinstance(source, (bytes, bytearray)):
        return None
    if isinstance(source, PageSource):
        return getattr(source, "name", None)
    return str(source).rstrip("/").replace("\\", "/").rsplit("/", 1)[-1] or None
