"""
Tests for the Ingestion Pipeline

Chunk → embed → store, failure atomicity, parallel embedding order and
PDF ingestion metadata.
"""

from unittest.mock import Mock

import fitz
import pytest

from analyst.common.errors import EmbeddingError, ExtractionError, StorageError


def _pipeline(store, embedding_service=None, **kwargs):
    from analyst.ingestion.pipeline import IngestionPipeline
    return IngestionPipeline(store, embedding_service, **kwargs)


class TestIngestText:
    def test_chunks_are_indexed_and_embedded(self, store, embedding_service):
        text = "".join(chr(ord("a") + i % 26) for i in range(2500))

        result = _pipeline(store, embedding_service).ingest_text("doc1", text)

        chunks = store.scan("doc1")
        assert result.chunk_count == 3
        assert len(result.record_ids) == 3
        assert [c.index for c in chunks] == [0, 1, 2]
        assert all(c.total_chunks == 3 for c in chunks)
        assert all(c.has_embedding for c in chunks)
        assert chunks[0].content == text[:1000]
        assert chunks[1].content == text[800:1800]
        assert chunks[2].content == text[1600:]

    def test_metadata_copied_to_every_chunk(self, store, embedding_service):
        _pipeline(store, embedding_service, chunk_size=10, overlap=0).ingest_text(
            "doc", "x" * 35, {"source": "upload"}
        )

        assert [c.metadata for c in store.scan("doc")] == [{"source": "upload"}] * 4

    def test_without_embeddings(self, store, embedder):
        result = _pipeline(store, None, embed_chunks=False).ingest_text("doc", "plain text")

        assert result.embedded is False
        assert not store.scan("doc")[0].has_embedding
        assert embedder.calls == []

    def test_missing_embedding_service_rejected(self, store):
        with pytest.raises(EmbeddingError):
            _pipeline(store, None).ingest_text("doc", "text")
        assert store.scan("doc") == []

    def test_embedding_failure_stores_nothing(self, store):
        from analyst.common.embedding_service import EmbeddingService
        backend = Mock()
        backend.embed.side_effect = [[1.0, 0.0], RuntimeError("quota exceeded"), [0.0, 1.0]]

        with pytest.raises(EmbeddingError) as exc_info:
            _pipeline(store, EmbeddingService(backend=backend), chunk_size=10, overlap=0).ingest_text(
                "doc", "a" * 30
            )

        assert exc_info.value.chunk_index == 1
        assert "quota exceeded" in str(exc_info.value)
        assert store.scan("doc") == []

    def test_invalid_vector_fails_ingestion(self, store):
        from analyst.common.embedding_service import EmbeddingService
        backend = Mock()
        backend.embed.return_value = [0.1, float("nan")]

        with pytest.raises(EmbeddingError) as exc_info:
            _pipeline(store, EmbeddingService(backend=backend)).ingest_text("doc", "text")

        assert exc_info.value.chunk_index == 0

    def test_parallel_embedding_preserves_order(self, store, embedding_service, embedder):
        words = ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel"]
        text = " ".join(w * 3 for w in words)

        _pipeline(store, embedding_service, chunk_size=20, overlap=5, max_workers=4).ingest_text("doc", text)

        chunks = store.scan("doc")
        assert [c.index for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            assert chunk.embedding == embedder.embed(chunk.content)

    def test_storage_failure_propagates(self, embedding_service):
        from analyst.common.document_store import DocumentStore, InMemoryBackend

        class FailingBackend(InMemoryBackend):
            def add_many(self, collection, records):
                raise StorageError("write rejected")

        store = DocumentStore(FailingBackend())
        with pytest.raises(StorageError, match="write rejected"):
            _pipeline(store, embedding_service).ingest_text("doc", "text")
        assert store.scan("doc") == []

    def test_failed_write_leaves_nothing_searchable(self, tmp_path, embedding_service):
        from analyst.common.document_store import DocumentStore, JsonFileBackend
        from analyst.retriever.searcher import Retriever

        blocker = tmp_path / "blocker"
        blocker.write_text("a file where the store directory should be")
        store = DocumentStore(JsonFileBackend(blocker / "store"))

        with pytest.raises(StorageError):
            _pipeline(store, embedding_service).ingest_text("doc1", "market " * 400)

        assert store.scan("doc1") == []
        assert Retriever(store, None, mode="keyword").search("market", "doc1") == []
        assert Retriever(store, embedding_service, mode="vector").search("market", "doc1") == []

    def test_one_file_write_per_document(self, tmp_path, embedding_service):
        from analyst.common.document_store import DocumentStore, JsonFileBackend

        class CountingBackend(JsonFileBackend):
            saves = 0

            def _save(self, collection):
                CountingBackend.saves += 1
                super()._save(collection)

        store = DocumentStore(CountingBackend(tmp_path))
        result = _pipeline(store, embedding_service).ingest_text("doc1", "market " * 400)

        assert result.chunk_count == 4
        assert CountingBackend.saves == 1
        assert len(DocumentStore(JsonFileBackend(tmp_path)).scan("doc1")) == 4

    @pytest.mark.parametrize("name,text", [("", "text"), ("doc", ""), ("doc", "   ")])
    def test_rejects_missing_input(self, store, embedding_service, name, text):
        with pytest.raises(ValueError):
            _pipeline(store, embedding_service).ingest_text(name, text)

    def test_result_to_dict(self, store, embedding_service):
        data = _pipeline(store, embedding_service).ingest_text("doc", "short").to_dict()

        assert data["documentName"] == "doc"
        assert data["chunks"] == 1
        assert data["embedded"] is True
        assert "pageCount" not in data


class TestIngestPdf:
    @staticmethod
    def _write_pdf(path, pages):
        doc = fitz.open()
        for text in pages:
            doc.new_page().insert_text((72, 72), text)
        doc.save(str(path))
        doc.close()

    @pytest.mark.asyncio
    async def test_ingests_pdf_with_metadata(self, tmp_path, store, embedding_service):
        path = tmp_path / "acme-q3.pdf"
        self._write_pdf(path, ["Acme revenue grew 12%", "Competitors: Globex"])
        progress = []

        result = await _pipeline(store, embedding_service).ingest_pdf(str(path), on_progress=progress.append)

        assert result.document_name == "acme-q3.pdf"
        assert result.page_count == 2
        assert result.stats.has_percentages
        assert progress[-1].percentage == 100

        chunk = store.scan("acme-q3.pdf")[0]
        assert "Acme revenue grew 12%" in chunk.content
        assert chunk.metadata["fileName"] == "acme-q3.pdf"
        assert chunk.metadata["pageCount"] == 2
        assert "wordCount" in chunk.metadata["stats"]

    @pytest.mark.asyncio
    async def test_explicit_name_and_extra_metadata(self, tmp_path, store, embedding_service):
        path = tmp_path / "upload.pdf"
        self._write_pdf(path, ["Some market text"])

        await _pipeline(store, embedding_service).ingest_pdf(str(path), "Acme", {"owner": "analyst"})

        chunk = store.scan("Acme")[0]
        assert chunk.metadata["owner"] == "analyst"
        assert chunk.metadata["fileName"] == "upload.pdf"

    @pytest.mark.asyncio
    async def test_bytes_need_a_name(self, store, embedding_service):
        with pytest.raises(ValueError):
            await _pipeline(store, embedding_service).ingest_pdf(b"%PDF-1.7")

    @pytest.mark.asyncio
    async def test_extraction_failure_stores_nothing(self, store, embedding_service):
        with pytest.raises(ExtractionError):
            await _pipeline(store, embedding_service).ingest_pdf(b"not a pdf", "broken")
        assert store.scan("broken") == []
