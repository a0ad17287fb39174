import pytest

from analyst.tests.fakes import HashingEmbedder


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def embedding_service(embedder):
    from analyst.common.embedding_service import EmbeddingService
    return EmbeddingService(backend=embedder)


@pytest.fixture
def store():
    from analyst.common.document_store import DocumentStore, InMemoryBackend
    return DocumentStore(InMemoryBackend())
