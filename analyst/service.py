"""
Analyst Service

Builds every pipeline component from one AnalystConfig and exposes the
operations the tool surface calls. Components receive their configuration
explicitly; nothing here reads process-wide state after construction.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .common.config import AnalystConfig
from .common.document_store import DocumentStore
from .common.embedding_service import EmbeddingService
from .common.llm_client import LLMClient, TextGenerator
from .ingestion.extractor import ExtractionProgress
from .ingestion.pipeline import IngestionPipeline, IngestionResult
from .retriever.chat_log import ChatLog
from .retriever.searcher import Retriever
from .retriever.synthesizer import AnalystAnswer, Synthesizer

logger = logging.getLogger("analyst.service")


def embedding_api_key(config: AnalystConfig) -> Optional[str]:
    """Embedding providers share credentials with the matching LLM provider."""
    keys = {
        "google": config.llm.google_api_key,
        "openai": config.llm.openai_api_key,
    }
    return keys.get((config.embedding.provider or "").lower()) or None


class AnalystService:
    """Ingestion, question answering, analysis and report archive for market documents."""

    def __init__(
        self,
        store: DocumentStore,
        pipeline: IngestionPipeline,
        retriever: Retriever,
        synthesizer: Synthesizer,
        chat_log: ChatLog,
    ):
        self.store = store
        self.pipeline = pipeline
        self.retriever = retriever
        self.synthesizer = synthesizer
        self.chat_log = chat_log

    @classmethod
    def from_config(
        cls,
        config: AnalystConfig,
        llm: Optional[TextGenerator] = None,
        embedding_service: Optional[EmbeddingService] = None,
        store: Optional[DocumentStore] = None,
    ) -> "AnalystService":
        """
        Wire all components. Any of ``llm``, ``embedding_service`` or
        ``store`` may be injected (tests pass fakes); the rest are built
        from ``config``.
        """
        store = store or DocumentStore.from_config(config.store)
        if embedding_service is None:
            embedding_service = EmbeddingService.from_config(config.embedding, embedding_api_key(config))
        if llm is None:
            llm = LLMClient.from_config(config.llm)

        pipeline = IngestionPipeline.from_config(config, store, embedding_service)
        retriever = Retriever.from_config(config.retriever, store, embedding_service)
        synthesizer = Synthesizer.from_config(config.retriever, retriever, llm)

        logger.info(
            "Analyst service ready (store=%s, retrieval=%s, llm=%s)",
            config.store.backend, config.retriever.mode, config.llm.provider,
        )
        return cls(store, pipeline, retriever, synthesizer, ChatLog(store))

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_text(self, document_name: str, text: str, metadata: Optional[Dict[str, Any]] = None) -> IngestionResult:
        return self.pipeline.ingest_text(document_name, text, metadata)

    async def ingest_pdf(
        self,
        source,
        document_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        on_progress: Optional[Callable[[ExtractionProgress], None]] = None,
    ) -> IngestionResult:
        return await self.pipeline.ingest_pdf(source, document_name, metadata, on_progress=on_progress)

    # ------------------------------------------------------------------
    # Questions and analysis
    # ------------------------------------------------------------------

    def ask(self, question: str, document_name: str) -> AnalystAnswer:
        """Answer a question and record both turns in the document's chat log."""
        if not question or not question.strip():
            raise ValueError("question is required")
        if not document_name:
            raise ValueError("document_name is required")

        self.chat_log.append_user(document_name, question)
        answer = self.synthesizer.answer(question, document_name)
        self.chat_log.append_assistant(document_name, answer.answer, answer.sources)
        return answer

    def findings(self, document_name: str) -> Dict[str, Any]:
        return self.synthesizer.findings(document_name).to_dict()

    def extract_structured(self, document_name: str) -> Dict[str, Any]:
        return self.synthesizer.extract_structured(document_name).to_dict()

    def analyze_document(self, text: str) -> Dict[str, Any]:
        return self.synthesizer.analyze_document(text).to_dict()

    def chat_history(self, document_name: str) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.chat_log.history(document_name)]

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def create_report(self, document_name: str, text: str) -> Dict[str, Any]:
        """Extract a report from raw text and archive it. Returns the stored record."""
        extraction = self.synthesizer.extract_report(text)
        report_id = self.store.add_report({
            "documentName": document_name,
            "originalText": text,
            **extraction.to_dict(),
        })
        logger.info("Stored report %s for %s", report_id, document_name)
        return self.store.get_report(report_id)

    def list_reports(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self.store.list_reports(limit)

    def get_report(self, report_id: str) -> Dict[str, Any]:
        return self.store.get_report(report_id)
