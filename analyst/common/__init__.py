"""
Market Analyst Common Module

Shared infrastructure for the ingestion and retrieval pipelines.
"""

from .config import AnalystConfig, load_config
from .document_store import DocumentStore, InMemoryBackend, JsonFileBackend, RecordBackend
from .embedding_service import EmbeddingService
from .llm_client import LLMClient, TextGenerator

__all__ = [
    "AnalystConfig",
    "load_config",
    "DocumentStore",
    "InMemoryBackend",
    "JsonFileBackend",
    "RecordBackend",
    "EmbeddingService",
    "LLMClient",
    "TextGenerator",
]
