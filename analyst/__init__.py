"""
Market Analyst

Document ingestion and retrieval-augmented analysis of market research.

Philosophy:
- Every answer is grounded in retrieved chunks, cited by number
- The model is never called without context
- Model output that should be JSON is parsed defensively, with typed fallbacks
- Providers are swappable: anything with embed(text) / generate(prompt)

Usage:
    from analyst.common import load_config, DocumentStore, EmbeddingService
    from analyst.ingestion import IngestionPipeline, DocumentExtractor
    from analyst.retriever import Retriever, Synthesizer, ChatLog
    from analyst.service import AnalystService
"""

__version__ = "0.1.0"
