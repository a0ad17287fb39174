"""
Ingestion - Document Extraction, Chunking and Embedding

Key Components:
- DocumentExtractor: Windowed page-by-page text extraction from PDFs
- chunk_text: Overlapping fixed-size character windows
- IngestionPipeline: Embeds chunks and writes them to the document store

Pipeline:
1. Extract text in bounded page windows (PDF sources only)
2. Clean the text and compute quick statistics
3. Split into overlapping chunks
4. Embed every chunk, then persist them in index order
"""

from .chunker import chunk_text
from .extractor import (
    DocumentExtractor,
    ExtractionProgress,
    ExtractionResult,
    PageSource,
    PdfPageSource,
    open_source,
)
from .pipeline import IngestionPipeline, IngestionResult
from .text_utils import clean_extracted_text, estimate_processing_time, extract_quick_stats

__all__ = [
    "chunk_text",
    "DocumentExtractor",
    "ExtractionProgress",
    "ExtractionResult",
    "PageSource",
    "PdfPageSource",
    "open_source",
    "IngestionPipeline",
    "IngestionResult",
    "clean_extracted_text",
    "estimate_processing_time",
    "extract_quick_stats",
]
