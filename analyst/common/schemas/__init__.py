"""
Market Analyst Schemas

Persisted records (chunks, chat messages) and the validated shapes of
generative model output.
"""

from .records import Chunk, ChatMessage, Role, utcnow, to_iso
from .market import (
    MarketFindings,
    StructuredData,
    SwotAnalysis,
    DocumentAnalysis,
    Figure,
    ReportExtraction,
)

__all__ = [
    "Chunk",
    "ChatMessage",
    "Role",
    "utcnow",
    "to_iso",
    "MarketFindings",
    "StructuredData",
    "SwotAnalysis",
    "DocumentAnalysis",
    "Figure",
    "ReportExtraction",
]
