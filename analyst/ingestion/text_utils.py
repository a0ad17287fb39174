"""Cleanup and quick statistics for text pulled out of PDFs."""

import math
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict

_WHITESPACE = re.compile(r"\s+")
_PAGE_MARKER = re.compile(r"Page \d+ of \d+", re.IGNORECASE)
_GLUED_WORDS = re.compile(r"([a-z])([A-Z])")
_CURRENCY = re.compile(r"[$€£¥]")

WORDS_PER_MINUTE = 200
SECONDS_PER_MB = 2


def clean_extracted_text(text: str) -> str:
    """
    Normalize extractor output: collapse whitespace runs to one space,
    drop "Page N of M" markers and split words glued at a lower/upper
    case boundary ("marketShare" -> "market Share").
    """
    text = _WHITESPACE.sub(" ", text)
    text = _PAGE_MARKER.sub("", text)
    text = _GLUED_WORDS.sub(r"\1 \2", text)
    # Marker removal can leave double spaces behind
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


@dataclass
class QuickStats:
    word_count: int
    character_count: int
    estimated_reading_time: int  # minutes
    has_numbers: bool
    has_currency: bool
    has_percentages: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wordCount": self.word_count,
            "characterCount": self.character_count,
            "estimatedReadingTime": self.estimated_reading_time,
            "hasNumbers": self.has_numbers,
            "hasCurrency": self.has_currency,
            "hasPercentages": self.has_percentages,
        }


def extract_quick_stats(text: str) -> QuickStats:
    """Cheap signals about a document before any model sees it."""
    word_count = len(text.split())
    return QuickStats(
        word_count=word_count,
        character_count=len(text),
        estimated_reading_time=math.ceil(word_count / WORDS_PER_MINUTE),
        has_numbers=any(ch.isdigit() for ch in text),
        has_currency=bool(_CURRENCY.search(text)),
        has_percentages="%" in text,
    )


@dataclass
class ProcessingEstimate:
    estimated_seconds: int
    estimated_minutes: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def estimate_processing_time(size_bytes: int) -> ProcessingEstimate:
    """Rough extraction time for a file, about two seconds per megabyte."""
    seconds = math.ceil(size_bytes / 1024 / 1024 * SECONDS_PER_MB)
    minutes = math.ceil(seconds / 60)

    if seconds < 10:
        message = "This should only take a few seconds"
    elif seconds < 60:
        message = f"This should take about {seconds} seconds"
    else:
        message = f"This may take {minutes} minute{'s' if minutes > 1 else ''}"

    return ProcessingEstimate(estimated_seconds=seconds, estimated_minutes=minutes, message=message)
