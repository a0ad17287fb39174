"""
Extractor

Pulls text out of paginated documents (PDF via PyMuPDF) page by page.

Two modes:
- extract(): every page dispatched at once, one result at the end
- extract_windowed(): pages processed in fixed-size windows so only one
  window's text is in flight at a time. Large files get a smaller window.

Pages inside a window run concurrently, so progress callbacks can arrive
out of page order. The reported percentage counts completed pages and is
therefore non-decreasing and ends at exactly 100.
"""

import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Union, runtime_checkable

import fitz  # PyMuPDF
import httpx

from ..common.config import ExtractionConfig
from ..common.errors import ExtractionCancelled, ExtractionError, NoExtractableTextError
from .text_utils import estimate_processing_time

logger = logging.getLogger("analyst.ingestion.extractor")

PAGE_SEPARATOR = "\n\n"
MB = 1024 * 1024


@dataclass
class ExtractionProgress:
    current_page: int
    total_pages: int
    percentage: int


@dataclass
class ExtractionResult:
    text: str
    page_count: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    processing_time: float = 0.0  # seconds


@runtime_checkable
class PageSource(Protocol):
    """Paginated document reader. Pages are numbered from 1."""

    @property
    def page_count(self) -> int:
        ...

    @property
    def size_bytes(self) -> int:
        ...

    def page_text(self, page_number: int) -> str:
        ...

    def metadata(self) -> Dict[str, Any]:
        ...

    def close(self) -> None:
        ...


class PdfPageSource:
    """PyMuPDF-backed page source over an in-memory PDF."""

    def __init__(self, data: bytes, name: str = "document.pdf"):
        if not data:
            raise ExtractionError("Empty source: no bytes to parse")

        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"Not a parseable PDF: {e}") from e

        if doc.needs_pass:
            doc.close()
            raise ExtractionError("PDF is encrypted")

        self.name = name
        self._doc = doc
        self._size = len(data)
        # A fitz.Document must not be used from two threads at once
        self._lock = threading.Lock()

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "PdfPageSource":
        path = Path(path).expanduser()
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ExtractionError(f"Cannot read {path}: {e}") from e
        return cls(data, name=path.name)

    @classmethod
    async def from_url(cls, url: str, timeout: float = 30.0) -> "PdfPageSource":
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExtractionError(f"Failed to fetch {url}: {e}") from e

        name = url.rstrip("/").rsplit("/", 1)[-1] or "document.pdf"
        return cls(response.content, name=name)

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    @property
    def size_bytes(self) -> int:
        return self._size

    def page_text(self, page_number: int) -> str:
        with self._lock:
            page = self._doc.load_page(page_number - 1)
            return page.get_text("text")

    def metadata(self) -> Dict[str, Any]:
        return {k: v for k, v in (self._doc.metadata or {}).items() if v}

    def close(self) -> None:
        # Waits for any page read still running in a worker thread
        with self._lock:
            self._doc.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


async def open_source(source: Union[bytes, str, Path], fetch_timeout: float = 30.0) -> PdfPageSource:
    """Open raw bytes, a filesystem path or an http(s) URL as a PDF page source."""
    if isinstance(source, (bytes, bytearray)):
        return PdfPageSource(bytes(source))
    if isinstance(source, str) and source.startswith(("http://", "https://")):
        return await PdfPageSource.from_url(source, timeout=fetch_timeout)
    return PdfPageSource.from_path(source)


def _percentage(completed: int, total: int) -> int:
    # Integer round-half-up of completed / total * 100
    return (completed * 200 + total) // (2 * total)


class DocumentExtractor:
    """
    Paginated text extraction with progress reporting.

    Any page failure aborts the whole extraction; there is no partial result.
    """

    def __init__(
        self,
        window_size: int = 10,
        large_window_size: int = 5,
        large_file_threshold_mb: float = 20.0,
        max_file_size_mb: float = 50.0,
        fetch_timeout: float = 30.0,
    ):
        if window_size <= 0 or large_window_size <= 0:
            raise ValueError("window sizes must be positive")
        self.window_size = window_size
        self.large_window_size = large_window_size
        self.large_file_threshold_mb = large_file_threshold_mb
        self.max_file_size_mb = max_file_size_mb
        self.fetch_timeout = fetch_timeout

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "DocumentExtractor":
        return cls(
            window_size=config.window_size,
            large_window_size=config.large_window_size,
            large_file_threshold_mb=config.large_file_threshold_mb,
            max_file_size_mb=config.max_file_size_mb,
            fetch_timeout=config.fetch_timeout,
        )

    def window_for(self, size_bytes: int) -> int:
        """Pages per window for a source of the given size."""
        if size_bytes > self.large_file_threshold_mb * MB:
            return self.large_window_size
        return self.window_size

    async def extract(
        self,
        source,
        on_progress: Optional[Callable[[ExtractionProgress], None]] = None,
    ) -> ExtractionResult:
        """Extract every page concurrently and return the joined text."""
        async with self._opened(source) as pages:
            return await self._run(pages, pages.page_count, on_progress, None)

    async def extract_windowed(
        self,
        source,
        on_progress: Optional[Callable[[ExtractionProgress], None]] = None,
        cancelled: Optional[Callable[[], bool]] = None,
    ) -> ExtractionResult:
        """
        Extract in bounded page windows.

        Args:
            source: PageSource, PDF bytes, a path, or an http(s) URL
            on_progress: Called after every page
            cancelled: Polled before each window; True stops extraction
                with ExtractionCancelled. Pages already dispatched finish.

        Raises:
            ExtractionError: oversize, unparseable or empty source, or a
                page that fails to decode
            NoExtractableTextError: every page came back blank
        """
        async with self._opened(source) as pages:
            size = pages.size_bytes
            if size > self.max_file_size_mb * MB:
                raise ExtractionError(
                    f"File size ({size / MB:.2f}MB) exceeds maximum allowed size ({self.max_file_size_mb}MB)"
                )

            window = self.window_for(size)
            logger.info(
                "Processing %d-page document (%.2fMB) in windows of %d pages. %s",
                pages.page_count, size / MB, window, estimate_processing_time(size).message,
            )
            return await self._run(pages, window, on_progress, cancelled)

    @asynccontextmanager
    async def _opened(self, source):
        # PageSources belong to the caller; anything we open here we close
        if isinstance(source, PageSource):
            yield source
            return
        pages = await open_source(source, self.fetch_timeout)
        try:
            yield pages
        finally:
            pages.close()

    async def _run(
        self,
        pages: PageSource,
        window: int,
        on_progress: Optional[Callable[[ExtractionProgress], None]],
        cancelled: Optional[Callable[[], bool]],
    ) -> ExtractionResult:
        started = time.monotonic()
        total = pages.page_count
        if total <= 0:
            raise ExtractionError("Empty document: 0 pages found")
        window = max(1, window)

        completed = 0
        last_decile = 0

        def page_done(page_number: int) -> None:
            nonlocal completed, last_decile
            completed += 1
            pct = _percentage(completed, total)
            if on_progress:
                on_progress(ExtractionProgress(current_page=page_number, total_pages=total, percentage=pct))
            if pct // 10 > last_decile:
                last_decile = pct // 10
                logger.info("Extraction progress: %d%%", pct)

        # Set on the first page failure; queued pages then skip the read and
        # late finishers stop reporting progress
        failed = threading.Event()

        def read_in_thread(page_number: int) -> Optional[str]:
            if failed.is_set():
                return None
            return pages.page_text(page_number)

        async def read_page(page_number: int) -> str:
            try:
                text = await asyncio.to_thread(read_in_thread, page_number)
            except ExtractionError:
                failed.set()
                raise
            except Exception as e:
                failed.set()
                raise ExtractionError(f"Failed to decode page: {e}", page=page_number) from e
            if not failed.is_set():
                page_done(page_number)
            return text or ""

        window_texts = []
        for first in range(1, total + 1, window):
            if cancelled is not None and cancelled():
                raise ExtractionCancelled(f"Extraction cancelled after {completed} of {total} pages")
            last = min(first + window - 1, total)
            # Every page read in the window settles before an error propagates,
            # so the source is never closed under a running worker
            outcomes = await asyncio.gather(
                *(read_page(n) for n in range(first, last + 1)),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome
            window_texts.append(PAGE_SEPARATOR.join(outcomes))

        text = PAGE_SEPARATOR.join(window_texts).strip()
        if not text:
            raise NoExtractableTextError(
                f"No extractable text in {total} page(s); the document may contain only images"
            )

        elapsed = time.monotonic() - started
        logger.info("Extracted %d characters from %d pages in %.2fs", len(text), total, elapsed)

        return ExtractionResult(
            text=text,
            page_count=total,
            metadata=pages.metadata(),
            processing_time=elapsed,
        )
