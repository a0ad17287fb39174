"""
Tests for the Extractor

Windowed extraction over a fake page source (progress, windows,
cancellation, failures) and real PDFs built with PyMuPDF.
"""

import threading
import time
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import fitz
import httpx
import pytest

from analyst.common.errors import ExtractionCancelled, ExtractionError, NoExtractableTextError

MB = 1024 * 1024


class FakeSource:
    """In-memory page source; records which pages were read."""

    def __init__(
        self,
        pages: List[str],
        size_bytes: int = 1000,
        fail_on: Optional[int] = None,
        delays: Optional[Dict[int, float]] = None,
    ):
        self._pages = pages
        self._size = size_bytes
        self._fail_on = fail_on
        self._delays = delays or {}
        self._lock = threading.Lock()
        self.read: List[int] = []
        self.closed = False
        self.in_flight = 0
        self.in_flight_at_close: Optional[int] = None

    @property
    def page_count(self) -> int:
        return len(self._pages)

    @property
    def size_bytes(self) -> int:
        return self._size

    def page_text(self, page_number: int) -> str:
        with self._lock:
            self.read.append(page_number)
            self.in_flight += 1
        try:
            time.sleep(self._delays.get(page_number, 0))
            if page_number == self._fail_on:
                raise RuntimeError("broken content stream")
            return self._pages[page_number - 1]
        finally:
            with self._lock:
                self.in_flight -= 1

    def metadata(self) -> Dict[str, Any]:
        return {"title": "Fake"}

    def close(self) -> None:
        with self._lock:
            self.in_flight_at_close = self.in_flight
        self.closed = True


def _pdf_bytes(pages: List[str], title: str = "") -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    if title:
        doc.set_metadata({"title": title})
    data = doc.tobytes()
    doc.close()
    return data


class TestWindowedExtraction:
    @pytest.mark.asyncio
    async def test_progress_monotonic_and_ends_at_100(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource([f"page {i}" for i in range(1, 26)])
        events = []

        result = await DocumentExtractor(window_size=10).extract_windowed(source, on_progress=events.append)

        percentages = [e.percentage for e in events]
        assert len(events) == 25
        assert percentages == sorted(percentages)
        assert percentages[-1] == 100
        assert all(e.total_pages == 25 for e in events)
        assert sorted(e.current_page for e in events) == list(range(1, 26))
        assert result.page_count == 25

    @pytest.mark.asyncio
    async def test_text_joined_in_page_order(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["one", "two", "three"])

        result = await DocumentExtractor(window_size=2).extract_windowed(source)

        assert result.text == "one\n\ntwo\n\nthree"
        assert result.metadata == {"title": "Fake"}
        assert result.processing_time >= 0

    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_window(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource([f"p{i}" for i in range(25)])

        with pytest.raises(ExtractionCancelled, match="10 of 25"):
            await DocumentExtractor(window_size=10).extract_windowed(
                source, cancelled=lambda: len(source.read) >= 10
            )

        assert sorted(source.read) == list(range(1, 11))

    @pytest.mark.asyncio
    async def test_large_files_use_small_window(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource([f"p{i}" for i in range(12)], size_bytes=25 * MB)

        with pytest.raises(ExtractionCancelled):
            await DocumentExtractor().extract_windowed(source, cancelled=lambda: len(source.read) > 0)

        assert len(source.read) == 5

    def test_window_for(self):
        from analyst.ingestion.extractor import DocumentExtractor
        extractor = DocumentExtractor(window_size=10, large_window_size=5, large_file_threshold_mb=20)
        assert extractor.window_for(5 * MB) == 10
        assert extractor.window_for(20 * MB) == 10
        assert extractor.window_for(20 * MB + 1) == 5

    @pytest.mark.asyncio
    async def test_oversize_rejected(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["p"], size_bytes=60 * MB)

        with pytest.raises(ExtractionError, match="exceeds maximum allowed size"):
            await DocumentExtractor(max_file_size_mb=50).extract_windowed(source)
        assert source.read == []

    @pytest.mark.asyncio
    async def test_page_failure_aborts(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["a", "b", "c", "d"], fail_on=3)

        with pytest.raises(ExtractionError) as exc_info:
            await DocumentExtractor(window_size=2).extract_windowed(source)

        assert exc_info.value.page == 3
        assert "broken content stream" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_page_failure_waits_for_window_before_closing(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource([f"p{i}" for i in range(1, 11)], fail_on=3, delays={5: 0.2})
        events = []

        with patch("analyst.ingestion.extractor.open_source", AsyncMock(return_value=source)):
            with pytest.raises(ExtractionError) as exc_info:
                await DocumentExtractor(window_size=10).extract_windowed(b"%PDF", on_progress=events.append)

        assert exc_info.value.page == 3
        assert source.closed
        assert source.in_flight_at_close == 0
        assert 5 not in [e.current_page for e in events]

    @pytest.mark.asyncio
    async def test_opened_source_closed_after_success(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["one", "two"])

        with patch("analyst.ingestion.extractor.open_source", AsyncMock(return_value=source)):
            result = await DocumentExtractor().extract_windowed("report.pdf")

        assert result.text == "one\n\ntwo"
        assert source.closed
        assert source.in_flight_at_close == 0

    @pytest.mark.asyncio
    async def test_blank_pages_are_no_extractable_text(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["", "   ", "\n"])

        with pytest.raises(NoExtractableTextError):
            await DocumentExtractor().extract_windowed(source)

    @pytest.mark.asyncio
    async def test_zero_pages_rejected(self):
        from analyst.ingestion.extractor import DocumentExtractor
        with pytest.raises(ExtractionError, match="0 pages"):
            await DocumentExtractor().extract_windowed(FakeSource([]))

    @pytest.mark.asyncio
    async def test_caller_source_not_closed(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["text"])
        await DocumentExtractor().extract_windowed(source)
        assert not source.closed


class TestWholeDocumentExtraction:
    @pytest.mark.asyncio
    async def test_extract_reads_every_page(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource([f"p{i}" for i in range(1, 8)])
        events = []

        result = await DocumentExtractor(window_size=2).extract(source, on_progress=events.append)

        assert result.text == "\n\n".join(f"p{i}" for i in range(1, 8))
        assert events[-1].percentage == 100

    @pytest.mark.asyncio
    async def test_extract_ignores_size_limit(self):
        from analyst.ingestion.extractor import DocumentExtractor
        source = FakeSource(["p"], size_bytes=60 * MB)
        result = await DocumentExtractor(max_file_size_mb=50).extract(source)
        assert result.text == "p"


class TestPdfPageSource:
    def test_reads_pages_and_metadata(self):
        from analyst.ingestion.extractor import PdfPageSource
        data = _pdf_bytes(["Market overview", "Competitor landscape"], title="Q3 Report")

        with PdfPageSource(data) as source:
            assert source.page_count == 2
            assert source.size_bytes == len(data)
            assert "Competitor landscape" in source.page_text(2)
            assert source.metadata()["title"] == "Q3 Report"

    def test_corrupt_bytes(self):
        from analyst.ingestion.extractor import PdfPageSource
        with pytest.raises(ExtractionError, match="Not a parseable PDF"):
            PdfPageSource(b"this is not a pdf at all")

    def test_empty_bytes(self):
        from analyst.ingestion.extractor import PdfPageSource
        with pytest.raises(ExtractionError, match="Empty source"):
            PdfPageSource(b"")

    def test_missing_path(self, tmp_path):
        from analyst.ingestion.extractor import PdfPageSource
        with pytest.raises(ExtractionError, match="Cannot read"):
            PdfPageSource.from_path(tmp_path / "missing.pdf")

    @pytest.mark.asyncio
    async def test_extract_real_pdf_from_path(self, tmp_path):
        from analyst.ingestion.extractor import DocumentExtractor
        path = tmp_path / "report.pdf"
        path.write_bytes(_pdf_bytes([f"Section {i} revenue" for i in range(1, 13)]))
        events = []

        result = await DocumentExtractor(window_size=5).extract_windowed(str(path), on_progress=events.append)

        assert result.page_count == 12
        assert "Section 1 revenue" in result.text
        assert "Section 12 revenue" in result.text
        assert result.text.index("Section 2 ") < result.text.index("Section 11 ")
        assert events[-1].percentage == 100

    @pytest.mark.asyncio
    async def test_close_after_extraction(self):
        from analyst.ingestion.extractor import DocumentExtractor, PdfPageSource
        source = PdfPageSource(_pdf_bytes(["Alpha", "Beta", "Gamma"]))

        result = await DocumentExtractor(window_size=2).extract_windowed(source)
        source.close()

        assert "Gamma" in result.text
        assert source._doc.is_closed

    @pytest.mark.asyncio
    async def test_image_only_pdf(self):
        from analyst.ingestion.extractor import DocumentExtractor
        with pytest.raises(NoExtractableTextError):
            await DocumentExtractor().extract_windowed(_pdf_bytes(["", ""]))


class TestOpenSource:
    @staticmethod
    def _patched_client(handler):
        real_client = httpx.AsyncClient

        def factory(*args, **kwargs):
            return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

        return patch("analyst.ingestion.extractor.httpx.AsyncClient", side_effect=factory)

    @pytest.mark.asyncio
    async def test_fetches_url(self):
        from analyst.ingestion.extractor import open_source
        data = _pdf_bytes(["Remote report"])

        with self._patched_client(lambda request: httpx.Response(200, content=data)):
            source = await open_source("https://example.com/files/remote.pdf")

        try:
            assert source.name == "remote.pdf"
            assert "Remote report" in source.page_text(1)
        finally:
            source.close()

    @pytest.mark.asyncio
    async def test_http_error(self):
        from analyst.ingestion.extractor import open_source

        with self._patched_client(lambda request: httpx.Response(404)):
            with pytest.raises(ExtractionError, match="Failed to fetch"):
                await open_source("https://example.com/missing.pdf")
