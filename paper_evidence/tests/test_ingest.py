"""Tests for the ingest orchestrators with a fake source client."""

import asyncio
import time

import pytest

from ..config.settings import Settings
from ..src.errors import EmptyDocumentError, FetchFailedError, FetchTimeoutError
from ..src.extract_pdf import PdfAnalysis
from ..src.index.local import LocalBackend
from ..src.index.schema import CITATION_CLASS, FIGURE_CLASS
from ..src.index_manager import IndexManager
from ..src.ingest import (
    ingest_arxiv_inline,
    ingest_arxiv_paper,
    ingest_extraction,
    ingest_pdf_file,
    run_pdf_extraction,
)
from ..src.schemas.paper import PageText, Paper, PdfExtraction
from .test_normalize_html import AR5IV_HTML

ARXIV_ID = "1706.03762"


class FakeSourceClient:
    """Stands in for ArxivClient; HTML and GROBID can be made to fail."""

    def __init__(self, html_error=None, tei=None):
        self.html_error = html_error
        self.tei = tei
        self.calls: list[str] = []

    async def fetch_metadata(self, arxiv_id):
        self.calls.append("metadata")
        return Paper(paper_id=arxiv_id, arxiv_id=arxiv_id, title="Attention Is All You Need", authors=["Ashish Vaswani"])

    async def fetch_html(self, arxiv_id):
        self.calls.append("html")
        if self.html_error is not None:
            raise self.html_error
        return AR5IV_HTML, f"https://ar5iv.org/html/{arxiv_id}"

    async def fetch_pdf(self, arxiv_id, pdf_url=None):
        self.calls.append("pdf")
        return b"%PDF-1.5"

    async def fetch_grobid_tei(self, pdf_bytes):
        self.calls.append("grobid")
        if self.tei is None:
            raise FetchFailedError("GROBID unavailable", status_code=503)
        return self.tei


def fake_extractor(source):
    extraction = PdfExtraction(pages=[
        PageText(page_number=1, text="Attention Is All You Need\n\nWe propose the Transformer, see Figure 1."),
        PageText(page_number=2, text="Figure 1: The Transformer architecture.\n\nEncoder and decoder stacks."),
    ])
    analysis = PdfAnalysis(page_count=2, text_pages=2, avg_chars_per_page=60.0, image_pages=0)
    return extraction, analysis


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, grobid_url=None, **overrides)


class TestIngestInline:
    def test_inline_result(self):
        client = FakeSourceClient()
        result = asyncio.run(ingest_arxiv_inline("https://arxiv.org/abs/1706.03762v7", client))
        assert result.arxiv_id == ARXIV_ID
        assert result.title == "Attention Is All You Need"
        assert [s.section_id for s in result.sections] == ["abstract", "S1", "S1.SS1"]
        assert result.figures[0].image_url == "https://ar5iv.org/html/1706.03762/x1.png"
        assert result.source_url == "https://ar5iv.org/html/1706.03762"

    def test_bad_target(self):
        with pytest.raises(ValueError):
            asyncio.run(ingest_arxiv_inline("not an id", FakeSourceClient()))


class TestIngestArxivPaper:
    """Tests for the full write path."""

    def test_html_path(self, empty_backend):
        result = asyncio.run(ingest_arxiv_paper(
            ARXIV_ID, FakeSourceClient(), IndexManager(empty_backend), _settings(), fake_extractor
        ))
        assert result.source == "html"
        assert result.paper.title == "Attention Is All You Need"
        assert result.num_sections == 3
        assert result.num_chunks == 3
        assert result.num_figures == 1
        assert result.num_citations == 1

        citations = asyncio.run(IndexManager(empty_backend).fetch_citations(ARXIV_ID))
        assert len(citations[0].chunk_ids) == 1

    def test_reingest_is_idempotent(self, empty_backend):
        manager = IndexManager(empty_backend)
        for _ in range(2):
            asyncio.run(ingest_arxiv_paper(ARXIV_ID, FakeSourceClient(), manager, _settings(), fake_extractor))
        chunks = asyncio.run(manager.fetch_chunks(ARXIV_ID))
        assert len(chunks) == 3
        assert [c.position for c in chunks] == [0, 1, 2]

    def test_pdf_fallback(self, empty_backend):
        client = FakeSourceClient(html_error=FetchFailedError("not found", status_code=404))
        result = asyncio.run(ingest_arxiv_paper(
            ARXIV_ID, client, IndexManager(empty_backend), _settings(), fake_extractor
        ))
        assert result.source == "pdf"
        assert result.num_sections == 2
        assert result.num_figures == 1
        assert "pdf" in client.calls

        chunks = asyncio.run(IndexManager(empty_backend).fetch_chunks(ARXIV_ID))
        assert [c.page_number for c in chunks] == [1, 2]
        assert chunks[0].figure_ids == ["figure-1"]

    def test_fallback_disabled(self, empty_backend):
        client = FakeSourceClient(html_error=FetchFailedError("not found", status_code=404))
        with pytest.raises(FetchFailedError):
            asyncio.run(ingest_arxiv_paper(
                ARXIV_ID, client, IndexManager(empty_backend), _settings(enable_pdf_fallback=False), fake_extractor
            ))
        assert "pdf" not in client.calls

    def test_grobid_failure_falls_back_to_html(self, empty_backend):
        client = FakeSourceClient()
        result = asyncio.run(ingest_arxiv_paper(
            ARXIV_ID, client, IndexManager(empty_backend),
            Settings(_env_file=None, grobid_url="http://grobid:8070"), fake_extractor,
        ))
        assert result.source == "html"
        assert client.calls.index("grobid") < client.calls.index("html")


class TestIngestPages:
    def test_ingest_extraction(self, empty_backend):
        extraction, _ = fake_extractor(None)
        result = asyncio.run(ingest_extraction("upload-1", extraction, IndexManager(empty_backend), _settings()))
        assert result.source == "pdf"
        assert result.num_chunks == 2

        figures = asyncio.run(empty_backend.fetch_objects(FIGURE_CLASS, "upload-1"))
        assert figures[0].properties["figureId"] == "figure-1"
        assert asyncio.run(empty_backend.fetch_objects(CITATION_CLASS, "upload-1")) == []

    def test_empty_extraction(self, empty_backend):
        with pytest.raises(EmptyDocumentError):
            asyncio.run(ingest_extraction(
                "upload-1", PdfExtraction(pages=[]), IndexManager(empty_backend), _settings()
            ))

    def test_ingest_pdf_file(self, empty_backend, tmp_path):
        pdf_path = tmp_path / "paper.pdf"
        pdf_path.write_bytes(b"%PDF-1.5")
        result = asyncio.run(ingest_pdf_file(
            "upload-2", pdf_path, IndexManager(empty_backend), _settings(), fake_extractor
        ))
        assert result.num_sections == 2

    def test_missing_pdf_file(self, empty_backend, tmp_path):
        with pytest.raises(FileNotFoundError):
            asyncio.run(ingest_pdf_file(
                "upload-3", tmp_path / "missing.pdf", IndexManager(empty_backend), _settings(), fake_extractor
            ))

    def test_extraction_timeout(self):
        def slow_extractor(source):
            time.sleep(0.5)
            return fake_extractor(source)

        with pytest.raises(FetchTimeoutError):
            asyncio.run(run_pdf_extraction(b"%PDF", 0.05, slow_extractor))


class TestLocalPersistence:
    def test_records_survive_reload(self, embedder, tmp_path):
        backend = LocalBackend(embedder=embedder, persist_dir=tmp_path)
        asyncio.run(ingest_arxiv_paper(
            ARXIV_ID, FakeSourceClient(), IndexManager(backend), _settings(), fake_extractor
        ))
        reloaded = LocalBackend(embedder=embedder, persist_dir=tmp_path)
        chunks = asyncio.run(IndexManager(reloaded).fetch_chunks(ARXIV_ID))
        assert [c.chunk_id for c in chunks] == ["abstract-p1", "S1-p1", "S1.SS1-p1"]
