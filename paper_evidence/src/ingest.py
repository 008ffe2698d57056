"""
Ingestion orchestrators.

Inline (no index write):
    ingest_arxiv_inline   metadata + ar5iv HTML → normalized sections/figures

Write path:
1. Resolve the arXiv id
2. Fetch metadata and normalize the source concurrently
   (GROBID TEI when configured → ar5iv/arXiv HTML → PDF page text)
3. Chunk sections
4. Link figures/citations to the chunks that reference them
5. Upsert chunks, figures and citations

Uploaded PDFs go through ingest_extraction / ingest_pdf_file, which start at
page text.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from ..config.settings import Settings, get_settings
from .arxiv_ids import parse_arxiv_target
from .chunk_text import Chunker
from .errors import EmptyDocumentError, FetchError, FetchTimeoutError
from .extract_pdf import PdfAnalysis, extract_pdf
from .fetchers import ArxivClient
from .index_manager import IndexManager, attach_chunk_references
from .normalize_html import parse_ar5iv_html
from .normalize_pages import parse_page_texts
from .normalize_tei import parse_grobid_tei
from .schemas.paper import InlineArxivIngestResult, NormalizedDocument, Paper, PdfExtraction

logger = logging.getLogger(__name__)

PdfExtractor = Callable[[Union[str, Path, bytes]], tuple[PdfExtraction, PdfAnalysis]]


class IngestResult:
    """Result of an ingest run."""

    def __init__(
        self,
        paper_id: str,
        source: str,
        num_sections: int,
        num_chunks: int,
        num_figures: int,
        num_citations: int,
        paper: Optional[Paper] = None,
    ):
        self.paper_id = paper_id
        self.source = source
        self.num_sections = num_sections
        self.num_chunks = num_chunks
        self.num_figures = num_figures
        self.num_citations = num_citations
        self.paper = paper

    def __repr__(self) -> str:
        return (
            f"IngestResult(paper_id={self.paper_id!r}, "
            f"source={self.source!r}, "
            f"sections={self.num_sections}, "
            f"chunks={self.num_chunks}, "
            f"figures={self.num_figures}, "
            f"citations={self.num_citations})"
        )


async def ingest_arxiv_inline(target: str, client: ArxivClient) -> InlineArxivIngestResult:
    """
    Fetch and normalize an arXiv paper without writing to the index.

    Raises:
        ValueError: If the target holds no arXiv id
        FetchError: If metadata or every HTML source fails
        EmptyDocumentError: If the HTML has no body sections
    """
    arxiv_id = parse_arxiv_target(target)
    metadata, (html, html_url) = await asyncio.gather(
        client.fetch_metadata(arxiv_id),
        client.fetch_html(arxiv_id),
    )
    document = parse_ar5iv_html(html, base_url=html_url)

    return InlineArxivIngestResult(
        arxiv_id=arxiv_id,
        title=metadata.title,
        authors=metadata.authors,
        published_at=metadata.published_at,
        categories=metadata.categories,
        abstract=metadata.abstract,
        sections=document.sections,
        figures=document.figures,
        citations=document.citations,
        source_url=html_url,
    )


async def run_pdf_extraction(
    pdf: Union[str, Path, bytes],
    timeout: float,
    extractor: PdfExtractor = extract_pdf,
) -> tuple[PdfExtraction, PdfAnalysis]:
    """Run a (blocking) PDF extractor in a worker thread, bounded by timeout seconds."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(extractor, pdf), timeout)
    except asyncio.TimeoutError as exc:
        raise FetchTimeoutError(f"PDF extraction timed out after {timeout}s") from exc


async def normalize_arxiv_source(
    arxiv_id: str,
    client: ArxivClient,
    settings: Settings,
    extractor: PdfExtractor = extract_pdf,
    pdf_url: Optional[str] = None,
) -> tuple[NormalizedDocument, str]:
    """
    Normalize the best available source for an arXiv paper.

    Returns:
        (document, source) where source is "tei", "html" or "pdf"

    Raises:
        FetchError / EmptyDocumentError: From the last source tried
    """
    pdf_bytes: Optional[bytes] = None

    if settings.is_grobid_configured():
        try:
            pdf_bytes = await client.fetch_pdf(arxiv_id, pdf_url)
            tei = await client.fetch_grobid_tei(pdf_bytes)
            return parse_grobid_tei(tei), "tei"
        except (FetchError, EmptyDocumentError) as exc:
            logger.warning(f"GROBID path failed for {arxiv_id}, trying HTML: {exc}")

    try:
        html, html_url = await client.fetch_html(arxiv_id)
        return parse_ar5iv_html(html, base_url=html_url), "html"
    except (FetchError, EmptyDocumentError) as exc:
        if not settings.enable_pdf_fallback:
            raise
        logger.warning(f"HTML path failed for {arxiv_id}, falling back to PDF text: {exc}")

    if pdf_bytes is None:
        pdf_bytes = await client.fetch_pdf(arxiv_id, pdf_url)
    extraction, analysis = await run_pdf_extraction(
        pdf_bytes, settings.timeout_seconds(settings.ocr_timeout_ms), extractor
    )
    if analysis.is_likely_scanned:
        logger.warning(f"{arxiv_id} looks scanned; page text may be sparse without OCR")
    return parse_page_texts(extraction), "pdf"


async def write_document(
    paper_id: str,
    document: NormalizedDocument,
    index_manager: IndexManager,
    chunker: Chunker,
    source: str,
    paper: Optional[Paper] = None,
) -> IngestResult:
    """Chunk a normalized document and upsert everything for the paper."""
    chunks = chunker.chunk(paper_id, document.sections, document.figures)
    figures, citations = attach_chunk_references(
        paper_id, chunks, document.figures, document.citations
    )

    await index_manager.upsert_chunks(paper_id, chunks)
    await index_manager.upsert_figures(paper_id, figures)
    await index_manager.upsert_citations(paper_id, citations)

    result = IngestResult(
        paper_id=paper_id,
        source=source,
        num_sections=len(document.sections),
        num_chunks=len(chunks),
        num_figures=len(figures),
        num_citations=len(citations),
        paper=paper,
    )
    logger.info(f"Ingested {result}")
    return result


def _chunker(settings: Settings) -> Chunker:
    return Chunker(
        max_chunk_chars=settings.max_chunk_chars,
        target_chunk_chars=settings.target_chunk_chars,
    )


async def ingest_arxiv_paper(
    target: str,
    client: ArxivClient,
    index_manager: IndexManager,
    settings: Optional[Settings] = None,
    extractor: PdfExtractor = extract_pdf,
) -> IngestResult:
    """
    Full arXiv ingest into the index.

    Args:
        target: arXiv id, URL or DOI
        client: Source fetcher
        index_manager: Index write path
        settings: Settings; defaults to get_settings()
        extractor: PDF text extractor for the fallback path

    Returns:
        IngestResult
    """
    settings = settings or get_settings()
    arxiv_id = parse_arxiv_target(target)

    await index_manager.ensure_schema()
    metadata, (document, source) = await asyncio.gather(
        client.fetch_metadata(arxiv_id),
        normalize_arxiv_source(arxiv_id, client, settings, extractor),
    )
    return await write_document(
        arxiv_id, document, index_manager, _chunker(settings), source, paper=metadata
    )


async def ingest_extraction(
    paper_id: str,
    extraction: PdfExtraction,
    index_manager: IndexManager,
    settings: Optional[Settings] = None,
) -> IngestResult:
    """
    Ingest page text produced by an external PDF/OCR engine.

    Raises:
        EmptyDocumentError: If no page has text
    """
    settings = settings or get_settings()
    document = parse_page_texts(extraction)
    await index_manager.ensure_schema()
    return await write_document(
        paper_id, document, index_manager, _chunker(settings), extraction.source
    )


async def ingest_pdf_file(
    paper_id: str,
    pdf_path: Path,
    index_manager: IndexManager,
    settings: Optional[Settings] = None,
    extractor: PdfExtractor = extract_pdf,
) -> IngestResult:
    """Extract an uploaded PDF with pdfplumber and ingest its page text."""
    settings = settings or get_settings()
    pdf_path = Path(pdf_path)
    if not pdf_path.exists():
        raise FileNotFoundError(f"PDF not found: {pdf_path}")

    extraction, analysis = await run_pdf_extraction(
        str(pdf_path), settings.timeout_seconds(settings.ocr_timeout_ms), extractor
    )
    if analysis.is_likely_scanned:
        logger.warning(f"{pdf_path.name} looks scanned; page text may be sparse without OCR")
    return await ingest_extraction(paper_id, extraction, index_manager, settings)
