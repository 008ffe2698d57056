"""
Evidence assembly.

Builds the EvidenceContext handed to answer and summary generators:
    hits             top hybrid hits for the question (or selected text)
    expanded_window  chunks on neighbouring pages, in reading order
    figures          figures referenced by hits/window, nearest to the top
                     hit's page first, capped
    citations        citations referenced by hits/window, most referenced
                     first, deduplicated; optionally enriched from arXiv

References that do not resolve to a stored figure or citation are dropped.
"""

import asyncio
import logging
from typing import Any, Optional, Protocol, Union

from ..config.settings import Settings, get_settings
from .errors import FetchError
from .index import create_backend
from .index.base import IndexBackend
from .index_manager import IndexManager
from .retrieval import HybridRetriever
from .schemas.evidence import EvidenceContext, SearchHit, Selection
from .schemas.paper import Citation, Figure, Paper, normalize_whitespace

logger = logging.getLogger(__name__)

DEFAULT_MAX_FIGURES = 6
DEFAULT_MAX_ENRICHED_CITATIONS = 4


class MetadataFetcher(Protocol):
    async def fetch_metadata(self, arxiv_id: str) -> Paper:
        ...


def parse_question_selection(raw: Any) -> Optional[Selection]:
    """
    Build a Selection from a loosely typed payload.

    Strings are trimmed, numeric-string pages are accepted, and a payload
    with no usable field gives None.
    """
    if isinstance(raw, Selection):
        return raw
    if not isinstance(raw, dict):
        return None

    text = raw.get("text")
    text = text.strip() or None if isinstance(text, str) else None

    section = raw.get("section")
    section = section.strip() or None if isinstance(section, str) else None

    page = raw.get("page")
    if isinstance(page, bool):
        page = None
    elif isinstance(page, float):
        page = int(page) if page.is_integer() else None
    elif isinstance(page, str):
        page = int(page.strip()) if page.strip().isdigit() else None
    elif not isinstance(page, int):
        page = None

    if text is None and section is None and page is None:
        return None
    return Selection(text=text, page=page, section=section)


def _published_year(paper: Paper) -> Optional[int]:
    year = (paper.published_at or "")[:4]
    return int(year) if year.isdigit() else None


def _referenced_ids(chunks: list[SearchHit], attr: str) -> tuple[list[str], dict[str, int]]:
    """Ids referenced by chunks in first-seen order, with reference counts."""
    order: list[str] = []
    counts: dict[str, int] = {}
    for chunk in chunks:
        for ref in getattr(chunk, attr):
            if ref not in counts:
                order.append(ref)
                counts[ref] = 0
            counts[ref] += 1
    return order, counts


def select_figures(
    figures: list[Figure],
    chunks: list[SearchHit],
    top_page: Optional[int],
    max_figures: int,
) -> list[Figure]:
    """Figures referenced by chunks, nearest to top_page first, capped."""
    by_id = {f.figure_id: f for f in figures}
    order, _ = _referenced_ids(chunks, "figure_ids")
    resolved = [(index, by_id[fid]) for index, fid in enumerate(order) if fid in by_id]

    def sort_key(item: tuple[int, Figure]) -> tuple[int, int, int]:
        index, figure = item
        if top_page is None or figure.page_number is None:
            return (1, 0, index)
        return (0, abs(figure.page_number - top_page), index)

    resolved.sort(key=sort_key)
    return [figure for _, figure in resolved[:max_figures]]


def select_citations(citations: list[Citation], chunks: list[SearchHit]) -> list[Citation]:
    """Citations referenced by chunks, most referenced first, deduplicated."""
    by_id: dict[str, Citation] = {}
    for citation in citations:
        by_id.setdefault(citation.citation_id, citation)
    order, counts = _referenced_ids(chunks, "citation_ids")
    ranked = sorted(
        (cid for cid in order if cid in by_id),
        key=lambda cid: (-counts[cid], order.index(cid)),
    )
    return [by_id[cid] for cid in ranked]


class EvidenceAssembler:
    """
    Assembles evidence contexts for questions and selections.

    Args:
        retriever: Hybrid retriever over the paper index
        index_manager: Reads stored figures and citations
        metadata_fetcher: Optional arXiv metadata source for citation enrichment
        max_figures: Cap on figures in a context
        max_enriched_citations: Cap on citations enriched per context
    """

    def __init__(
        self,
        retriever: HybridRetriever,
        index_manager: IndexManager,
        metadata_fetcher: Optional[MetadataFetcher] = None,
        max_figures: int = DEFAULT_MAX_FIGURES,
        max_enriched_citations: int = DEFAULT_MAX_ENRICHED_CITATIONS,
    ):
        self.retriever = retriever
        self.index_manager = index_manager
        self.metadata_fetcher = metadata_fetcher
        self.max_figures = max_figures
        self.max_enriched_citations = max_enriched_citations

    @classmethod
    def from_settings(
        cls,
        backend: IndexBackend,
        settings: Settings,
        metadata_fetcher: Optional[MetadataFetcher] = None,
    ) -> "EvidenceAssembler":
        return cls(
            retriever=HybridRetriever.from_settings(backend, settings),
            index_manager=IndexManager(backend),
            metadata_fetcher=metadata_fetcher,
            max_figures=settings.max_evidence_figures,
            max_enriched_citations=settings.max_enriched_citations,
        )

    async def load_evidence(
        self,
        paper_id: str,
        query: str,
        selection: Optional[Selection] = None,
        limit: Optional[int] = None,
        page_window: Optional[int] = None,
        alpha: Optional[float] = None,
    ) -> EvidenceContext:
        """
        Assemble evidence for a question about a paper.

        When the selection carries text, that text is the retrieval query;
        the original query and the selection are echoed back unchanged.

        Raises:
            ValueError: If neither query nor selection text is given
        """
        selection_text = normalize_whitespace(selection.text) if selection and selection.text else ""
        search_query = selection_text or normalize_whitespace(query)
        if not search_query:
            raise ValueError("A question or selected text is required")

        result = await self.retriever.search(
            paper_id, search_query, limit=limit, page_window=page_window, alpha=alpha
        )
        chunks = [*result.hits, *result.expanded_window]

        figures: list[Figure] = []
        citations: list[Citation] = []
        if any(c.figure_ids for c in chunks):
            top_page = result.hits[0].page_number if result.hits else None
            figures = select_figures(
                await self.index_manager.fetch_figures(paper_id), chunks, top_page, self.max_figures
            )
        if any(c.citation_ids for c in chunks):
            citations = select_citations(await self.index_manager.fetch_citations(paper_id), chunks)
            citations = await self._enrich_citations(citations)

        return EvidenceContext(
            paper_id=paper_id,
            query=query,
            selection=selection,
            hits=result.hits,
            expanded_window=result.expanded_window,
            figures=figures,
            citations=citations,
            degraded=result.is_degraded,
            degraded_reason=str(result.degraded) if result.degraded else None,
        )

    async def _enrich_one(self, citation: Citation) -> Citation:
        paper = await self.metadata_fetcher.fetch_metadata(citation.arxiv_id)
        return citation.model_copy(update={
            "title": citation.title or paper.title,
            "authors": citation.authors or paper.authors,
            "abstract": paper.abstract,
            "year": citation.year or _published_year(paper),
            "url": citation.url or paper.source_url,
        })

    async def _enrich_citations(self, citations: list[Citation]) -> list[Citation]:
        if self.metadata_fetcher is None or self.max_enriched_citations <= 0:
            return citations

        targets = [
            i for i, c in enumerate(citations) if c.arxiv_id and not c.abstract
        ][: self.max_enriched_citations]
        if not targets:
            return citations

        results = await asyncio.gather(
            *(self._enrich_one(citations[i]) for i in targets),
            return_exceptions=True,
        )
        enriched = list(citations)
        for i, result in zip(targets, results):
            if isinstance(result, FetchError):
                logger.warning(f"Citation enrichment failed for {citations[i].arxiv_id}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                enriched[i] = result
        return enriched


async def load_question_evidence(
    paper_id: str,
    query: str,
    selection: Union[Selection, dict, None] = None,
    *,
    backend: Optional[IndexBackend] = None,
    settings: Optional[Settings] = None,
    metadata_fetcher: Optional[MetadataFetcher] = None,
) -> EvidenceContext:
    """
    Load evidence for a question, building the configured backend when none is given.

    Args:
        paper_id: Paper to search
        query: Question text
        selection: Selection object or loose dict payload
        backend: Index backend; closed afterwards only if created here
        settings: Settings; defaults to get_settings()
        metadata_fetcher: Optional citation enrichment source
    """
    settings = settings or get_settings()
    owns_backend = backend is None
    backend = backend or create_backend(settings)
    try:
        assembler = EvidenceAssembler.from_settings(backend, settings, metadata_fetcher)
        return await assembler.load_evidence(paper_id, query, parse_question_selection(selection))
    finally:
        if owns_backend:
            await backend.close()
