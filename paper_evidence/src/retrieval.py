"""
Hybrid retrieval with page-window expansion.

Provides the query-time contract used by the evidence assembler:
- search(): paper-scoped hybrid search plus neighbouring-page chunks
- expand_window(): every stored chunk on pages [p - w, p + w] of each hit

Fusion weight ``alpha`` is the vector share (0 = keyword only, 1 = vector
only). When one leg of the hybrid query fails, the other leg's results are
returned and the result carries a DegradedRetrievalError signal instead of
raising.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..config.settings import Settings
from .errors import DegradedRetrievalError, KeywordSearchError, VectorSearchError
from .index.base import IndexBackend, IndexedObject
from .index.schema import PAPER_CHUNK_CLASS
from .index_manager import hit_from_object
from .schemas.evidence import SearchHit

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 8
DEFAULT_ALPHA = 0.65
DEFAULT_PAGE_WINDOW = 1


@dataclass
class RetrievalResult:
    """Hits, window chunks and an optional degradation signal."""

    hits: list[SearchHit] = field(default_factory=list)
    expanded_window: list[SearchHit] = field(default_factory=list)
    degraded: Optional[DegradedRetrievalError] = None

    @property
    def is_degraded(self) -> bool:
        return self.degraded is not None


def window_pages(hits: list[SearchHit], page_window: int) -> set[int]:
    """Pages within page_window of any hit that has a page number."""
    pages: set[int] = set()
    if page_window <= 0:
        return pages
    for hit in hits:
        if hit.page_number is None:
            continue
        start = max(1, hit.page_number - page_window)
        pages.update(range(start, hit.page_number + page_window + 1))
    return pages


class HybridRetriever:
    """
    Paper-scoped hybrid retriever.

    Args:
        backend: Index backend holding PaperChunk records
        limit: Default number of hits
        alpha: Default vector weight for fusion
        page_window: Default page radius for window expansion
    """

    def __init__(
        self,
        backend: IndexBackend,
        limit: int = DEFAULT_LIMIT,
        alpha: float = DEFAULT_ALPHA,
        page_window: int = DEFAULT_PAGE_WINDOW,
    ):
        self.backend = backend
        self.limit = limit
        self.alpha = alpha
        self.page_window = page_window

    @classmethod
    def from_settings(cls, backend: IndexBackend, settings: Settings) -> "HybridRetriever":
        return cls(
            backend,
            limit=settings.hybrid_limit,
            alpha=settings.hybrid_alpha,
            page_window=settings.page_window,
        )

    async def search(
        self,
        paper_id: str,
        query: str,
        limit: Optional[int] = None,
        page_window: Optional[int] = None,
        alpha: Optional[float] = None,
    ) -> RetrievalResult:
        """
        Search one paper.

        Args:
            paper_id: Paper partition to search
            query: Query text
            limit: Maximum hits (default from constructor)
            page_window: Page radius for expansion; 0 disables expansion
            alpha: Vector weight in [0, 1]

        Returns:
            RetrievalResult; hits ordered by fused score, window chunks in
            reading order. An empty partition gives empty lists.

        Raises:
            ValueError: On blank paper id or query, or out-of-range arguments
        """
        limit = self.limit if limit is None else limit
        page_window = self.page_window if page_window is None else page_window
        alpha = self.alpha if alpha is None else alpha

        if not paper_id or not paper_id.strip():
            raise ValueError("paper_id is required")
        if not query or not query.strip():
            raise ValueError("query is required")
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if page_window < 0:
            raise ValueError("page_window must be non-negative")
        if not 0.0 <= alpha <= 1.0:
            raise ValueError("alpha must be between 0 and 1")

        objects, degraded = await self._hybrid_with_fallback(paper_id, query.strip(), limit, alpha)
        hits = [hit_from_object(o) for o in objects]
        window = await self.expand_window(paper_id, hits, page_window)

        logger.debug(
            f"Search {paper_id!r}: {len(hits)} hits, {len(window)} window chunks"
            f"{' (degraded)' if degraded else ''}"
        )
        return RetrievalResult(hits=hits, expanded_window=window, degraded=degraded)

    async def _hybrid_with_fallback(
        self,
        paper_id: str,
        query: str,
        limit: int,
        alpha: float,
    ) -> tuple[list[IndexedObject], Optional[DegradedRetrievalError]]:
        try:
            objects = await self.backend.hybrid_search(PAPER_CHUNK_CLASS, paper_id, query, limit, alpha)
            return objects, None
        except VectorSearchError as exc:
            degraded = DegradedRetrievalError("vector", str(exc))
            logger.warning(f"Vector search failed for {paper_id}, using keyword results: {exc}")
            objects = await self.backend.keyword_search(PAPER_CHUNK_CLASS, paper_id, query, limit)
        except KeywordSearchError as exc:
            degraded = DegradedRetrievalError("keyword", str(exc))
            logger.warning(f"Keyword search failed for {paper_id}, using vector results: {exc}")
            objects = await self.backend.vector_search(PAPER_CHUNK_CLASS, paper_id, query, limit)
        return objects, degraded

    async def expand_window(
        self,
        paper_id: str,
        hits: list[SearchHit],
        page_window: int,
    ) -> list[SearchHit]:
        """
        Chunks on pages near the hits, excluding the hits themselves.

        Returns:
            Window chunks deduplicated by record id, in reading order
        """
        pages = window_pages(hits, page_window)
        if not pages:
            return []

        objects = await self.backend.fetch_objects(
            PAPER_CHUNK_CLASS, paper_id, page_range=(min(pages), max(pages))
        )
        seen = {hit.uuid for hit in hits}
        window: list[SearchHit] = []
        for obj in objects:
            if obj.uuid in seen or obj.properties.get("pageNumber") not in pages:
                continue
            seen.add(obj.uuid)
            window.append(hit_from_object(obj))

        window.sort(key=lambda h: (h.position is None, h.position or 0))
        return window
