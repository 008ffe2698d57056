"""
Query-time schemas.

Search hits and evidence contexts are ephemeral: they are built per request
and never persisted.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .paper import Citation, Figure


class Selection(BaseModel):
    """A reader's highlighted span in the paper."""

    text: Optional[str] = None
    page: Optional[int] = None
    section: Optional[str] = None


class SearchHit(BaseModel):
    """A chunk returned by the retriever."""

    uuid: str = Field(..., description="Index record id")
    chunk_id: str
    paper_id: str
    text: str
    position: Optional[int] = None
    section: Optional[str] = None
    page_number: Optional[int] = None
    figure_ids: list[str] = Field(default_factory=list)
    citation_ids: list[str] = Field(default_factory=list)
    score: Optional[float] = Field(None, description="Fused relevance score")
    distance: Optional[float] = Field(None, description="Vector distance, when available")


class EvidenceContext(BaseModel):
    """Everything a downstream generator needs to answer a question."""

    paper_id: str
    query: str
    selection: Optional[Selection] = None
    hits: list[SearchHit] = Field(default_factory=list)
    expanded_window: list[SearchHit] = Field(default_factory=list)
    figures: list[Figure] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    degraded: bool = Field(False, description="True when retrieval ran on one leg")
    degraded_reason: Optional[str] = None

    @property
    def chunks(self) -> list[SearchHit]:
        """Hits followed by window chunks."""
        return [*self.hits, *self.expanded_window]

    def chunk_ids(self) -> set[str]:
        return {c.chunk_id for c in self.chunks}
