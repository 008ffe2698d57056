"""
Chunk schema for retrieval units.

Chunks are the atomic units for keyword and vector search. Every chunk
carries its provenance (paper, section, page, source paragraphs) and the
figures and citations adjacent to it, so any hit can be traced back to the
source and expanded into its evidence.
"""

from typing import Optional

from pydantic import BaseModel, Field


class Chunk(BaseModel):
    """
    A retrieval unit produced by the chunker.

    ``position`` is the chunk's index in reading order. It is strictly
    increasing within a paper and stable across re-ingest of unchanged
    content.
    """

    chunk_id: str = Field(
        ...,
        description="Local id, derived from the first source paragraph",
        examples=["S1-p2", "page3-p1", "S4-p7.2"],
    )
    paper_id: str = Field(..., description="Parent paper identifier")
    text: str = Field(..., min_length=1, description="Chunk text content")
    position: int = Field(..., ge=0)

    section_id: Optional[str] = None
    section_title: Optional[str] = None
    page_number: Optional[int] = Field(
        None, ge=1, description="First page of the chunk (page-text path only)"
    )
    page_end: Optional[int] = Field(None, ge=1)

    paragraph_ids: list[str] = Field(
        default_factory=list,
        description="IDs of source paragraphs that contributed to this chunk",
    )
    figure_ids: list[str] = Field(default_factory=list)
    citation_ids: list[str] = Field(default_factory=list)

    @property
    def page_span(self) -> Optional[tuple[int, int]]:
        if self.page_number is None:
            return None
        return (self.page_number, self.page_end or self.page_number)

    class Config:
        json_schema_extra = {
            "example": {
                "chunk_id": "S3-p2",
                "paper_id": "1706.03762",
                "text": "Self-attention, sometimes called intra-attention, is an attention mechanism relating different positions of a single sequence...",
                "position": 14,
                "section_id": "S3",
                "section_title": "3 Model Architecture",
                "page_number": 3,
                "page_end": 3,
                "paragraph_ids": ["S3-p2"],
                "figure_ids": ["S3.F1"],
                "citation_ids": ["bib.bib2"],
            }
        }
