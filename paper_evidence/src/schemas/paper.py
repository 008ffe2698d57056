"""
Paper structure schemas.

A normalized paper is an ordered list of sections, each holding an ordered
list of paragraphs, plus the figures and citations found in the source.
Paragraph and section order is document order; nothing downstream reorders
them.
"""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(value: str) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", value or "").strip()


class Paper(BaseModel):
    """Bibliographic metadata for an ingested paper."""

    paper_id: str = Field(..., description="Opaque paper identifier")
    arxiv_id: Optional[str] = Field(None, description="Normalized arXiv id without version")
    title: str = Field(..., description="Paper title")
    authors: list[str] = Field(default_factory=list)
    abstract: Optional[str] = None
    published_at: Optional[str] = Field(None, description="ISO-8601 publication timestamp")
    updated_at: Optional[str] = None
    categories: list[str] = Field(
        default_factory=list,
        description="arXiv categories, primary first",
    )
    pdf_url: Optional[str] = None
    source_url: Optional[str] = None


class Paragraph(BaseModel):
    """A paragraph of body text with its in-text references."""

    paragraph_id: str = Field(..., description="Unique within the paper, e.g. S1-p3")
    text: str = Field(..., min_length=1)
    page_number: Optional[int] = Field(
        None, ge=1, description="1-indexed page (page-text and TEI paths only)"
    )
    citation_ids: list[str] = Field(default_factory=list)
    figure_ids: list[str] = Field(default_factory=list)

    @field_validator("text")
    @classmethod
    def _normalize_text(cls, value: str) -> str:
        value = normalize_whitespace(value)
        if not value:
            raise ValueError("paragraph text is empty after whitespace normalization")
        return value


class Section(BaseModel):
    """A headed section of the paper."""

    section_id: str
    title: str
    level: int = Field(1, ge=1, le=6)
    paragraphs: list[Paragraph] = Field(default_factory=list)

    @property
    def char_count(self) -> int:
        return sum(len(p.text) for p in self.paragraphs)


class Figure(BaseModel):
    """A figure or table with its caption."""

    figure_id: str
    label: Optional[str] = Field(None, examples=["Figure 3", "Table 1"])
    caption: str
    page_number: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = None
    chunk_ids: list[str] = Field(
        default_factory=list,
        description="Record ids of chunks that reference this figure",
    )


class Citation(BaseModel):
    """A bibliography entry."""

    citation_id: str
    title: Optional[str] = None
    authors: list[str] = Field(default_factory=list)
    year: Optional[int] = None
    source: Optional[str] = Field(None, description="Venue or journal")
    doi: Optional[str] = None
    url: Optional[str] = None
    arxiv_id: Optional[str] = None
    abstract: Optional[str] = None
    chunk_ids: list[str] = Field(
        default_factory=list,
        description="Record ids of chunks that cite this entry",
    )


class NormalizedDocument(BaseModel):
    """Output of the source normalizers."""

    sections: list[Section]
    figures: list[Figure] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)

    @property
    def paragraph_count(self) -> int:
        return sum(len(s.paragraphs) for s in self.sections)


class PageText(BaseModel):
    page_number: int = Field(..., ge=1)
    text: str = ""


class CaptionMatch(BaseModel):
    """A caption line found in extracted page text."""

    kind: str = Field(..., description="figure or table")
    label: str = Field(..., examples=["Figure 2", "Table 1"])
    caption: str
    page_number: int = Field(..., ge=1)


class PdfExtraction(BaseModel):
    """Page-level text produced by a PDF or OCR extraction engine."""

    source: str = Field("pdf", description="pdf or ocr")
    pages: list[PageText] = Field(default_factory=list)
    figures: list[CaptionMatch] = Field(default_factory=list)
    tables: list[CaptionMatch] = Field(default_factory=list)


class InlineArxivIngestResult(BaseModel):
    """Normalized arXiv paper returned without writing to the index."""

    arxiv_id: str
    title: str
    authors: list[str] = Field(default_factory=list)
    published_at: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    abstract: Optional[str] = None
    sections: list[Section] = Field(default_factory=list)
    figures: list[Figure] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    source_url: str
