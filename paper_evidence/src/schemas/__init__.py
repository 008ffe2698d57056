"""
Pydantic schemas for paper evidence artifacts.

Persisted shapes (chunks, figures, citations) carry their paper id and local
ids so every retrieved record can be traced back to its source.
"""

from .chunk import Chunk
from .evidence import EvidenceContext, SearchHit, Selection
from .interaction import Interaction, PersonaConcept
from .paper import (
    CaptionMatch,
    Citation,
    Figure,
    InlineArxivIngestResult,
    NormalizedDocument,
    PageText,
    Paper,
    Paragraph,
    PdfExtraction,
    Section,
)

__all__ = [
    "Paper",
    "Section",
    "Paragraph",
    "Figure",
    "Citation",
    "NormalizedDocument",
    "PageText",
    "CaptionMatch",
    "PdfExtraction",
    "InlineArxivIngestResult",
    "Chunk",
    "Selection",
    "SearchHit",
    "EvidenceContext",
    "Interaction",
    "PersonaConcept",
]
