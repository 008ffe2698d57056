"""
Page-text normalization for the PDF and OCR paths.

Each page becomes one section ("PDF Page 3" / "OCR Page 3") whose paragraphs
are the page's blank-line separated blocks. In-text figure and table
mentions ("Fig. 2", "Table 1") are linked to the figures detected from
caption lines, and figures keep the page they were captioned on so that
page-window retrieval can surface them.
"""

import logging
import re
from typing import Optional

from .errors import EmptyDocumentError
from .schemas.paper import (
    CaptionMatch,
    Figure,
    NormalizedDocument,
    PdfExtraction,
    Paragraph,
    Section,
    normalize_whitespace,
)

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")

FIGURE_MENTION_PATTERN = re.compile(r"\b(?:Figure|Fig\.?)\s*([A-Za-z0-9.\-]*\d[A-Za-z0-9\-]*)", re.IGNORECASE)
TABLE_MENTION_PATTERN = re.compile(r"\bTable\s*([A-Za-z0-9.\-]*\d[A-Za-z0-9\-]*)", re.IGNORECASE)

# Caption lines: "Figure 3: ...", "Fig. 2. ...", "Table 1 - ..."
FIGURE_CAPTION_PATTERN = re.compile(
    r"^\s*(Figure|Fig\.?)\s+([A-Za-z0-9.\-]*\d[A-Za-z0-9\-]*?)\s*[:.\-–]\s*(.+)$",
    re.IGNORECASE | re.MULTILINE,
)
TABLE_CAPTION_PATTERN = re.compile(
    r"^\s*(Table)\s+([A-Za-z0-9.\-]*\d[A-Za-z0-9\-]*?)\s*[:.\-–]\s*(.+)$",
    re.IGNORECASE | re.MULTILINE,
)


def figure_key(kind: str, number: str) -> str:
    """Normalized lookup key, e.g. ("Figure", "2a.") → "figure:2a"."""
    kind = "table" if kind.lower().startswith("tab") else "figure"
    return f"{kind}:{re.sub(r'[^a-z0-9]', '', number.lower())}"


def figure_id_for(kind: str, number: str) -> str:
    key = figure_key(kind, number)
    prefix, slug = key.split(":", 1)
    return f"{prefix}-{slug}"


def find_caption_matches(text: str, page_number: int) -> list[CaptionMatch]:
    """
    Find figure and table caption lines on a page.

    Args:
        text: Page text
        page_number: 1-indexed page

    Returns:
        CaptionMatch list, figures before tables, each in page order
    """
    matches: list[CaptionMatch] = []
    for kind, pattern in (("figure", FIGURE_CAPTION_PATTERN), ("table", TABLE_CAPTION_PATTERN)):
        for match in pattern.finditer(text or ""):
            number = match.group(2).rstrip(".")
            caption = normalize_whitespace(match.group(3))
            if not caption or not number:
                continue
            label = f"{'Table' if kind == 'table' else 'Figure'} {number}"
            matches.append(CaptionMatch(
                kind=kind,
                label=label,
                caption=caption,
                page_number=page_number,
            ))
    return matches


def _label_number(label: str) -> str:
    parts = label.split(None, 1)
    return parts[1] if len(parts) > 1 else label


def build_figures(captions: list[CaptionMatch]) -> list[Figure]:
    """Figures from caption matches; the first caption per label wins."""
    figures: list[Figure] = []
    seen: set[str] = set()
    for match in captions:
        figure_id = figure_id_for(match.kind, _label_number(match.label))
        if figure_id in seen:
            continue
        seen.add(figure_id)
        figures.append(Figure(
            figure_id=figure_id,
            label=match.label,
            caption=match.caption,
            page_number=match.page_number,
        ))
    return figures


def find_figure_mentions(text: str, lookup: dict[str, str]) -> list[str]:
    """Figure ids mentioned in text, restricted to known figures, first-seen order."""
    found: list[str] = []
    for kind, pattern in (("figure", FIGURE_MENTION_PATTERN), ("table", TABLE_MENTION_PATTERN)):
        for match in pattern.finditer(text):
            figure_id = lookup.get(figure_key(kind, match.group(1).rstrip(".")))
            if figure_id and figure_id not in found:
                found.append(figure_id)
    return found


def parse_page_texts(
    extraction: PdfExtraction,
    source_label: Optional[str] = None,
) -> NormalizedDocument:
    """
    Normalize extracted page text into one section per page.

    Args:
        extraction: Page texts and caption matches from a PDF/OCR engine
        source_label: Section title prefix; defaults to the extraction source
            ("PDF" or "OCR")

    Returns:
        NormalizedDocument with page-numbered paragraphs

    Raises:
        EmptyDocumentError: If no page has any text
    """
    label = source_label or extraction.source.upper()

    captions = [*extraction.figures, *extraction.tables]
    if not captions:
        for page in extraction.pages:
            captions.extend(find_caption_matches(page.text, page.page_number))
    figures = build_figures(captions)

    lookup: dict[str, str] = {}
    for figure in figures:
        kind, _, number = (figure.label or "").partition(" ")
        lookup[figure_key(kind, number)] = figure.figure_id

    sections: list[Section] = []
    for page in sorted(extraction.pages, key=lambda p: p.page_number):
        blocks = [normalize_whitespace(b) for b in PARAGRAPH_BREAK.split(page.text or "")]
        paragraphs = [
            Paragraph(
                paragraph_id=f"page{page.page_number}-p{index}",
                text=block,
                page_number=page.page_number,
                figure_ids=find_figure_mentions(block, lookup),
            )
            for index, block in enumerate((b for b in blocks if b), start=1)
        ]
        if not paragraphs:
            continue
        sections.append(Section(
            section_id=f"page-{page.page_number}",
            title=f"{label} Page {page.page_number}",
            level=1,
            paragraphs=paragraphs,
        ))

    if not sections:
        raise EmptyDocumentError(f"No text found in {len(extraction.pages)} extracted pages")

    logger.debug(f"Parsed {len(sections)} pages, {len(figures)} figures from {label} text")
    return NormalizedDocument(sections=sections, figures=figures)
