"""
PDF text extraction with pdfplumber.

Produces the page-level shape the page-text normalizer consumes: one text
block per page (lines grouped by vertical position, blank lines between
blocks) plus figure/table caption matches. Also reports whether the PDF
looks scanned, in which case an OCR engine should be used instead.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import pdfplumber

from .normalize_pages import find_caption_matches
from .schemas.paper import PageText, PdfExtraction

logger = logging.getLogger(__name__)

# Vertical gap (in points) between lines that starts a new paragraph
PARAGRAPH_GAP = 8.0
# Pages with fewer characters than this count as "no text"
MIN_PAGE_CHARS = 40


@dataclass
class PdfAnalysis:
    """Summary of how much extractable text a PDF holds."""

    page_count: int
    text_pages: int
    avg_chars_per_page: float
    image_pages: int

    @property
    def is_likely_scanned(self) -> bool:
        if self.page_count == 0:
            return False
        mostly_textless = self.text_pages / self.page_count < 0.5
        return mostly_textless and self.image_pages >= self.page_count // 2


def _page_text(page: pdfplumber.page.Page) -> str:
    """Page text with blank lines between vertically separated blocks."""
    words = page.extract_words(keep_blank_chars=False, x_tolerance=3, y_tolerance=3)
    if not words:
        return ""

    lines: list[list[dict]] = []
    current: list[dict] = []
    current_top: Optional[float] = None
    for word in sorted(words, key=lambda w: (round(w["top"]), w["x0"])):
        if current_top is None or abs(word["top"] - current_top) <= 3:
            current.append(word)
            current_top = word["top"] if current_top is None else current_top
        else:
            lines.append(current)
            current = [word]
            current_top = word["top"]
    if current:
        lines.append(current)

    out: list[str] = []
    previous_bottom: Optional[float] = None
    for line in lines:
        top = min(w["top"] for w in line)
        if previous_bottom is not None and top - previous_bottom > PARAGRAPH_GAP:
            out.append("")
        out.append(" ".join(w["text"] for w in line))
        previous_bottom = max(w["bottom"] for w in line)
    return "\n".join(out)


def extract_pdf(source: Union[str, Path, bytes]) -> tuple[PdfExtraction, PdfAnalysis]:
    """
    Extract page texts and captions from a PDF.

    Args:
        source: Path to a PDF or its raw bytes

    Returns:
        (PdfExtraction, PdfAnalysis)
    """
    handle = io.BytesIO(source) if isinstance(source, bytes) else source

    pages: list[PageText] = []
    figures = []
    tables = []
    text_pages = 0
    image_pages = 0
    total_chars = 0

    with pdfplumber.open(handle) as pdf:
        for page_num, page in enumerate(pdf.pages, start=1):
            text = _page_text(page)
            pages.append(PageText(page_number=page_num, text=text))

            total_chars += len(text)
            if len(text) >= MIN_PAGE_CHARS:
                text_pages += 1
            if page.images:
                image_pages += 1

            for match in find_caption_matches(text, page_num):
                (tables if match.kind == "table" else figures).append(match)

    analysis = PdfAnalysis(
        page_count=len(pages),
        text_pages=text_pages,
        avg_chars_per_page=total_chars / len(pages) if pages else 0.0,
        image_pages=image_pages,
    )
    logger.info(
        f"Extracted {analysis.page_count} pages "
        f"({analysis.text_pages} with text, {len(figures)} figures, {len(tables)} tables)"
    )
    return PdfExtraction(source="pdf", pages=pages, figures=figures, tables=tables), analysis
