"""
Paragraph-aware chunking for retrieval.

Strategy:
- Greedily pack consecutive paragraphs of a section into one chunk while the
  joined text stays within target_chunk_chars
- Never split a paragraph that fits within max_chunk_chars
- Split longer paragraphs at the last sentence boundary before the limit,
  falling back to the last whitespace, then to a hard cut
- Chunks never cross a section boundary
- Each chunk inherits section and page of its first paragraph and the figure
  and citation references of all its paragraphs
"""

import logging
import re
from pathlib import Path
from typing import Optional

import jsonlines

from .schemas.chunk import Chunk
from .schemas.paper import Figure, Paragraph, Section

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_CHARS = 1200
DEFAULT_TARGET_CHUNK_CHARS = 800

PARAGRAPH_SEPARATOR = "\n\n"

# End of sentence: terminal punctuation, optional closing quote/bracket, whitespace
SENTENCE_BOUNDARY = re.compile(r"[.!?][\"')\]]?\s+")


def split_long_text(text: str, max_chars: int) -> list[str]:
    """
    Split text into pieces no longer than max_chars.

    Each cut is made at the last sentence boundary before the limit; when a
    window has none, at the last whitespace; when it has neither, at the
    limit itself.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be positive")

    pieces: list[str] = []
    remaining = text.strip()
    while len(remaining) > max_chars:
        window = remaining[: max_chars + 1]
        cut = None
        for match in SENTENCE_BOUNDARY.finditer(window):
            # Keep the punctuation (and closing bracket) with the left piece
            end = match.end() - (len(match.group()) - len(match.group().rstrip()))
            if 0 < end <= max_chars:
                cut = end
        if cut is None:
            space = window.rfind(" ", 0, max_chars + 1)
            cut = space if space > 0 else max_chars

        piece = remaining[:cut].strip()
        if piece:
            pieces.append(piece)
        remaining = remaining[cut:].strip()

    if remaining:
        pieces.append(remaining)
    return pieces


class _Buffer:
    """Paragraphs accumulated for the chunk being built."""

    def __init__(self):
        self.paragraphs: list[Paragraph] = []
        self.length = 0

    def would_fit(self, paragraph: Paragraph, limit: int) -> bool:
        if not self.paragraphs:
            return True
        return self.length + len(PARAGRAPH_SEPARATOR) + len(paragraph.text) <= limit

    def add(self, paragraph: Paragraph) -> None:
        if self.paragraphs:
            self.length += len(PARAGRAPH_SEPARATOR)
        self.paragraphs.append(paragraph)
        self.length += len(paragraph.text)

    def clear(self) -> None:
        self.paragraphs = []
        self.length = 0


def _merge_ids(groups: list[list[str]]) -> list[str]:
    merged: list[str] = []
    for ids in groups:
        for value in ids:
            if value not in merged:
                merged.append(value)
    return merged


class Chunker:
    """
    Packs paragraphs into bounded chunks.

    Args:
        max_chunk_chars: Hard upper bound on chunk text length
        target_chunk_chars: Packing target for short paragraphs (<= max)
    """

    def __init__(
        self,
        max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
        target_chunk_chars: int = DEFAULT_TARGET_CHUNK_CHARS,
    ):
        if max_chunk_chars <= 0:
            raise ValueError("max_chunk_chars must be positive")
        if target_chunk_chars <= 0 or target_chunk_chars > max_chunk_chars:
            raise ValueError("target_chunk_chars must be in (0, max_chunk_chars]")
        self.max_chunk_chars = max_chunk_chars
        self.target_chunk_chars = target_chunk_chars

    def chunk(
        self,
        paper_id: str,
        sections: list[Section],
        figures: Optional[list[Figure]] = None,
    ) -> list[Chunk]:
        """
        Chunk a normalized paper.

        Args:
            paper_id: Parent paper id
            sections: Sections in document order
            figures: Figures with page anchors; a figure is linked to every
                chunk whose page span contains its page

        Returns:
            Chunks in reading order with positions 0..n-1
        """
        chunks: list[Chunk] = []
        buffer = _Buffer()

        def flush(section: Section) -> None:
            if buffer.paragraphs:
                chunks.append(self._make_chunk(paper_id, section, buffer.paragraphs, len(chunks)))
                buffer.clear()

        for section in sections:
            for paragraph in section.paragraphs:
                if len(paragraph.text) > self.max_chunk_chars:
                    flush(section)
                    chunks.extend(self._split_paragraph(paper_id, section, paragraph, len(chunks)))
                    continue

                if not buffer.would_fit(paragraph, self.target_chunk_chars):
                    flush(section)
                buffer.add(paragraph)
            flush(section)

        if figures:
            _link_figures_by_page(chunks, figures)

        logger.debug(f"Chunked {paper_id}: {len(chunks)} chunks from {len(sections)} sections")
        return chunks

    def _make_chunk(
        self,
        paper_id: str,
        section: Section,
        paragraphs: list[Paragraph],
        position: int,
        chunk_id: Optional[str] = None,
        text: Optional[str] = None,
    ) -> Chunk:
        pages = [p.page_number for p in paragraphs if p.page_number is not None]
        return Chunk(
            chunk_id=chunk_id or paragraphs[0].paragraph_id,
            paper_id=paper_id,
            text=text if text is not None else PARAGRAPH_SEPARATOR.join(p.text for p in paragraphs),
            position=position,
            section_id=section.section_id,
            section_title=section.title,
            page_number=paragraphs[0].page_number,
            page_end=max(pages) if pages else None,
            paragraph_ids=[p.paragraph_id for p in paragraphs],
            figure_ids=_merge_ids([p.figure_ids for p in paragraphs]),
            citation_ids=_merge_ids([p.citation_ids for p in paragraphs]),
        )

    def _split_paragraph(
        self,
        paper_id: str,
        section: Section,
        paragraph: Paragraph,
        start_position: int,
    ) -> list[Chunk]:
        pieces = split_long_text(paragraph.text, self.max_chunk_chars)
        return [
            self._make_chunk(
                paper_id,
                section,
                [paragraph],
                start_position + index,
                chunk_id=paragraph.paragraph_id if index == 0 else f"{paragraph.paragraph_id}.{index + 1}",
                text=piece,
            )
            for index, piece in enumerate(pieces)
        ]


def _link_figures_by_page(chunks: list[Chunk], figures: list[Figure]) -> None:
    for chunk in chunks:
        span = chunk.page_span
        if span is None:
            continue
        for figure in figures:
            if figure.page_number is None:
                continue
            if span[0] <= figure.page_number <= span[1] and figure.figure_id not in chunk.figure_ids:
                chunk.figure_ids.append(figure.figure_id)


def chunk_sections(
    paper_id: str,
    sections: list[Section],
    figures: Optional[list[Figure]] = None,
    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
    target_chunk_chars: int = DEFAULT_TARGET_CHUNK_CHARS,
) -> list[Chunk]:
    """Convenience wrapper around Chunker.chunk."""
    chunker = Chunker(max_chunk_chars=max_chunk_chars, target_chunk_chars=target_chunk_chars)
    return chunker.chunk(paper_id, sections, figures)


def save_chunks(chunks: list[Chunk], output_path: Path) -> None:
    """Save chunks to JSONL file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with jsonlines.open(output_path, mode="w") as writer:
        for chunk in chunks:
            writer.write(chunk.model_dump())


def load_chunks(input_path: Path) -> list[Chunk]:
    """Load chunks from JSONL file."""
    chunks = []
    with jsonlines.open(input_path) as reader:
        for obj in reader:
            chunks.append(Chunk(**obj))
    return chunks
