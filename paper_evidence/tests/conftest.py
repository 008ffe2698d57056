"""Shared fixtures: a deterministic embedder, an in-memory index and a sample paper."""

import asyncio
import zlib

import numpy as np
import pytest

from ..src.chunk_text import Chunker
from ..src.index.local import LocalBackend
from ..src.index_manager import IndexManager, attach_chunk_references
from ..src.schemas.paper import Citation, Figure, Paragraph, Section
from ..src.tokenizers import scholarly_tokenize

PAPER_ID = "2401.00001"
OTHER_PAPER_ID = "2401.99999"


class HashingEmbedder:
    """Bag-of-words embedder: each token bumps one hashed dimension."""

    def __init__(self, dim: int = 512):
        self.dim = dim

    def embed(self, texts: list[str]) -> np.ndarray:
        vectors = np.zeros((len(texts), self.dim), dtype="float32")
        for row, text in enumerate(texts):
            for token in scholarly_tokenize(text):
                vectors[row, zlib.crc32(token.encode("utf-8")) % self.dim] += 1.0
            if not vectors[row].any():
                vectors[row, 0] = 1.0
        return vectors


def build_sections() -> list[Section]:
    """Five one-paragraph sections, one per page."""
    texts = [
        ("Introduction", "We study sequence transduction models built on recurrent networks."),
        ("Background", "Convolutional encoders process tokens in parallel across positions."),
        ("Model", "Self-attention relates positions of a single sequence to compute a representation [1]. See Figure 1."),
        ("Results", "Translation benchmarks improve substantially in BLEU over prior baselines [1] [2]."),
        ("Conclusion", "We conclude with future work on efficient decoding."),
    ]
    sections = []
    for page, (title, text) in enumerate(texts, start=1):
        figure_ids = ["S3.F1"] if page == 3 else []
        citation_ids = {3: ["bib.bib1"], 4: ["bib.bib1", "bib.bib2"]}.get(page, [])
        sections.append(Section(
            section_id=f"S{page}",
            title=title,
            level=2,
            paragraphs=[Paragraph(
                paragraph_id=f"S{page}-p1",
                text=text,
                page_number=page,
                figure_ids=figure_ids,
                citation_ids=citation_ids,
            )],
        ))
    return sections


def build_figures() -> list[Figure]:
    return [
        Figure(figure_id="S3.F1", label="Figure 1", caption="The model architecture.", page_number=3),
    ]


def build_citations() -> list[Citation]:
    return [
        Citation(citation_id="bib.bib1", title="Neural machine translation", year=2014, arxiv_id="1409.0473"),
        Citation(citation_id="bib.bib2", title="Convolutional sequence to sequence learning", year=2017),
    ]


async def index_paper(
    manager: IndexManager,
    paper_id: str = PAPER_ID,
    sections: list[Section] = None,
) -> None:
    sections = sections or build_sections()
    chunks = Chunker().chunk(paper_id, sections)
    figures, citations = attach_chunk_references(
        paper_id, chunks, build_figures(), build_citations()
    )
    await manager.ensure_schema()
    await manager.upsert_chunks(paper_id, chunks)
    await manager.upsert_figures(paper_id, figures)
    await manager.upsert_citations(paper_id, citations)


@pytest.fixture
def embedder() -> HashingEmbedder:
    return HashingEmbedder()


@pytest.fixture
def sample_sections() -> list[Section]:
    return build_sections()


@pytest.fixture
def empty_backend(embedder) -> LocalBackend:
    """In-memory backend with no records."""
    return LocalBackend(embedder=embedder)


@pytest.fixture
def indexed_backend(embedder) -> LocalBackend:
    """In-memory backend holding the sample paper and one unrelated paper."""
    backend = LocalBackend(embedder=embedder)
    manager = IndexManager(backend)
    other = [Section(
        section_id="S1",
        title="Other",
        paragraphs=[Paragraph(
            paragraph_id="S1-p1",
            text="Self-attention appears in this unrelated paper too.",
            page_number=3,
        )],
    )]
    asyncio.run(index_paper(manager))
    asyncio.run(index_paper(manager, OTHER_PAPER_ID, other))
    return backend
