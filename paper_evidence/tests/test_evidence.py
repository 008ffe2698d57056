"""Tests for evidence assembly."""

import asyncio

import pytest

from ..config.settings import Settings
from ..src.errors import FetchFailedError
from ..src.evidence import (
    EvidenceAssembler,
    load_question_evidence,
    parse_question_selection,
    select_citations,
    select_figures,
)
from ..src.index.local import LocalBackend
from ..src.index_manager import IndexManager
from ..src.retrieval import HybridRetriever
from ..src.schemas.evidence import SearchHit, Selection
from ..src.schemas.paper import Citation, Figure, Paper
from .conftest import PAPER_ID, index_paper


class FakeFetcher:
    """Metadata fetcher returning canned papers, or raising a given error."""

    def __init__(self, error: Exception = None):
        self.error = error
        self.calls: list[str] = []

    async def fetch_metadata(self, arxiv_id: str) -> Paper:
        self.calls.append(arxiv_id)
        if self.error is not None:
            raise self.error
        return Paper(
            paper_id=arxiv_id,
            arxiv_id=arxiv_id,
            title="Fetched title",
            authors=["Dzmitry Bahdanau"],
            abstract="We conjecture that a fixed-length vector is a bottleneck.",
            published_at="2014-09-01T19:52:27Z",
            source_url=f"https://arxiv.org/abs/{arxiv_id}",
        )


def _assembler(backend, fetcher=None, max_figures=6) -> EvidenceAssembler:
    return EvidenceAssembler(
        retriever=HybridRetriever(backend, limit=1, page_window=1),
        index_manager=IndexManager(backend),
        metadata_fetcher=fetcher,
        max_figures=max_figures,
    )


def _chunk(uuid, figure_ids=(), citation_ids=()):
    return SearchHit(
        uuid=uuid,
        chunk_id=uuid,
        paper_id=PAPER_ID,
        text="t",
        figure_ids=list(figure_ids),
        citation_ids=list(citation_ids),
    )


class TestParseQuestionSelection:
    def test_trims_and_parses_page(self):
        selection = parse_question_selection({"text": "  scaled attention ", "page": "4", "section": " Model "})
        assert selection == Selection(text="scaled attention", page=4, section="Model")

    def test_float_and_bool_pages(self):
        assert parse_question_selection({"text": "x", "page": 3.0}).page == 3
        assert parse_question_selection({"text": "x", "page": 3.5}).page is None
        assert parse_question_selection({"text": "x", "page": True}).page is None

    def test_empty_payload_gives_none(self):
        assert parse_question_selection({"text": "   ", "page": None}) is None
        assert parse_question_selection(None) is None
        assert parse_question_selection("text") is None

    def test_selection_passthrough(self):
        selection = Selection(text="x")
        assert parse_question_selection(selection) is selection


class TestSelectFigures:
    def test_nearest_page_first_and_capped(self):
        figures = [
            Figure(figure_id="f1", caption="a", page_number=1),
            Figure(figure_id="f5", caption="b", page_number=5),
            Figure(figure_id="f3", caption="c", page_number=3),
            Figure(figure_id="fx", caption="d"),
        ]
        chunks = [_chunk("c1", ["fx", "f1"]), _chunk("c2", ["f5", "f3", "missing"])]
        selected = select_figures(figures, chunks, top_page=4, max_figures=3)
        assert [f.figure_id for f in selected] == ["f5", "f3", "f1"]

    def test_pageless_figures_last(self):
        figures = [Figure(figure_id="fx", caption="d"), Figure(figure_id="f2", caption="e", page_number=2)]
        chunks = [_chunk("c1", ["fx", "f2"])]
        assert [f.figure_id for f in select_figures(figures, chunks, 2, 6)] == ["f2", "fx"]


class TestSelectCitations:
    def test_most_referenced_first_and_deduplicated(self):
        citations = [
            Citation(citation_id="b1"),
            Citation(citation_id="b2"),
            Citation(citation_id="b2", title="duplicate"),
        ]
        chunks = [_chunk("c1", citation_ids=["b1", "b2"]), _chunk("c2", citation_ids=["b2", "dangling"])]
        selected = select_citations(citations, chunks)
        assert [c.citation_id for c in selected] == ["b2", "b1"]
        assert selected[0].title is None


class TestEvidenceAssembler:
    """Tests for EvidenceAssembler.load_evidence."""

    def test_evidence_context(self, indexed_backend):
        context = asyncio.run(_assembler(indexed_backend).load_evidence(PAPER_ID, "self-attention"))

        assert context.paper_id == PAPER_ID
        assert context.query == "self-attention"
        assert [h.page_number for h in context.hits] == [3]
        assert [h.page_number for h in context.expanded_window] == [2, 4]
        assert [f.figure_id for f in context.figures] == ["S3.F1"]
        assert [c.citation_id for c in context.citations] == ["bib.bib1", "bib.bib2"]
        assert not context.degraded

    def test_selection_text_drives_search(self, indexed_backend):
        selection = Selection(text="self-attention", page=3)
        context = asyncio.run(
            _assembler(indexed_backend).load_evidence(PAPER_ID, "What does this mean?", selection)
        )
        assert context.query == "What does this mean?"
        assert context.selection == selection
        assert context.hits[0].chunk_id == "S3-p1"

    def test_requires_query_or_selection(self, indexed_backend):
        with pytest.raises(ValueError):
            asyncio.run(_assembler(indexed_backend).load_evidence(PAPER_ID, "  ", Selection(page=2)))

    def test_no_references_skips_figures_and_citations(self, indexed_backend):
        assembler = EvidenceAssembler(
            HybridRetriever(indexed_backend, limit=1, page_window=0),
            IndexManager(indexed_backend),
        )
        context = asyncio.run(assembler.load_evidence(PAPER_ID, "future decoding"))
        assert [h.page_number for h in context.hits] == [5]
        assert context.figures == []
        assert context.citations == []

    def test_citation_enrichment(self, indexed_backend):
        fetcher = FakeFetcher()
        context = asyncio.run(_assembler(indexed_backend, fetcher).load_evidence(PAPER_ID, "self-attention"))

        assert fetcher.calls == ["1409.0473"]
        enriched = context.citations[0]
        assert enriched.abstract.startswith("We conjecture")
        assert enriched.title == "Neural machine translation"
        assert context.citations[1].abstract is None

    def test_enrichment_failure_keeps_citation(self, indexed_backend):
        fetcher = FakeFetcher(FetchFailedError("arXiv down", status_code=503))
        context = asyncio.run(_assembler(indexed_backend, fetcher).load_evidence(PAPER_ID, "self-attention"))
        assert context.citations[0].citation_id == "bib.bib1"
        assert context.citations[0].abstract is None

    def test_unexpected_enrichment_error_propagates(self, indexed_backend):
        fetcher = FakeFetcher(RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            asyncio.run(_assembler(indexed_backend, fetcher).load_evidence(PAPER_ID, "self-attention"))

    def test_degraded_context(self):
        backend = LocalBackend(embedder=None)
        asyncio.run(index_paper(IndexManager(backend)))
        context = asyncio.run(_assembler(backend).load_evidence(PAPER_ID, "self-attention"))
        assert context.degraded
        assert "vector" in context.degraded_reason
        assert [h.page_number for h in context.hits] == [3]


class TestLoadQuestionEvidence:
    def test_with_injected_backend_and_loose_selection(self, indexed_backend):
        settings = Settings(_env_file=None, hybrid_limit=1, page_window=0)
        context = asyncio.run(load_question_evidence(
            PAPER_ID,
            "",
            {"text": " self-attention ", "page": "3"},
            backend=indexed_backend,
            settings=settings,
        ))
        assert context.selection == Selection(text="self-attention", page=3)
        assert [h.chunk_id for h in context.hits] == ["S3-p1"]
        assert context.expanded_window == []
