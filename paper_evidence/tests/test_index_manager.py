"""Tests for IndexManager writes and record mapping."""

import asyncio
from datetime import datetime

import pytest

from ..src.chunk_text import Chunker
from ..src.ids import build_chunk_uuid, build_interaction_uuid
from ..src.index.schema import INTERACTION_CLASS, PERSONA_CONCEPT_CLASS
from ..src.index_manager import IndexManager, attach_chunk_references
from ..src.schemas.interaction import Interaction, PersonaConcept
from .conftest import PAPER_ID, build_citations, build_figures


class TestAttachChunkReferences:
    def test_reverse_references(self, sample_sections):
        chunks = Chunker().chunk(PAPER_ID, sample_sections)
        figures, citations = attach_chunk_references(PAPER_ID, chunks, build_figures(), build_citations())

        model_uuid = build_chunk_uuid(PAPER_ID, "S3-p1")
        results_uuid = build_chunk_uuid(PAPER_ID, "S4-p1")
        assert figures[0].chunk_ids == [model_uuid]
        assert citations[0].chunk_ids == [model_uuid, results_uuid]
        assert citations[1].chunk_ids == [results_uuid]

    def test_inputs_not_mutated(self, sample_sections):
        chunks = Chunker().chunk(PAPER_ID, sample_sections)
        figures = build_figures()
        attach_chunk_references(PAPER_ID, chunks, figures, [])
        assert figures[0].chunk_ids == []


class TestIndexManagerWrites:
    """Tests for upserts against the local backend."""

    def test_chunk_for_other_paper_rejected(self, empty_backend, sample_sections):
        chunks = Chunker().chunk("someone-else", sample_sections)
        with pytest.raises(ValueError):
            asyncio.run(IndexManager(empty_backend).upsert_chunks(PAPER_ID, chunks))

    def test_empty_write_is_noop(self, empty_backend):
        assert asyncio.run(IndexManager(empty_backend).upsert_figures(PAPER_ID, [])) == []

    def test_interactions(self, empty_backend):
        manager = IndexManager(empty_backend)
        interaction = Interaction(
            user_id="u1",
            paper_id=PAPER_ID,
            interaction_type="question",
            prompt="Why scale?",
            created_at=datetime(2024, 1, 2, 3, 4, 5),
            chunk_ids=["c1"],
        )
        first = asyncio.run(manager.upsert_interactions([interaction]))
        second = asyncio.run(manager.upsert_interactions([interaction]))
        assert first == second == [build_interaction_uuid("u1", PAPER_ID, "question", "Why scale?")]

        stored = asyncio.run(empty_backend.fetch_objects(INTERACTION_CLASS, PAPER_ID))
        assert len(stored) == 1
        assert stored[0].properties["createdAt"] == "2024-01-02T03:04:05+00:00"
        assert stored[0].properties["chunkIds"] == ["c1"]

    def test_anonymous_interactions_do_not_collide(self, empty_backend):
        manager = IndexManager(empty_backend)
        anonymous = Interaction(paper_id=PAPER_ID, interaction_type="question", prompt="Same prompt")
        ids = asyncio.run(manager.upsert_interactions([anonymous, anonymous]))
        assert ids[0] != ids[1]
        assert len(asyncio.run(empty_backend.fetch_objects(INTERACTION_CLASS, PAPER_ID))) == 2

    def test_persona_concepts(self, empty_backend):
        manager = IndexManager(empty_backend)
        concept = PersonaConcept(user_id="u1", concept="self-attention", confidence=0.8)
        ids = asyncio.run(manager.upsert_persona_concepts([concept, concept]))
        assert ids[0] == ids[1]
        stored = empty_backend._records[PERSONA_CONCEPT_CLASS]
        assert stored[ids[0]] == {"userId": "u1", "concept": "self-attention", "confidence": 0.8}
