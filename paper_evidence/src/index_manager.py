"""
Index Manager.

Owns the index schema and the write path. Domain objects are mapped to
records keyed by their deterministic UUIDs, so re-ingesting a paper
overwrites its records instead of duplicating them. Every paper-scoped
record carries ``paperId``.

Also maps records read back from the index into domain objects for the
retriever and the evidence assembler.
"""

import logging
from datetime import timezone
from typing import Any, Optional

from .ids import (
    build_chunk_uuid,
    build_citation_uuid,
    build_figure_uuid,
    build_interaction_uuid,
    build_persona_concept_uuid,
)
from .index.base import IndexBackend, IndexedObject, IndexRecord
from .index.schema import (
    CITATION_CLASS,
    FIGURE_CLASS,
    INTERACTION_CLASS,
    PAPER_CHUNK_CLASS,
    PERSONA_CONCEPT_CLASS,
    SCHEMA_CLASSES,
)
from .schemas.chunk import Chunk
from .schemas.evidence import SearchHit
from .schemas.interaction import Interaction, PersonaConcept
from .schemas.paper import Citation, Figure

logger = logging.getLogger(__name__)


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


# Domain → record properties

def chunk_properties(chunk: Chunk) -> dict[str, Any]:
    return {
        "paperId": chunk.paper_id,
        "chunkId": chunk.chunk_id,
        "text": chunk.text,
        "section": chunk.section_title,
        "sectionId": chunk.section_id,
        "pageNumber": chunk.page_number,
        "position": chunk.position,
        "citations": chunk.citation_ids,
        "figureIds": chunk.figure_ids,
    }


def figure_properties(paper_id: str, figure: Figure) -> dict[str, Any]:
    return {
        "paperId": paper_id,
        "figureId": figure.figure_id,
        "label": figure.label,
        "caption": figure.caption,
        "pageNumber": figure.page_number,
        "imageUrl": figure.image_url,
        "chunkIds": figure.chunk_ids,
    }


def citation_properties(paper_id: str, citation: Citation) -> dict[str, Any]:
    return {
        "paperId": paper_id,
        "citationId": citation.citation_id,
        "title": citation.title,
        "authors": citation.authors,
        "year": citation.year,
        "source": citation.source,
        "doi": citation.doi,
        "url": citation.url,
        "arxivId": citation.arxiv_id,
        "abstract": citation.abstract,
        "chunkIds": citation.chunk_ids,
    }


# Record → domain

def hit_from_object(obj: IndexedObject) -> SearchHit:
    props = obj.properties
    return SearchHit(
        uuid=obj.uuid,
        chunk_id=props.get("chunkId") or obj.uuid,
        paper_id=props.get("paperId", ""),
        text=props.get("text") or "",
        position=props.get("position"),
        section=props.get("section"),
        page_number=props.get("pageNumber"),
        figure_ids=list(props.get("figureIds") or []),
        citation_ids=list(props.get("citations") or []),
        score=obj.score,
        distance=obj.distance,
    )


def figure_from_object(obj: IndexedObject) -> Optional[Figure]:
    props = obj.properties
    if not props.get("figureId") or not props.get("caption"):
        return None
    return Figure(
        figure_id=props["figureId"],
        label=props.get("label"),
        caption=props["caption"],
        page_number=props.get("pageNumber"),
        image_url=props.get("imageUrl"),
        chunk_ids=list(props.get("chunkIds") or []),
    )


def citation_from_object(obj: IndexedObject) -> Optional[Citation]:
    props = obj.properties
    if not props.get("citationId"):
        return None
    return Citation(
        citation_id=props["citationId"],
        title=props.get("title"),
        authors=list(props.get("authors") or []),
        year=props.get("year"),
        source=props.get("source"),
        doi=props.get("doi"),
        url=props.get("url"),
        arxiv_id=props.get("arxivId"),
        abstract=props.get("abstract"),
        chunk_ids=list(props.get("chunkIds") or []),
    )


def attach_chunk_references(
    paper_id: str,
    chunks: list[Chunk],
    figures: list[Figure],
    citations: list[Citation],
) -> tuple[list[Figure], list[Citation]]:
    """
    Record on each figure and citation the UUIDs of the chunks that reference it.

    Returns:
        Updated copies of figures and citations
    """
    figure_refs: dict[str, list[str]] = {}
    citation_refs: dict[str, list[str]] = {}
    for chunk in chunks:
        chunk_uuid = build_chunk_uuid(paper_id, chunk.chunk_id)
        for figure_id in chunk.figure_ids:
            figure_refs.setdefault(figure_id, []).append(chunk_uuid)
        for citation_id in chunk.citation_ids:
            citation_refs.setdefault(citation_id, []).append(chunk_uuid)

    linked_figures = [
        f.model_copy(update={"chunk_ids": figure_refs.get(f.figure_id, [])}) for f in figures
    ]
    linked_citations = [
        c.model_copy(update={"chunk_ids": citation_refs.get(c.citation_id, [])}) for c in citations
    ]
    return linked_figures, linked_citations


class IndexManager:
    """
    Schema setup and upserts against an index backend.

    Args:
        backend: Index backend to write to
    """

    def __init__(self, backend: IndexBackend):
        self.backend = backend

    async def verify_connection(self) -> None:
        """Raise IndexUnavailableError / IndexTimeoutError if the backend is not ready."""
        await self.backend.verify_connection()

    async def ensure_schema(self) -> list[str]:
        """
        Verify connectivity and create any missing index classes.

        Idempotent: existing compatible classes are left in place.

        Returns:
            Names of the classes created by this call
        """
        await self.backend.verify_connection()
        created = await self.backend.ensure_schema(SCHEMA_CLASSES)
        if created:
            logger.info(f"Created index classes on {self.backend.name}: {', '.join(created)}")
        return created

    async def _write(self, class_name: str, records: list[IndexRecord]) -> list[str]:
        if not records:
            return []
        await self.backend.upsert(class_name, records)
        logger.info(f"Upserted {len(records)} {class_name} records")
        return [r.uuid for r in records]

    async def upsert_chunks(self, paper_id: str, chunks: list[Chunk]) -> list[str]:
        """Upsert chunks; returns their record ids in input order."""
        records = []
        for chunk in chunks:
            if chunk.paper_id != paper_id:
                raise ValueError(f"Chunk {chunk.chunk_id} belongs to {chunk.paper_id}, not {paper_id}")
            records.append(IndexRecord(
                class_name=PAPER_CHUNK_CLASS,
                uuid=build_chunk_uuid(paper_id, chunk.chunk_id),
                properties=chunk_properties(chunk),
            ))
        return await self._write(PAPER_CHUNK_CLASS, records)

    async def upsert_figures(self, paper_id: str, figures: list[Figure]) -> list[str]:
        records = [
            IndexRecord(
                class_name=FIGURE_CLASS,
                uuid=build_figure_uuid(paper_id, f.figure_id),
                properties=figure_properties(paper_id, f),
            )
            for f in figures
        ]
        return await self._write(FIGURE_CLASS, records)

    async def upsert_citations(self, paper_id: str, citations: list[Citation]) -> list[str]:
        records = [
            IndexRecord(
                class_name=CITATION_CLASS,
                uuid=build_citation_uuid(paper_id, c.citation_id),
                properties=citation_properties(paper_id, c),
            )
            for c in citations
        ]
        return await self._write(CITATION_CLASS, records)

    async def upsert_persona_concepts(self, concepts: list[PersonaConcept]) -> list[str]:
        records = [
            IndexRecord(
                class_name=PERSONA_CONCEPT_CLASS,
                uuid=build_persona_concept_uuid(c.user_id, c.concept),
                properties={
                    "userId": c.user_id,
                    "concept": c.concept,
                    "description": c.description,
                    "firstSeenPaperId": c.first_seen_paper_id,
                    "learnedAt": _iso(c.learned_at),
                    "confidence": c.confidence,
                },
            )
            for c in concepts
        ]
        return await self._write(PERSONA_CONCEPT_CLASS, records)

    async def upsert_interactions(self, interactions: list[Interaction]) -> list[str]:
        records = [
            IndexRecord(
                class_name=INTERACTION_CLASS,
                uuid=build_interaction_uuid(i.user_id, i.paper_id, i.interaction_type, i.prompt),
                properties={
                    "userId": i.user_id,
                    "paperId": i.paper_id,
                    "interactionType": i.interaction_type,
                    "prompt": i.prompt,
                    "response": i.response,
                    "createdAt": _iso(i.created_at),
                    "chunkIds": i.chunk_ids,
                },
            )
            for i in interactions
        ]
        return await self._write(INTERACTION_CLASS, records)

    async def fetch_chunks(
        self,
        paper_id: str,
        page_range: Optional[tuple[int, int]] = None,
    ) -> list[SearchHit]:
        """Stored chunks of a paper in reading order."""
        objects = await self.backend.fetch_objects(PAPER_CHUNK_CLASS, paper_id, page_range)
        return [hit_from_object(o) for o in objects]

    async def fetch_figures(self, paper_id: str) -> list[Figure]:
        objects = await self.backend.fetch_objects(FIGURE_CLASS, paper_id)
        return [f for f in (figure_from_object(o) for o in objects) if f is not None]

    async def fetch_citations(self, paper_id: str) -> list[Citation]:
        objects = await self.backend.fetch_objects(CITATION_CLASS, paper_id)
        return [c for c in (citation_from_object(o) for o in objects) if c is not None]
