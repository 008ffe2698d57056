"""
In-process index backend.

Keeps records in memory, optionally persisted as one JSONL file per class.
Keyword search uses BM25 (rank_bm25) and vector search a FAISS
inner-product index; both are built per (class, paper) on first query and
rebuilt after writes to that paper.

Hybrid scores follow the max-normalized weighted fusion used for the
evidence layer:

    fused = alpha * vector / max(vector) + (1 - alpha) * bm25 / max(bm25)
"""

import logging
from pathlib import Path
from typing import Any, Optional

import jsonlines

from ..errors import IndexSchemaError, KeywordSearchError, VectorSearchError
from .base import IndexBackend, IndexedObject, IndexRecord
from .bm25 import BM25Index, build_bm25_index
from .schema import SCHEMA_BY_CLASS, searchable_text_fields
from .vectors import Embedder, VectorIndex, build_vector_index

logger = logging.getLogger(__name__)

# Candidates drawn from each leg before fusion, as a multiple of the limit
CANDIDATE_FACTOR = 2


def _normalize(scores: dict[str, float]) -> dict[str, float]:
    if not scores:
        return {}
    max_score = max(scores.values())
    if max_score <= 0:
        return {k: 0.0 for k in scores}
    return {k: max(v, 0.0) / max_score for k, v in scores.items()}


class LocalBackend(IndexBackend):
    """
    Local BM25 + FAISS backend.

    Args:
        embedder: Embedder for the vector leg; without one, vector queries
            raise VectorSearchError and retrieval degrades to keyword only
        persist_dir: Directory for JSONL persistence; None keeps records in
            memory only
    """

    name = "local"

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        persist_dir: Optional[Path] = None,
    ):
        self.embedder = embedder
        self.persist_dir = Path(persist_dir) if persist_dir else None
        self._classes: set[str] = set()
        self._records: dict[str, dict[str, dict[str, Any]]] = {}
        self._bm25_cache: dict[tuple[str, str], BM25Index] = {}
        self._vector_cache: dict[tuple[str, str], VectorIndex] = {}

        if self.persist_dir is not None:
            self._load()

    # Persistence

    def _class_path(self, class_name: str) -> Path:
        return self.persist_dir / f"{class_name}.jsonl"

    def _load(self) -> None:
        for path in sorted(self.persist_dir.glob("*.jsonl")):
            class_name = path.stem
            records = self._records.setdefault(class_name, {})
            with jsonlines.open(path) as reader:
                for obj in reader:
                    records[obj["uuid"]] = obj["properties"]
            self._classes.add(class_name)
            logger.debug(f"Loaded {len(records)} {class_name} records from {path}")

    def _save(self, class_name: str) -> None:
        if self.persist_dir is None:
            return
        self.persist_dir.mkdir(parents=True, exist_ok=True)
        with jsonlines.open(self._class_path(class_name), mode="w") as writer:
            for uuid, properties in self._records.get(class_name, {}).items():
                writer.write({"uuid": uuid, "properties": properties})

    # Schema and writes

    async def verify_connection(self) -> None:
        return None

    async def ensure_schema(self, classes: list[dict[str, Any]]) -> list[str]:
        created = []
        for definition in classes:
            name = definition["class"]
            if name not in self._classes:
                self._classes.add(name)
                self._records.setdefault(name, {})
                created.append(name)
        return created

    def _require_class(self, class_name: str) -> None:
        if class_name not in self._classes and class_name not in SCHEMA_BY_CLASS:
            raise IndexSchemaError(f"Unknown class {class_name}")

    async def upsert(self, class_name: str, records: list[IndexRecord]) -> int:
        self._require_class(class_name)
        self._classes.add(class_name)
        store = self._records.setdefault(class_name, {})
        touched: set[str] = set()
        for record in records:
            properties = {k: v for k, v in record.properties.items() if v is not None}
            store[record.uuid] = properties
            touched.add(str(properties.get("paperId", "")))

        for paper_id in touched:
            self._bm25_cache.pop((class_name, paper_id), None)
            self._vector_cache.pop((class_name, paper_id), None)
        self._save(class_name)
        return len(records)

    # Reads

    def _paper_records(self, class_name: str, paper_id: str) -> list[tuple[str, dict[str, Any]]]:
        store = self._records.get(class_name, {})
        rows = [(uuid, props) for uuid, props in store.items() if props.get("paperId") == paper_id]
        if rows and "position" in rows[0][1]:
            rows.sort(key=lambda row: row[1].get("position", 0))
        return rows

    def _text(self, class_name: str, properties: dict[str, Any]) -> str:
        fields = searchable_text_fields(class_name) if class_name in SCHEMA_BY_CLASS else []
        return " ".join(str(properties[f]) for f in fields if properties.get(f))

    async def fetch_objects(
        self,
        class_name: str,
        paper_id: str,
        page_range: Optional[tuple[int, int]] = None,
    ) -> list[IndexedObject]:
        rows = self._paper_records(class_name, paper_id)
        if page_range is not None:
            low, high = page_range
            rows = [
                (uuid, props) for uuid, props in rows
                if props.get("pageNumber") is not None and low <= props["pageNumber"] <= high
            ]
        return [IndexedObject(uuid=uuid, properties=dict(props)) for uuid, props in rows]

    def _bm25(self, class_name: str, paper_id: str) -> Optional[BM25Index]:
        key = (class_name, paper_id)
        if key not in self._bm25_cache:
            rows = self._paper_records(class_name, paper_id)
            if not rows:
                return None
            self._bm25_cache[key] = build_bm25_index(
                [self._text(class_name, props) for _, props in rows],
                [uuid for uuid, _ in rows],
            )
        return self._bm25_cache[key]

    def _vectors(self, class_name: str, paper_id: str) -> Optional[VectorIndex]:
        if self.embedder is None:
            raise VectorSearchError("No embedder configured for the local index")
        key = (class_name, paper_id)
        if key not in self._vector_cache:
            rows = self._paper_records(class_name, paper_id)
            if not rows:
                return None
            try:
                self._vector_cache[key] = build_vector_index(
                    [self._text(class_name, props) for _, props in rows],
                    [uuid for uuid, _ in rows],
                    self.embedder,
                )
            except (RuntimeError, ValueError, OSError) as exc:
                raise VectorSearchError(f"Embedding failed: {exc}") from exc
        return self._vector_cache[key]

    def _objects(
        self,
        class_name: str,
        scored: list[tuple[str, float]],
        distance: bool = False,
    ) -> list[IndexedObject]:
        store = self._records.get(class_name, {})
        return [
            IndexedObject(
                uuid=uuid,
                properties=dict(store[uuid]),
                score=None if distance else score,
                distance=1.0 - score if distance else None,
            )
            for uuid, score in scored
        ]

    def _keyword_scores(self, class_name: str, paper_id: str, query: str, limit: int) -> list[tuple[str, float]]:
        try:
            index = self._bm25(class_name, paper_id)
            return index.search(query, limit) if index is not None else []
        except (ValueError, ZeroDivisionError) as exc:
            raise KeywordSearchError(f"BM25 search failed: {exc}") from exc

    def _vector_scores(self, class_name: str, paper_id: str, query: str, limit: int) -> list[tuple[str, float]]:
        index = self._vectors(class_name, paper_id)
        if index is None:
            return []
        try:
            return index.search(query, limit)
        except (RuntimeError, ValueError) as exc:
            raise VectorSearchError(f"Vector search failed: {exc}") from exc

    async def keyword_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
    ) -> list[IndexedObject]:
        return self._objects(class_name, self._keyword_scores(class_name, paper_id, query, limit))

    async def vector_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
    ) -> list[IndexedObject]:
        scored = self._vector_scores(class_name, paper_id, query, limit)
        return self._objects(class_name, scored, distance=True)

    async def hybrid_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
        alpha: float,
    ) -> list[IndexedObject]:
        candidates = limit * CANDIDATE_FACTOR
        keyword = dict(self._keyword_scores(class_name, paper_id, query, candidates))
        vector = dict(self._vector_scores(class_name, paper_id, query, candidates))

        keyword_norm = _normalize(keyword)
        vector_norm = _normalize(vector)

        fused: dict[str, float] = {}
        for uuid in set(keyword_norm) | set(vector_norm):
            fused[uuid] = alpha * vector_norm.get(uuid, 0.0) + (1 - alpha) * keyword_norm.get(uuid, 0.0)

        ranked = sorted(fused.items(), key=lambda item: (-item[1], item[0]))[:limit]
        objects = self._objects(class_name, ranked)
        for obj in objects:
            if obj.uuid in vector:
                obj.distance = 1.0 - vector[obj.uuid]
        return objects
