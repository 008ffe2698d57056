"""
Index backend interface.

Backends store records of the classes in ``schema.SCHEMA_CLASSES`` and
answer paper-scoped hybrid, keyword and vector queries. Every query takes a
``paper_id``; records of other papers are never returned.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field


class IndexRecord(BaseModel):
    """A record to write, keyed by its deterministic UUID."""

    class_name: str
    uuid: str
    properties: dict[str, Any]


class IndexedObject(BaseModel):
    """A record read back from the index."""

    uuid: str
    properties: dict[str, Any] = Field(default_factory=dict)
    score: Optional[float] = None
    distance: Optional[float] = None


class IndexBackend(ABC):
    """Storage and query operations shared by all index backends."""

    name: str = "index"

    @abstractmethod
    async def verify_connection(self) -> None:
        """
        Check liveness and readiness.

        Raises:
            IndexUnavailableError: Backend unreachable or not ready
            IndexTimeoutError: Check exceeded the timeout
        """

    @abstractmethod
    async def ensure_schema(self, classes: list[dict[str, Any]]) -> list[str]:
        """Create missing classes; return the names of classes created."""

    @abstractmethod
    async def upsert(self, class_name: str, records: list[IndexRecord]) -> int:
        """Write records, overwriting on UUID conflict; return the count written."""

    @abstractmethod
    async def fetch_objects(
        self,
        class_name: str,
        paper_id: str,
        page_range: Optional[tuple[int, int]] = None,
    ) -> list[IndexedObject]:
        """
        All records of a class for a paper.

        Args:
            page_range: Inclusive (min, max) filter on ``pageNumber``

        Returns:
            Records ordered by ``position`` where the class has one
        """

    @abstractmethod
    async def hybrid_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
        alpha: float,
    ) -> list[IndexedObject]:
        """
        Fused vector + keyword search, best first.

        Raises:
            VectorSearchError: The vector leg failed
            KeywordSearchError: The keyword leg failed
        """

    @abstractmethod
    async def keyword_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
    ) -> list[IndexedObject]:
        """BM25 search, best first."""

    @abstractmethod
    async def vector_search(
        self,
        class_name: str,
        paper_id: str,
        query: str,
        limit: int,
    ) -> list[IndexedObject]:
        """Semantic search, best first."""

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "IndexBackend":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
