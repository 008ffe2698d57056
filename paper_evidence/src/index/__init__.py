"""
Index schema and backends.

    schema.py    - Class definitions (PaperChunk, Figure, Citation, ...)
    base.py      - IndexBackend interface
    weaviate.py  - Weaviate REST/GraphQL backend
    local.py     - In-process BM25 + FAISS backend
"""

from pathlib import Path
from typing import Optional

from ...config.settings import Settings
from .base import IndexBackend, IndexedObject, IndexRecord
from .local import LocalBackend
from .vectors import Embedder, SentenceTransformerEmbedder
from .weaviate import WeaviateBackend


def create_backend(settings: Settings, embedder: Optional[Embedder] = None) -> IndexBackend:
    """
    Build the backend selected by INDEX_BACKEND.

    Args:
        settings: Application settings
        embedder: Embedder for the local backend; defaults to the
            sentence-transformers model named by EMBEDDING_MODEL

    Raises:
        ValueError: If the Weaviate backend is selected without WEAVIATE_URL
    """
    if settings.index_backend == "local":
        return LocalBackend(
            embedder=embedder or SentenceTransformerEmbedder(settings.embedding_model),
            persist_dir=Path(settings.local_index_dir),
        )
    if not settings.is_weaviate_configured():
        raise ValueError("WEAVIATE_URL must be set when INDEX_BACKEND=weaviate")
    return WeaviateBackend.from_settings(settings)


__all__ = [
    "IndexBackend",
    "IndexRecord",
    "IndexedObject",
    "LocalBackend",
    "WeaviateBackend",
    "Embedder",
    "SentenceTransformerEmbedder",
    "create_backend",
]
