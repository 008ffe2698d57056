"""
FAISS vector index construction.

Embeddings are L2-normalized and stored in an inner-product index, so scores
are cosine similarities. The embedder is injected; the default wraps a
sentence-transformers model that is loaded on first use.
"""

import logging
from typing import Optional, Protocol

import faiss
import numpy as np
from sentence_transformers import SentenceTransformer

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "all-MiniLM-L6-v2"


class Embedder(Protocol):
    def embed(self, texts: list[str]) -> np.ndarray:
        """Return a (len(texts), dim) float array."""
        ...


class SentenceTransformerEmbedder:
    """Embedder backed by a sentence-transformers model."""

    def __init__(self, model_name: str = DEFAULT_MODEL):
        self.model_name = model_name
        self._model: Optional[SentenceTransformer] = None

    def _get_model(self) -> SentenceTransformer:
        """Lazy load the embedding model."""
        if self._model is None:
            logger.info(f"Loading embedding model {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, texts: list[str]) -> np.ndarray:
        model = self._get_model()
        return model.encode(texts, normalize_embeddings=True, show_progress_bar=False)


def _normalized(embeddings: np.ndarray) -> np.ndarray:
    embeddings = np.asarray(embeddings, dtype="float32")
    if embeddings.ndim == 1:
        embeddings = embeddings.reshape(1, -1)
    embeddings = np.ascontiguousarray(embeddings)
    faiss.normalize_L2(embeddings)
    return embeddings


class VectorIndex:
    """
    FAISS index over one paper's records.

    Args:
        index: FAISS inner-product index
        record_ids: Record id per vector
        embedder: Embedder used for queries (same as for the records)
    """

    def __init__(self, index: faiss.Index, record_ids: list[str], embedder: Embedder):
        self.index = index
        self.record_ids = record_ids
        self.embedder = embedder

    def search(self, query: str, top_k: int = 10) -> list[tuple[str, float]]:
        """
        Search for similar records.

        Returns:
            List of (record_id, cosine_similarity) tuples
        """
        k = min(top_k, len(self.record_ids))
        if k <= 0:
            return []

        query_embedding = _normalized(self.embedder.embed([query]))
        scores, indices = self.index.search(query_embedding, k)

        results = []
        for score, idx in zip(scores[0], indices[0]):
            if idx >= 0:
                results.append((self.record_ids[idx], float(score)))
        return results


def build_vector_index(
    texts: list[str],
    record_ids: list[str],
    embedder: Embedder,
) -> VectorIndex:
    """
    Build a FAISS index from record texts.

    Args:
        texts: Text per record
        record_ids: Record id per text
        embedder: Embedder producing fixed-size vectors

    Returns:
        VectorIndex ready for search
    """
    if len(texts) != len(record_ids):
        raise ValueError("texts and record_ids must have the same length")

    embeddings = _normalized(embedder.embed(texts))
    index = faiss.IndexFlatIP(embeddings.shape[1])
    index.add(embeddings)
    return VectorIndex(index=index, record_ids=record_ids, embedder=embedder)
