"""Embedding functionality for similarity and prior-mapping search.

This module provides a light wrapper over ``model2vec`` (`StaticModel`) for
fast CPU-only sentence embeddings, an Annoy-backed semantic index, and the
prior-mapping index that finds previously successful queries similar to a
new one.

Classes:
- TextEncoder: Protocol for anything that encodes texts into vectors
- Embedder: Wrapper for Model2Vec ``StaticModel`` embedding models
- SemanticIndex: Annoy-backed semantic similarity index
- PriorMappingIndex: Vector search over prior query-to-tables mappings
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, cast, runtime_checkable

from annoy import AnnoyIndex
from fastmcp.utilities.logging import get_logger
from model2vec import StaticModel
import numpy as np

from .constants import Constants
from .exceptions import EmbeddingError
from .models import PriorMapping

# Logger
_logger = get_logger("context_engine.embeddings")

ANNOY_TREES = 10


@runtime_checkable
class TextEncoder(Protocol):
    """Protocol for embedding backends.

    Any backend must implement an ``encode`` method compatible with
    Model2Vec's interface, returning a 2D NumPy array.
    """

    def encode(self, texts: list[str]) -> np.ndarray:  # pragma: no cover - protocol
        ...


class Embedder:
    """Wrapper for Model2Vec static embedding models.

    Attributes:
        model_name: Name or path of the loaded model
    """

    def __init__(self, model_name: str = Constants.DEFAULT_EMBEDDING_MODEL) -> None:
        """Initialize the embedder with a Model2Vec model.

        Args:
            model_name: Name or path of the Model2Vec model to load.

        Raises:
            OSError: If the model cannot be downloaded or read.
        """
        backend = StaticModel.from_pretrained(model_name)
        self._backend: TextEncoder = cast(TextEncoder, backend)
        self.model_name = model_name
        _logger.info("Embedding backend: model2vec model=%s", model_name)

    def encode(self, texts: list[str]) -> np.ndarray:
        """Encode texts into float32 vectors of shape ``(len(texts), dim)``.

        Raises:
            EmbeddingError: If the backend fails to encode.
        """
        try:
            vecs = self._backend.encode(list(texts))
        except (RuntimeError, ValueError) as exc:
            msg = f"Failed to encode {len(texts)} texts: {exc}"
            raise EmbeddingError(msg) from exc
        if vecs.dtype != np.float32:
            vecs = vecs.astype("float32", copy=False)
        return vecs


class SemanticIndex:
    """Annoy-backed semantic similarity index for fast vector search.

    Attributes:
        labels: List of labels corresponding to indexed vectors
        index: Annoy index for fast similarity search
    """

    def __init__(self) -> None:
        """Initialize an empty semantic index."""
        self.labels: list[str] = []
        self.index: AnnoyIndex | None = None

    def build(self, labels: list[str], vectors: np.ndarray) -> None:
        """Build the semantic index from labels and vectors.

        Args:
            labels: List of string labels for the vectors
            vectors: NumPy array of embedding vectors
        """
        self.labels = labels
        if vectors.shape[0] == 0:
            self.index = None
            return

        # angular = cosine distance
        self.index = AnnoyIndex(vectors.shape[1], "angular")
        normalized = vectors / (np.linalg.norm(vectors, axis=1, keepdims=True) + 1e-8)
        for i, vector in enumerate(normalized):
            self.index.add_item(i, vector.tolist())
        self.index.build(ANNOY_TREES)

    def search(self, query_vector: np.ndarray, k: int = 10) -> list[tuple[str, float]]:
        """Search for the most similar vectors.

        Args:
            query_vector: Query embedding vector
            k: Number of top results to return

        Returns:
            List of (label, cosine_similarity) tuples, most similar first
        """
        if self.index is None or not self.labels:
            return []

        query_normalized = query_vector / (np.linalg.norm(query_vector) + 1e-8)
        indices, distances = self.index.get_nns_by_vector(
            query_normalized.tolist(), k, include_distances=True
        )
        # Angular distance back to cosine similarity: cos = 1 - d^2 / 2
        return [
            (self.labels[idx], 1.0 - (dist * dist / 2.0))
            for idx, dist in zip(indices, distances, strict=False)
        ]


class PriorMappingIndex:
    """Vector search over prior query-to-tables mappings.

    Implements the ``PriorMappingSearch`` capability used by the relevance
    scorer to boost tables that answered similar questions before.
    """

    def __init__(self, encoder: TextEncoder) -> None:
        self._encoder = encoder
        self._mappings: list[PriorMapping] = []
        self._index = SemanticIndex()

    @classmethod
    def build(cls, mappings: Iterable[PriorMapping], encoder: TextEncoder) -> PriorMappingIndex:
        """Encode prior queries and build the index.

        Args:
            mappings: Prior mappings with non-empty query text
            encoder: Text encoder used for both mappings and new queries

        Returns:
            A ready-to-query index
        """
        index = cls(encoder)
        index._mappings = [m for m in mappings if m.query.strip() and m.tables]
        if index._mappings:
            vectors = encoder.encode([m.query for m in index._mappings])
            index._index.build([str(i) for i in range(len(index._mappings))], vectors)
        _logger.info("Prior mapping index built with %d mappings", len(index._mappings))
        return index

    def __len__(self) -> int:
        return len(self._mappings)

    def find_similar(
        self, query: str, k: int, threshold: float
    ) -> list[tuple[PriorMapping, float]]:
        """Return up to ``k`` prior mappings with similarity >= ``threshold``."""
        if not self._mappings or not query.strip() or k <= 0:
            return []
        query_vector = self._encoder.encode([query])[0]
        hits = self._index.search(query_vector, k)
        return [
            (self._mappings[int(label)], similarity)
            for label, similarity in hits
            if similarity >= threshold
        ]
