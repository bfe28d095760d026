"""
Vector overlay types: documents, metrics and ranked results.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np


class Metric(str, Enum):
    """Similarity metrics supported by the vector stores.

    INNER_PRODUCT is stored as a distance (negative inner product, lower is
    closer) but always reported as a similarity. It ranks like cosine only
    when embeddings are unit length.
    """

    INNER_PRODUCT = "inner_product"
    COSINE = "cosine"

    def similarities(self, matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
        """Score every row of ``matrix`` against ``query``, higher is more similar."""
        if matrix.shape[0] == 0:
            return np.zeros(0, dtype=np.float64)

        matrix = np.asarray(matrix, dtype=np.float64)
        query = np.asarray(query, dtype=np.float64)
        dots = matrix @ query
        if self is Metric.INNER_PRODUCT:
            return dots

        # Zero vectors have no direction; they score 0 rather than NaN
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.zeros_like(dots)
        np.divide(dots, norms, out=scores, where=norms > 0)
        return scores


@dataclass
class Document:
    """A stored document with its embedding."""

    id: int
    """Unique, monotonic identifier assigned on insert"""

    content: str
    """The text the embedding was generated from"""

    embedding: np.ndarray
    """Embedding vector of the store's dimension"""

    created_at: Optional[datetime] = None
    """When the document was committed"""


@dataclass(frozen=True)
class Neighbor:
    """A ranked candidate returned by a vector store."""

    id: int
    score: float


@dataclass
class Query:
    """Ephemeral similarity query."""

    embedding: np.ndarray
    threshold: float
    limit: int


@dataclass
class Match:
    """A document matched by the search engine with its similarity."""

    id: int
    content: str
    embedding: np.ndarray
    similarity: float

    def to_dict(self, columns: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        row = {
            "id": self.id,
            "content": self.content,
            "embedding": [float(x) for x in self.embedding],
            "similarity": float(self.similarity),
        }
        if columns is None:
            return row
        return {column: row[column] for column in columns}


MATCH_COLUMNS = ("id", "content", "embedding", "similarity")


def as_vector(values: Iterable[float]) -> np.ndarray:
    """Convert a list or array into a flat float32 vector."""
    return np.asarray(values, dtype=np.float32).reshape(-1)


def rank(ids: np.ndarray, scores: np.ndarray, k: int) -> List[Neighbor]:
    """Order by descending score, ties by ascending id, and keep the first ``k``."""
    if k <= 0 or len(ids) == 0:
        return []
    order = np.lexsort((ids, -scores))[:k]
    return [Neighbor(id=int(ids[i]), score=float(scores[i])) for i in order]


def project(matches: List[Match], columns: Optional[Sequence[str]] = None,
            limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Apply a column projection and a row limit to already-ranked matches."""
    if columns is not None:
        unknown = [c for c in columns if c not in MATCH_COLUMNS]
        if unknown:
            raise ValueError(f"Unknown columns: {unknown}; expected a subset of {list(MATCH_COLUMNS)}")
    if limit is not None:
        matches = matches[:max(limit, 0)]
    return [m.to_dict(columns) for m in matches]
