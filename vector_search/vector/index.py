"""
Vector store interface and the exact, in-memory implementation.

Writers serialize on a lock and publish an immutable snapshot; readers
work on whichever snapshot is current and never wait for a writer.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from .types import Document, Metric, Neighbor, as_vector, rank
from ..core.exceptions import DimensionMismatch, InvalidLimit
from ..util.logging import logger


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Dimension every stored embedding must have."""
        pass

    @abstractmethod
    def insert(self, content: str, embedding: Sequence[float], key: Optional[str] = None) -> int:
        """Append a document and return its id.

        A document stored earlier under the same ``key`` is not stored again;
        its id is returned instead.
        """
        pass

    @abstractmethod
    def batch_insert(self, items: Sequence[Tuple[str, Sequence[float]]],
                     keys: Optional[Sequence[Optional[str]]] = None) -> List[int]:
        """Append several documents; either all of them are stored or none."""
        pass

    @abstractmethod
    def nearest_neighbors(self, query: Sequence[float], metric: Metric = Metric.INNER_PRODUCT,
                          k: int = 5) -> List[Neighbor]:
        """Return up to ``k`` documents ranked by similarity to ``query``, best first."""
        pass

    @abstractmethod
    def get(self, doc_id: int) -> Optional[Document]:
        """Get a document by id."""
        pass

    @abstractmethod
    def delete(self, doc_id: int) -> bool:
        """Delete a document by id. Returns False if it did not exist."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of stored documents."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Remove all documents from the store."""
        pass

    def health_details(self) -> Dict[str, Any]:
        """Backend specific health information for the health endpoint."""
        return {}

    def get_many(self, doc_ids: Iterable[int]) -> List[Document]:
        """Get several documents, skipping ids that no longer exist."""
        documents = []
        for doc_id in doc_ids:
            document = self.get(doc_id)
            if document is not None:
                documents.append(document)
        return documents

    def validate_embedding(self, embedding: Sequence[float], field: str = "embedding") -> np.ndarray:
        """Return ``embedding`` as a float32 vector or raise DimensionMismatch."""
        vector = as_vector(embedding)
        if vector.shape[0] != self.dimension:
            raise DimensionMismatch(self.dimension, vector.shape[0], field=field)
        return vector


class _Snapshot(NamedTuple):
    ids: np.ndarray
    matrix: np.ndarray
    documents: Dict[int, Document]
    positions: Dict[int, int]


def _empty_snapshot(dimension: int) -> _Snapshot:
    return _Snapshot(
        ids=np.zeros(0, dtype=np.int64),
        matrix=np.zeros((0, dimension), dtype=np.float32),
        documents={},
        positions={},
    )


class SimpleInMemoryVectorStore(IVectorStore):
    """In-memory vector store ranking by exact brute-force scan."""

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension
        self._write_lock = threading.Lock()
        self._snapshot = _empty_snapshot(dimension)
        self._next_id = 1
        self._keys: Dict[str, int] = {}

    @property
    def dimension(self) -> int:
        return self._dimension

    def insert(self, content: str, embedding: Sequence[float], key: Optional[str] = None) -> int:
        """Append a document and return its id."""
        return self.batch_insert([(content, embedding)], keys=[key])[0]

    def batch_insert(self, items: Sequence[Tuple[str, Sequence[float]]],
                     keys: Optional[Sequence[Optional[str]]] = None) -> List[int]:
        """Append several documents; every vector is validated before any is stored.

        Items whose key is already known resolve to the stored document's id.
        """
        keys = normalize_keys(items, keys)
        vectors = [self.validate_embedding(embedding) for _, embedding in items]
        if not vectors:
            return []

        with self._write_lock:
            now = datetime.now()
            known = dict(self._keys)
            ids = []
            documents = []
            for (content, _), vector, key in zip(items, vectors, keys):
                if key is not None and key in known:
                    ids.append(known[key])
                    continue
                document = Document(id=self._next_id, content=content, embedding=vector, created_at=now)
                self._next_id += 1
                if key is not None:
                    known[key] = document.id
                documents.append(document)
                ids.append(document.id)
            if documents:
                self._publish_added(documents)
            self._keys = known

        for document in documents:
            logger.log_document_insert(document.id, document.content, self._dimension)
        return ids

    def add(self, documents: Sequence[Document]) -> None:
        """Load documents whose ids were assigned elsewhere (e.g. by a database)."""
        for document in documents:
            document.embedding = self.validate_embedding(document.embedding)
        if not documents:
            return

        with self._write_lock:
            existing = self._snapshot.positions
            duplicates = [d.id for d in documents if d.id in existing]
            if duplicates:
                raise ValueError(f"Documents already present: {duplicates}")
            self._publish_added(list(documents))
            self._next_id = max(self._next_id, max(d.id for d in documents) + 1)

    def _publish_added(self, documents: List[Document]) -> None:
        """Build and publish a snapshot containing ``documents``. Caller holds the write lock."""
        snapshot = self._snapshot
        new_ids = np.array([d.id for d in documents], dtype=np.int64)
        new_rows = np.vstack([d.embedding for d in documents]).astype(np.float32)

        merged_documents = dict(snapshot.documents)
        positions = dict(snapshot.positions)
        offset = len(snapshot.ids)
        for i, document in enumerate(documents):
            merged_documents[document.id] = document
            positions[document.id] = offset + i

        self._snapshot = _Snapshot(
            ids=np.concatenate([snapshot.ids, new_ids]),
            matrix=np.ascontiguousarray(np.vstack([snapshot.matrix, new_rows])),
            documents=merged_documents,
            positions=positions,
        )
        self._on_added(new_ids, new_rows)

    def _on_added(self, ids: np.ndarray, rows: np.ndarray) -> None:
        """Hook for index maintenance after new rows are published."""
        pass

    def nearest_neighbors(self, query: Sequence[float], metric: Metric = Metric.INNER_PRODUCT,
                          k: int = 5) -> List[Neighbor]:
        """Return up to ``k`` documents ranked by similarity to ``query``, best first."""
        vector = self.validate_embedding(query, field="query")
        _check_k(k)
        return self._exact_search(self._snapshot, vector, Metric(metric), k)

    def _exact_search(self, snapshot: _Snapshot, query: np.ndarray, metric: Metric, k: int) -> List[Neighbor]:
        if k == 0 or len(snapshot.ids) == 0:
            return []
        scores = metric.similarities(snapshot.matrix, query)
        return rank(snapshot.ids, scores, k)

    def get(self, doc_id: int) -> Optional[Document]:
        return self._snapshot.documents.get(doc_id)

    def delete(self, doc_id: int) -> bool:
        """Delete a document by id."""
        with self._write_lock:
            snapshot = self._snapshot
            if doc_id not in snapshot.positions:
                return False

            keep = snapshot.ids != doc_id
            ids = snapshot.ids[keep]
            documents = {i: d for i, d in snapshot.documents.items() if i != doc_id}
            self._snapshot = _Snapshot(
                ids=ids,
                matrix=np.ascontiguousarray(snapshot.matrix[keep]),
                documents=documents,
                positions={int(i): pos for pos, i in enumerate(ids)},
            )
            self._keys = {k: i for k, i in self._keys.items() if i != doc_id}
            self._on_deleted(doc_id)

        logger.log_vector_operation("delete", doc_id)
        return True

    def _on_deleted(self, doc_id: int) -> None:
        """Hook for index maintenance after a row is removed."""
        pass

    def count(self) -> int:
        return len(self._snapshot.ids)

    def clear(self) -> None:
        """Remove all documents. Ids keep increasing after a clear."""
        with self._write_lock:
            self._snapshot = _empty_snapshot(self._dimension)
            self._keys = {}
            self._on_cleared()
        logger.log_vector_operation("clear", None)

    def _on_cleared(self) -> None:
        pass


def _check_k(k: int) -> None:
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 0:
        raise InvalidLimit(f"k must be a non-negative integer, got {k!r}", field="k")


def normalize_keys(items: Sequence, keys: Optional[Sequence[Optional[str]]]) -> List[Optional[str]]:
    if keys is None:
        return [None] * len(items)
    if len(keys) != len(items):
        raise ValueError(f"Got {len(keys)} keys for {len(items)} items")
    return list(keys)
