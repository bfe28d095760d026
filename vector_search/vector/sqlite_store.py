"""
Durable vector store: SQLite holds the canonical documents, an in-memory
index (exact or FAISS HNSW) answers nearest-neighbour queries.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from .index import IVectorStore, SimpleInMemoryVectorStore, normalize_keys
from .types import Document, Metric, Neighbor
from ..core.dao import DocumentDAO
from ..core.db import health_check
from ..util.logging import logger


class SqliteVectorStore(IVectorStore):
    """SQLite-backed implementation of IVectorStore."""

    def __init__(self, db_path: str, dimension: int, index: Optional[SimpleInMemoryVectorStore] = None,
                 timeout: float = 10.0):
        """
        Open (or create) the store and load its documents into the index.

        Args:
            db_path: SQLite database file
            dimension: Embedding dimension; must match the one the file was created with
            index: Ranking index, defaults to an exact in-memory scan
            timeout: Seconds to wait on a locked database before failing
        """
        self.index = index if index is not None else SimpleInMemoryVectorStore(dimension)
        if self.index.dimension != dimension:
            raise ValueError(f"Index dimension {self.index.dimension} does not match store dimension {dimension}")
        self.dao = DocumentDAO(db_path, dimension, timeout=timeout)
        self.rebuild_index()

    @property
    def dimension(self) -> int:
        return self.dao.dimension

    def rebuild_index(self) -> int:
        """Reload the index from the documents table. Returns the number of documents loaded."""
        documents = self.dao.list_documents()
        self.index.clear()
        self.index.add(documents)
        logger.log_vector_operation("rebuild_index", None, {"documents": len(documents)})
        return len(documents)

    def insert(self, content: str, embedding: Sequence[float], key: Optional[str] = None) -> int:
        """Commit a document to SQLite, then make it visible in the index."""
        return self.batch_insert([(content, embedding)], keys=[key])[0]

    def batch_insert(self, items: Sequence[Tuple[str, Sequence[float]]],
                     keys: Optional[Sequence[Optional[str]]] = None) -> List[int]:
        keys = normalize_keys(items, keys)
        vectors = [self.validate_embedding(embedding) for _, embedding in items]
        if not vectors:
            return []

        # A failed commit raises StoreUnavailable before the index is touched
        ids, documents = self.dao.insert_documents(
            [(content, vector) for (content, _), vector in zip(items, vectors)], keys
        )
        self.index.add(documents)

        for document in documents:
            logger.log_document_insert(document.id, document.content, self.dimension)
        return ids

    def nearest_neighbors(self, query: Sequence[float], metric: Metric = Metric.INNER_PRODUCT,
                          k: int = 5) -> List[Neighbor]:
        return self.index.nearest_neighbors(query, metric, k)

    def get(self, doc_id: int) -> Optional[Document]:
        return self.index.get(doc_id)

    def delete(self, doc_id: int) -> bool:
        deleted = self.dao.delete_document(doc_id)
        self.index.delete(doc_id)
        return deleted

    def count(self) -> int:
        return self.index.count()

    def clear(self) -> None:
        self.dao.clear_documents()
        self.index.clear()

    def health_details(self) -> Dict[str, Any]:
        """Database reachability and whether the index still mirrors the table."""
        if not health_check(self.dao.db_path, self.dao.timeout):
            return {"database": "unreachable"}
        stored = self.dao.count_documents()
        indexed = self.index.count()
        return {"database": "ok", "stored": stored, "indexed": indexed, "in_sync": stored == indexed}
