"""
FAISS-backed vector store with an incrementally built HNSW graph.

The HNSW path is approximate: a document can be missed when the graph
search does not reach it (raise ``ef_search`` or ``over_fetch`` to trade
speed for recall). Candidates it does return are re-scored exactly, so
their order matches the exact scan. Small stores, queries on a metric the
graph was not built for, and queries arriving while the graph is being
updated all use the exact scan instead.
"""

import threading
from typing import List, Sequence, Set

import numpy as np

from .index import SimpleInMemoryVectorStore, _Snapshot, _check_k
from .types import Metric, Neighbor, rank
from ..util.logging import logger


class FaissVectorStore(SimpleInMemoryVectorStore):
    """FAISS HNSW implementation of IVectorStore."""

    def __init__(self, dimension: int = 384, m: int = 16, ef_construction: int = 64,
                 ef_search: int = 64, exact_search_threshold: int = 1000, over_fetch: int = 2,
                 index_metric: Metric = Metric.INNER_PRODUCT):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Dimension of the vectors
            m: Neighbours per node in the HNSW graph
            ef_construction: Candidate list size while inserting into the graph
            ef_search: Candidate list size while searching the graph
            exact_search_threshold: Below this many documents queries use the exact scan
            over_fetch: Multiplier on ``k`` for candidates pulled from the graph
            index_metric: Metric the graph is built for; other metrics use the exact scan
        """
        try:
            import faiss
            self.faiss = faiss
        except ImportError:
            raise ImportError("FAISS not installed. Please install faiss-cpu package.")

        super().__init__(dimension)
        self.m = m
        self.ef_construction = ef_construction
        self.ef_search = ef_search
        self.exact_search_threshold = exact_search_threshold
        self.over_fetch = max(1, over_fetch)
        self.index_metric = Metric(index_metric)

        # Graph mutation and graph search are not safe to run concurrently
        self._index_lock = threading.Lock()
        self._tombstones: Set[int] = set()
        self._new_index()

    def _new_index(self) -> None:
        hnsw = self.faiss.IndexHNSWFlat(self.dimension, self.m, self.faiss.METRIC_INNER_PRODUCT)
        hnsw.hnsw.efConstruction = self.ef_construction
        hnsw.hnsw.efSearch = self.ef_search
        self._hnsw = hnsw
        self.index = self.faiss.IndexIDMap(hnsw)
        self._tombstones = set()

    def _prepare(self, rows: np.ndarray) -> np.ndarray:
        """Vectors as the graph sees them; cosine graphs hold unit-length rows."""
        rows = np.ascontiguousarray(rows, dtype=np.float32)
        if self.index_metric is Metric.COSINE:
            norms = np.linalg.norm(rows, axis=1, keepdims=True)
            rows = np.divide(rows, norms, out=np.zeros_like(rows), where=norms > 0)
        return rows

    def _on_added(self, ids: np.ndarray, rows: np.ndarray) -> None:
        with self._index_lock:
            self.index.add_with_ids(self._prepare(rows), ids.astype(np.int64))

    def _on_deleted(self, doc_id: int) -> None:
        # HNSW graphs do not support removal; deleted ids are filtered at query time
        with self._index_lock:
            self._tombstones.add(doc_id)
        if len(self._tombstones) > max(self.exact_search_threshold, self.index.ntotal // 2):
            self._rebuild_locked()

    def _on_cleared(self) -> None:
        with self._index_lock:
            self._new_index()

    def compact(self) -> None:
        """Rebuild the graph from the live documents, dropping tombstones."""
        with self._write_lock:
            self._rebuild_locked()

    def _rebuild_locked(self) -> None:
        snapshot = self._snapshot
        with self._index_lock:
            self._new_index()
            if len(snapshot.ids):
                self.index.add_with_ids(self._prepare(snapshot.matrix), snapshot.ids.astype(np.int64))
        logger.log_vector_operation("compact", None, {"documents": len(snapshot.ids)})

    def nearest_neighbors(self, query: Sequence[float], metric: Metric = Metric.INNER_PRODUCT,
                          k: int = 5) -> List[Neighbor]:
        """Search the HNSW graph when it applies, otherwise scan exactly."""
        vector = self.validate_embedding(query, field="query")
        _check_k(k)
        metric = Metric(metric)
        snapshot = self._snapshot

        if k == 0 or len(snapshot.ids) == 0:
            return []
        if metric is not self.index_metric or len(snapshot.ids) < self.exact_search_threshold:
            return self._exact_search(snapshot, vector, metric, k)

        # Readers never wait for a graph update
        if not self._index_lock.acquire(blocking=False):
            return self._exact_search(snapshot, vector, metric, k)
        try:
            fetch = min(k * self.over_fetch + len(self._tombstones), self.index.ntotal)
            _, labels = self.index.search(self._prepare(vector.reshape(1, -1)), fetch)
            tombstones = set(self._tombstones)
        finally:
            self._index_lock.release()

        return self._rescore(snapshot, vector, metric, labels[0], tombstones, k)

    def _rescore(self, snapshot: _Snapshot, query: np.ndarray, metric: Metric, labels: np.ndarray,
                 tombstones: Set[int], k: int) -> List[Neighbor]:
        candidates = [int(label) for label in labels
                      if label >= 0 and int(label) not in tombstones and int(label) in snapshot.positions]
        if not candidates:
            return []
        ids = np.array(candidates, dtype=np.int64)
        rows = snapshot.matrix[[snapshot.positions[i] for i in candidates]]
        return rank(ids, metric.similarities(rows, query), k)
