"""
Test cases for the FAISS HNSW vector store.
"""

import numpy as np
import pytest

from vector_search.core.exceptions import DimensionMismatch
from vector_search.vector import FaissVectorStore, SimpleInMemoryVectorStore
from vector_search.vector.types import Metric


def random_unit_vectors(n, dimension, seed=7):
    rng = np.random.default_rng(seed)
    vectors = rng.standard_normal((n, dimension))
    return vectors / np.linalg.norm(vectors, axis=1, keepdims=True)


@pytest.fixture
def populated():
    """An HNSW store and an exact store holding the same 200 documents."""
    vectors = random_unit_vectors(200, 16)
    # ef_search above the document count makes the graph search exhaustive
    hnsw = FaissVectorStore(dimension=16, ef_search=256, exact_search_threshold=0)
    exact = SimpleInMemoryVectorStore(dimension=16)
    items = [(f"doc {i}", v) for i, v in enumerate(vectors)]
    hnsw.batch_insert(items)
    exact.batch_insert(items)
    return hnsw, exact


def test_faiss_store_initialization():
    """Test that FaissVectorStore can be initialized correctly."""
    store = FaissVectorStore(dimension=384)

    assert store.dimension == 384
    assert store.index.ntotal == 0
    assert store.count() == 0


def test_insert_adds_to_graph():
    store = FaissVectorStore(dimension=4)
    store.insert("a", [1.0, 0.0, 0.0, 0.0])
    store.batch_insert([("b", [0.0, 1.0, 0.0, 0.0]), ("c", [0.0, 0.0, 1.0, 0.0])])

    assert store.index.ntotal == 3
    assert store.count() == 3


def test_dimension_mismatch_does_not_touch_graph():
    store = FaissVectorStore(dimension=4)
    with pytest.raises(DimensionMismatch):
        store.insert("bad", [1.0, 0.0])
    assert store.index.ntotal == 0


def test_hnsw_ranking_matches_exact_scan(populated):
    """The graph path returns the same ordering as the exact scan."""
    hnsw, exact = populated
    for query in random_unit_vectors(10, 16, seed=11):
        graph_results = hnsw.nearest_neighbors(query, Metric.INNER_PRODUCT, k=10)
        exact_results = exact.nearest_neighbors(query, Metric.INNER_PRODUCT, k=10)
        assert [r.id for r in graph_results] == [r.id for r in exact_results]
        assert [r.score for r in graph_results] == pytest.approx([r.score for r in exact_results])


def test_small_store_uses_exact_scan():
    """Below the threshold the graph is never searched."""
    store = FaissVectorStore(dimension=2, exact_search_threshold=100)
    store.insert("a", [1.0, 0.0])
    store.insert("b", [0.0, 1.0])

    store.index = None  # any graph access would fail
    results = store.nearest_neighbors([1.0, 0.0], Metric.INNER_PRODUCT, k=2)
    assert [r.id for r in results] == [1, 2]


def test_other_metric_falls_back_to_exact_scan():
    """A graph built for inner product does not answer cosine queries."""
    store = FaissVectorStore(dimension=2, exact_search_threshold=0)
    store.insert("aligned, short", [0.5, 0.0])
    store.insert("off-axis, long", [3.0, 3.0])

    cosine = store.nearest_neighbors([1.0, 0.0], Metric.COSINE, k=2)
    inner = store.nearest_neighbors([1.0, 0.0], Metric.INNER_PRODUCT, k=2)
    assert [r.id for r in cosine] == [1, 2]
    assert [r.id for r in inner] == [2, 1]


def test_cosine_graph_normalizes_vectors():
    store = FaissVectorStore(dimension=2, exact_search_threshold=0, index_metric=Metric.COSINE)
    store.insert("aligned, short", [0.5, 0.0])
    store.insert("off-axis, long", [3.0, 3.0])

    results = store.nearest_neighbors([2.0, 0.0], Metric.COSINE, k=2)
    assert [r.id for r in results] == [1, 2]
    assert results[0].score == pytest.approx(1.0)


def test_busy_graph_does_not_block_readers(populated):
    """While the graph is locked for an update, queries are answered by the exact scan."""
    hnsw, exact = populated
    query = random_unit_vectors(1, 16, seed=3)[0]

    hnsw._index_lock.acquire()
    try:
        results = hnsw.nearest_neighbors(query, Metric.INNER_PRODUCT, k=5)
    finally:
        hnsw._index_lock.release()

    assert results == exact.nearest_neighbors(query, Metric.INNER_PRODUCT, k=5)


def test_deleted_documents_are_filtered(populated):
    hnsw, exact = populated
    query = random_unit_vectors(1, 16, seed=5)[0]
    best = hnsw.nearest_neighbors(query, Metric.INNER_PRODUCT, k=1)[0].id

    assert hnsw.delete(best) is True
    exact.delete(best)

    results = hnsw.nearest_neighbors(query, Metric.INNER_PRODUCT, k=5)
    assert best not in [r.id for r in results]
    assert [r.id for r in results] == [r.id for r in exact.nearest_neighbors(query, Metric.INNER_PRODUCT, k=5)]


def test_compact_drops_tombstones(populated):
    hnsw, _ = populated
    hnsw.delete(1)
    hnsw.delete(2)
    assert hnsw.index.ntotal == 200

    hnsw.compact()
    assert hnsw.index.ntotal == 198
    assert hnsw.count() == 198


def test_faiss_store_clear():
    """Test clearing all records from the FAISS store."""
    store = FaissVectorStore(dimension=2)
    store.insert("a", [1.0, 0.0])
    store.clear()

    assert store.count() == 0
    assert store.index.ntotal == 0
    assert store.nearest_neighbors([1.0, 0.0], Metric.INNER_PRODUCT, k=1) == []


def test_faiss_store_empty_search():
    """Test searching when the store is empty."""
    store = FaissVectorStore(dimension=3, exact_search_threshold=0)
    assert store.nearest_neighbors([1.0, 0.0, 0.0], Metric.INNER_PRODUCT, k=5) == []
