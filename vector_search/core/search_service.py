"""
Similarity search over a vector store.

Thresholds are always user-facing similarities: higher is more similar,
range [-1, 1], and a document matches only when its similarity strictly
exceeds the threshold. For the inner product metric the store ranks by
distance = -similarity, so the same rule reads ``distance < -threshold``.

Ranking by inner product equals ranking by cosine only for unit-length
embeddings. That is the embedding provider's job and is not checked here.
"""

import asyncio
import math
import uuid
from numbers import Real
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import InvalidLimit, InvalidThreshold, StoreUnavailable, VectorSearchError
from .retry import RetryConfig, retry_call
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore
from ..vector.types import Match, Metric, Neighbor, Query
from ..util.logging import logger


class SimilaritySearchEngine:
    """Turns (query vector, threshold, limit) into ranked matches. Holds no per-query state."""

    def __init__(self, store: IVectorStore, metric: Metric = Metric.INNER_PRODUCT, over_fetch: int = 2,
                 default_threshold: float = 0.78, default_limit: int = 10):
        if over_fetch < 1:
            raise ValueError("over_fetch must be >= 1")
        self.store = store
        self.metric = Metric(metric)
        self.over_fetch = over_fetch
        self.default_threshold = self.validate_threshold(default_threshold)
        self.default_limit = self.validate_limit(default_limit)

    @classmethod
    def from_config(cls, store: IVectorStore, config) -> "SimilaritySearchEngine":
        return cls(
            store,
            metric=Metric(config.search_metric),
            over_fetch=config.over_fetch,
            default_threshold=config.match_threshold,
            default_limit=config.match_count,
        )

    @staticmethod
    def validate_threshold(threshold) -> float:
        if isinstance(threshold, bool) or not isinstance(threshold, Real) or not math.isfinite(threshold):
            raise InvalidThreshold(f"threshold must be a finite number, got {threshold!r}", field="threshold")
        if not -1.0 <= threshold <= 1.0:
            raise InvalidThreshold(f"threshold must be in [-1, 1], got {threshold}", field="threshold")
        return float(threshold)

    @staticmethod
    def validate_limit(limit) -> int:
        if isinstance(limit, bool) or not isinstance(limit, (int, np.integer)) or limit < 0:
            raise InvalidLimit(f"limit must be a non-negative integer, got {limit!r}", field="limit")
        return int(limit)

    def build_query(self, embedding: Sequence[float], threshold: Optional[float] = None,
                    limit: Optional[int] = None) -> Query:
        """Validate a request; errors name the offending field."""
        try:
            vector = self.store.validate_embedding(embedding, field="query_embedding")
            threshold = self.validate_threshold(self.default_threshold if threshold is None else threshold)
            limit = self.validate_limit(self.default_limit if limit is None else limit)
        except VectorSearchError as e:
            logger.log_validation_error("search", e.field, e.message)
            raise
        return Query(embedding=vector, threshold=threshold, limit=limit)

    def _passes(self, score: float, threshold: float) -> bool:
        return score > threshold

    def query(self, embedding: Sequence[float], threshold: Optional[float] = None,
              limit: Optional[int] = None) -> List[Match]:
        """Return at most ``limit`` documents more similar than ``threshold``, most similar first.

        The store returns candidates in proximity order, so the window starts
        at ``limit * over_fetch`` and is doubled while every candidate passed
        the threshold but there are still too few of them. An approximate
        store can return fewer candidates than requested.
        """
        query = self.build_query(embedding, threshold, limit)
        total = self.store.count()
        if query.limit == 0 or total == 0:
            return []

        window = min(query.limit * self.over_fetch, total)
        while True:
            candidates = self.store.nearest_neighbors(query.embedding, self.metric, window)
            passing = [c for c in candidates if self._passes(c.score, query.threshold)]
            if len(passing) >= query.limit or len(passing) < len(candidates) or window >= total:
                break
            window = min(window * 2, total)

        matches = self._to_matches(passing[:query.limit])
        logger.log_search(self.metric.value, query.threshold, query.limit, len(candidates), len(matches))
        return matches

    def match(self, query_embedding: Sequence[float], match_threshold: Optional[float] = None) -> List[Match]:
        """Every document whose similarity exceeds ``match_threshold``, most similar first.

        Mirrors the ``match_documents`` database procedure: no limit is applied
        here; callers project columns and cut rows afterwards.
        """
        query = self.build_query(query_embedding, match_threshold, limit=0)
        total = self.store.count()
        if total == 0:
            return []

        candidates = self.store.nearest_neighbors(query.embedding, self.metric, total)
        matches = self._to_matches([c for c in candidates if self._passes(c.score, query.threshold)])
        logger.log_search(self.metric.value, query.threshold, total, len(candidates), len(matches),
                          {"procedure": "match_documents"})
        return matches

    async def aquery(self, embedding: Sequence[float], threshold: Optional[float] = None,
                     limit: Optional[int] = None, timeout: float = 10.0) -> List[Match]:
        """Run :meth:`query` in a worker thread. A timeout raises StoreUnavailable."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(self.query, embedding, threshold, limit), timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(f"Similarity query timed out after {timeout}s",
                                   details={"timeout": timeout}) from e

    def _to_matches(self, neighbors: List[Neighbor]) -> List[Match]:
        matches = []
        for neighbor in neighbors:
            document = self.store.get(neighbor.id)
            # Deleted between ranking and lookup
            if document is None:
                continue
            matches.append(Match(
                id=document.id,
                content=document.content,
                embedding=document.embedding,
                similarity=neighbor.score,
            ))
        return matches


class SemanticSearchService:
    """Application layer: embeds text, writes documents, runs text searches.

    Transient provider and store failures are retried a bounded number of
    times. An embedding is computed once per call; only the failed step is
    retried. Inserts carry fresh idempotency keys, so a retried insert whose
    first attempt did commit stores nothing new.
    """

    def __init__(self, engine: SimilaritySearchEngine, provider: IEmbeddingProvider,
                 retry_config: Optional[RetryConfig] = None):
        self.engine = engine
        self.store = engine.store
        self.provider = provider
        self.retry_config = retry_config or RetryConfig()

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return retry_call(lambda: self.provider.embed_texts(list(texts)), self.retry_config, "embed")

    def index_text(self, content: str) -> int:
        """Embed ``content`` and store it. Returns the new document id."""
        return self.index_texts([content])[0]

    def index_texts(self, contents: Sequence[str]) -> List[int]:
        """Embed a batch of texts in one provider call and store them atomically."""
        if not contents:
            return []
        vectors = self.embed(contents)
        items = list(zip(contents, vectors))
        keys = [uuid.uuid4().hex for _ in items]
        return retry_call(lambda: self.store.batch_insert(items, keys=keys), self.retry_config, "insert")

    def search_text(self, text: str, threshold: Optional[float] = None,
                    limit: Optional[int] = None) -> List[Match]:
        vector = self.embed([text])[0]
        return retry_call(lambda: self.engine.query(vector, threshold, limit), self.retry_config, "search")
