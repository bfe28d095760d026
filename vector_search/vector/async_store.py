"""
Async facade over a blocking vector store.

Each call runs in a worker thread under a caller-supplied timeout. A timed
out insert may still commit in its worker thread, so the caller gets a
retryable StoreUnavailable without knowing whether the write landed. Pass
an idempotency key and retry with the same key: the retry returns the id
of the committed document instead of storing it twice.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from .index import IVectorStore
from .types import Metric, Neighbor
from ..core.exceptions import StoreUnavailable


class AsyncVectorStore:
    """Runs IVectorStore operations without blocking the event loop."""

    def __init__(self, store: IVectorStore, default_timeout: float = 10.0):
        self.store = store
        self.default_timeout = default_timeout

    @property
    def dimension(self) -> int:
        return self.store.dimension

    async def _run(self, operation: str, timeout: Optional[float], func, *args):
        timeout = self.default_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)
        except asyncio.TimeoutError as e:
            raise StoreUnavailable(
                f"Vector store {operation} timed out after {timeout}s",
                details={"operation": operation, "timeout": timeout},
            ) from e

    async def insert(self, content: str, embedding: Sequence[float], key: Optional[str] = None,
                     timeout: Optional[float] = None) -> int:
        return await self._run("insert", timeout, self.store.insert, content, embedding, key)

    async def batch_insert(self, items: Sequence[Tuple[str, Sequence[float]]],
                           keys: Optional[Sequence[Optional[str]]] = None,
                           timeout: Optional[float] = None) -> List[int]:
        return await self._run("batch_insert", timeout, self.store.batch_insert, items, keys)

    async def nearest_neighbors(self, query: Sequence[float], metric: Metric = Metric.INNER_PRODUCT,
                                k: int = 5, timeout: Optional[float] = None) -> List[Neighbor]:
        return await self._run("nearest_neighbors", timeout, self.store.nearest_neighbors, query, metric, k)
