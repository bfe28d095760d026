"""
Vector overlay: embeddings, stores and similarity types.
"""

# SqliteVectorStore lives in .sqlite_store; it depends on core.dao, which imports from this package
from .index import IVectorStore, SimpleInMemoryVectorStore
from .faiss_store import FaissVectorStore
from .async_store import AsyncVectorStore
from .types import Document, Match, Metric, Neighbor, Query
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding, OpenAIEmbedding

__all__ = [
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'FaissVectorStore',
    'AsyncVectorStore',
    'Document',
    'Match',
    'Metric',
    'Neighbor',
    'Query',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OpenAIEmbedding',
]
