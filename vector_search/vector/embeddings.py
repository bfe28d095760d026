"""
Embedding providers.

Every provider returns unit-length vectors; the search engine's inner
product ranking relies on it but does not check it.
"""

import hashlib
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import numpy as np
import requests
from sentence_transformers import SentenceTransformer

from ..core.exceptions import DimensionMismatch, ProviderRejected, ProviderUnavailable
from ..util.logging import logger

DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
DEFAULT_SENTENCE_TRANSFORMER_MODEL = "all-MiniLM-L6-v2"


def normalize(vector: Sequence[float]) -> List[float]:
    """Scale a vector to unit length; zero vectors are returned unchanged."""
    array = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(array)
    if norm == 0:
        return array.tolist()
    return (array / norm).tolist()


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector for given text."""
        pass

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Generate one embedding per text, in input order."""
        return [self.embed_text(text) for text in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    The SHA-256 digest of the text seeds a random generator, so the same
    text always maps to the same unit vector without any model download.
    Unrelated texts land on nearly orthogonal vectors.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> List[float]:
        """Generate deterministic embedding vector using hash function."""
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        return normalize(rng.standard_normal(self.dimension))

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str = DEFAULT_SENTENCE_TRANSFORMER_MODEL, dimension: Optional[int] = None):
        self.model_name = model_name
        self._model = None
        self._dimension = dimension

    @property
    def model(self):
        if self._model is None:
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> List[float]:
        """Generate embedding vector using sentence transformers."""
        return self.embed_texts([text])[0]

    def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode a batch in one call."""
        if not texts:
            return []
        start = time.time()
        embeddings = self.model.encode(list(texts), convert_to_numpy=True, normalize_embeddings=True)
        logger.log_embedding_call("sentence_transformers", len(texts), start, time.time())

        vectors = embeddings.tolist()
        if self._dimension is not None and len(vectors[0]) != self._dimension:
            raise DimensionMismatch(self._dimension, len(vectors[0]), field="embedding")
        return vectors

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OpenAIEmbedding(IEmbeddingProvider):
    """Remote embeddings from an OpenAI-compatible ``/embeddings`` endpoint.

    Failures are split by whether retrying can help: timeouts, connection
    errors and 5xx responses raise ProviderUnavailable; any other error
    response (bad input, bad key, exhausted quota) raises ProviderRejected.
    """

    def __init__(self, api_key: str, model: str = DEFAULT_OPENAI_MODEL, dimension: int = 1536,
                 base_url: str = "https://api.openai.com/v1", timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def embed_text(self, text: str) -> List[float]:
        return self.embed_texts([text])[0]

    def embed_texts(self, texts: Sequence[str], timeout: Optional[float] = None) -> List[List[float]]:
        """Embed a batch with a single request, preserving input order."""
        if not texts:
            return []
        for i, text in enumerate(texts):
            if not isinstance(text, str) or not text.strip():
                raise ProviderRejected(f"Text at position {i} is empty", field="input")

        payload = {"model": self.model, "input": list(texts)}
        # Only the v3 models accept a reduced output size
        if self.model.startswith("text-embedding-3"):
            payload["dimensions"] = self.dimension

        start = time.time()
        try:
            response = self.session.post(
                f"{self.base_url}/embeddings",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout if timeout is None else timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.log_embedding_call("openai", len(texts), start, time.time(), "unavailable", {"error": str(e)[:100]})
            raise ProviderUnavailable(f"Embedding request failed: {e}") from e

        if response.status_code >= 500:
            logger.log_embedding_call("openai", len(texts), start, time.time(), "unavailable",
                                      {"status_code": response.status_code})
            raise ProviderUnavailable(
                f"Embedding provider returned {response.status_code}",
                details={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            logger.log_embedding_call("openai", len(texts), start, time.time(), "rejected",
                                      {"status_code": response.status_code})
            raise ProviderRejected(
                f"Embedding provider rejected the request ({response.status_code}): {self._error_message(response)}",
                field="input",
                details={"status_code": response.status_code},
            )

        vectors = self._parse(response, len(texts))
        logger.log_embedding_call("openai", len(texts), start, time.time())
        return vectors

    def _parse(self, response: requests.Response, expected: int) -> List[List[float]]:
        try:
            data = response.json()["data"]
            ordered = sorted(data, key=lambda item: item["index"])
            vectors = [item["embedding"] for item in ordered]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderRejected(f"Malformed embedding response: {e}") from e

        if len(vectors) != expected:
            raise ProviderRejected(f"Expected {expected} embeddings, got {len(vectors)}")
        for vector in vectors:
            if len(vector) != self.dimension:
                raise DimensionMismatch(self.dimension, len(vector), field="embedding")
        return vectors

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return response.text[:200]

    def get_dimension(self) -> int:
        return self.dimension
