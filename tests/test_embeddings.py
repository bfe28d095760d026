"""
Tests for the embedding providers.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest
import requests

from vector_search.core.exceptions import DimensionMismatch, ProviderRejected, ProviderUnavailable
from vector_search.vector.embeddings import DeterministicHashEmbedding, IEmbeddingProvider, OpenAIEmbedding


def test_embedding_interface():
    """Test that the embedding provider implements the interface correctly."""
    embedder = DeterministicHashEmbedding(dimension=384)

    assert isinstance(embedder, IEmbeddingProvider)
    assert embedder.get_dimension() == 384


def test_deterministic_embedding():
    """Test that the same input always produces the same output."""
    embedder = DeterministicHashEmbedding(dimension=384)

    vector1 = embedder.embed_text("Hello, world!")
    vector2 = DeterministicHashEmbedding(dimension=384).embed_text("Hello, world!")

    assert vector1 == vector2
    assert len(vector1) == 384


def test_hash_embeddings_are_unit_length():
    embedder = DeterministicHashEmbedding(dimension=64)
    for text in ["", "a", "Hello\n\t\rWorld!@#$%^&*()", "A" * 1000]:
        assert np.linalg.norm(embedder.embed_text(text)) == pytest.approx(1.0)


def test_different_inputs_produce_different_vectors():
    embedder = DeterministicHashEmbedding(dimension=384)
    assert embedder.embed_text("Hello, world!") != embedder.embed_text("Goodbye, world!")


def test_batch_preserves_order():
    embedder = DeterministicHashEmbedding(dimension=8)
    texts = ["one", "two", "three"]
    assert embedder.embed_texts(texts) == [embedder.embed_text(t) for t in texts]


def _response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    return response


def _provider(response=None, side_effect=None, **kwargs):
    session = MagicMock()
    session.post.return_value = response
    session.post.side_effect = side_effect
    kwargs.setdefault("dimension", 3)
    return OpenAIEmbedding(api_key="sk-test", session=session, **kwargs), session


def test_openai_batch_is_reordered_by_index():
    payload = {"data": [
        {"index": 1, "embedding": [0.0, 1.0, 0.0]},
        {"index": 0, "embedding": [1.0, 0.0, 0.0]},
    ]}
    provider, session = _provider(_response(payload=payload))

    vectors = provider.embed_texts(["first", "second"])

    assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
    _, kwargs = session.post.call_args
    assert kwargs["json"] == {"model": "text-embedding-3-small", "input": ["first", "second"], "dimensions": 3}
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert kwargs["timeout"] == 30.0


def test_openai_legacy_model_omits_dimensions():
    payload = {"data": [{"index": 0, "embedding": [1.0, 0.0, 0.0]}]}
    provider, session = _provider(_response(payload=payload), model="text-embedding-ada-002")

    provider.embed_text("hello")
    assert "dimensions" not in session.post.call_args[1]["json"]


def test_openai_caller_timeout_is_passed_through():
    payload = {"data": [{"index": 0, "embedding": [1.0, 0.0, 0.0]}]}
    provider, session = _provider(_response(payload=payload))

    provider.embed_texts(["hello"], timeout=2.5)
    assert session.post.call_args[1]["timeout"] == 2.5


@pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("refused")])
def test_openai_network_errors_are_unavailable(error):
    provider, _ = _provider(side_effect=error)
    with pytest.raises(ProviderUnavailable) as exc_info:
        provider.embed_text("hello")
    assert exc_info.value.retryable is True


@pytest.mark.parametrize("status_code", [500, 502, 503])
def test_openai_server_errors_are_unavailable(status_code):
    provider, _ = _provider(_response(status_code=status_code))
    with pytest.raises(ProviderUnavailable):
        provider.embed_text("hello")


@pytest.mark.parametrize("status_code", [400, 401, 429])
def test_openai_client_errors_are_rejected(status_code):
    payload = {"error": {"message": "You exceeded your current quota"}}
    provider, _ = _provider(_response(status_code=status_code, payload=payload))

    with pytest.raises(ProviderRejected) as exc_info:
        provider.embed_text("hello")
    assert exc_info.value.retryable is False
    assert "quota" in exc_info.value.message
    assert exc_info.value.details["status_code"] == status_code


def test_openai_empty_text_rejected_without_request():
    provider, session = _provider(_response(payload={"data": []}))
    with pytest.raises(ProviderRejected) as exc_info:
        provider.embed_texts(["ok", "   "])
    assert "position 1" in exc_info.value.message
    session.post.assert_not_called()


def test_openai_wrong_dimension():
    payload = {"data": [{"index": 0, "embedding": [1.0, 0.0]}]}
    provider, _ = _provider(_response(payload=payload))
    with pytest.raises(DimensionMismatch):
        provider.embed_text("hello")


def test_openai_malformed_payload():
    provider, _ = _provider(_response(payload={"unexpected": True}))
    with pytest.raises(ProviderRejected):
        provider.embed_text("hello")


def test_openai_empty_batch_makes_no_request():
    provider, session = _provider(_response(payload={"data": []}))
    assert provider.embed_texts([]) == []
    session.post.assert_not_called()
