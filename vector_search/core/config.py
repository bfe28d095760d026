"""
Configuration for the vector search service.

Everything is read from the environment (and a ``.env`` file when present)
once, at startup, into a SearchConfig. Components receive the config at
construction time and never consult the environment mid-request.
"""

import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .exceptions import ConfigError

# Version string
VERSION = "1.0.0"

EMBED_PROVIDERS = ("hash", "sentence_transformers", "openai")
VECTOR_PROVIDERS = ("memory", "faiss", "sqlite")
SEARCH_METRICS = ("inner_product", "cosine")


@dataclass(frozen=True)
class SearchConfig:
    """Validated runtime configuration."""

    embed_dim: int
    embed_provider: str = "hash"
    embed_model_name: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    embed_timeout_sec: float = 30.0

    vector_provider: str = "sqlite"
    db_path: str = "./data/documents.db"
    store_timeout_sec: float = 10.0
    index_type: str = "faiss"  # faiss|exact, ranking index behind the sqlite store

    match_threshold: float = 0.78
    match_count: int = 10
    search_metric: str = "inner_product"
    over_fetch: int = 2

    hnsw_m: int = 16
    hnsw_ef_construction: int = 64
    hnsw_ef_search: int = 64
    exact_search_threshold: int = 1000

    retry_attempts: int = 3
    debug: bool = False


def _get_bool(env: Mapping[str, str], name: str, default: str) -> bool:
    return env.get(name, default).lower() == "true"


def _get_number(env: Mapping[str, str], name: str, default, cast, issues: List[str]):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        issues.append(f"{name} must be a {cast.__name__}, got {raw!r}")
        return default


def load_config(env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> SearchConfig:
    """Build a SearchConfig from the environment and fail fast on any invalid setting.

    Args:
        env: Mapping to read instead of ``os.environ`` (tests pass a dict)
        dotenv_path: Explicit ``.env`` file; only used when reading ``os.environ``

    Raises:
        ConfigError: listing every problem found, e.g. a missing or non-positive EMBED_DIM
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    issues: List[str] = []

    raw_dim = env.get("EMBED_DIM")
    embed_dim = 0
    if raw_dim is None or raw_dim.strip() == "":
        issues.append("EMBED_DIM is required")
    else:
        try:
            embed_dim = int(raw_dim)
            if embed_dim <= 0:
                issues.append(f"EMBED_DIM must be positive, got {embed_dim}")
        except ValueError:
            issues.append(f"EMBED_DIM must be an int, got {raw_dim!r}")

    config = SearchConfig(
        embed_dim=embed_dim,
        embed_provider=env.get("EMBED_PROVIDER", "hash"),
        embed_model_name=env.get("EMBED_MODEL_NAME") or None,
        openai_api_key=env.get("OPENAI_API_KEY") or None,
        openai_base_url=env.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        embed_timeout_sec=_get_number(env, "EMBED_TIMEOUT_SEC", 30.0, float, issues),
        vector_provider=env.get("VECTOR_PROVIDER", "sqlite"),
        db_path=env.get("DB_PATH", "./data/documents.db"),
        store_timeout_sec=_get_number(env, "STORE_TIMEOUT_SEC", 10.0, float, issues),
        index_type=env.get("INDEX_TYPE", "faiss"),
        match_threshold=_get_number(env, "MATCH_THRESHOLD", 0.78, float, issues),
        match_count=_get_number(env, "MATCH_COUNT", 10, int, issues),
        search_metric=env.get("SEARCH_METRIC", "inner_product"),
        over_fetch=_get_number(env, "OVER_FETCH", 2, int, issues),
        hnsw_m=_get_number(env, "HNSW_M", 16, int, issues),
        hnsw_ef_construction=_get_number(env, "HNSW_EF_CONSTRUCTION", 64, int, issues),
        hnsw_ef_search=_get_number(env, "HNSW_EF_SEARCH", 64, int, issues),
        exact_search_threshold=_get_number(env, "EXACT_SEARCH_THRESHOLD", 1000, int, issues),
        retry_attempts=_get_number(env, "RETRY_ATTEMPTS", 3, int, issues),
        debug=_get_bool(env, "DEBUG", "false"),
    )

    issues.extend(validate_config(config))
    if issues:
        raise ConfigError(issues)
    return config


def validate_config(config: SearchConfig) -> List[str]:
    """Validate configuration values and return any issues."""
    issues = []

    if config.embed_provider not in EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {config.embed_provider}")

    if config.embed_provider == "openai" and not config.openai_api_key:
        issues.append("EMBED_PROVIDER=openai requires OPENAI_API_KEY")

    if config.vector_provider not in VECTOR_PROVIDERS:
        issues.append(f"Invalid VECTOR_PROVIDER: {config.vector_provider}")

    if config.index_type not in ("faiss", "exact"):
        issues.append(f"Invalid INDEX_TYPE: {config.index_type}")

    if config.search_metric not in SEARCH_METRICS:
        issues.append(f"Invalid SEARCH_METRIC: {config.search_metric}")

    if not math.isfinite(config.match_threshold) or not -1.0 <= config.match_threshold <= 1.0:
        issues.append(f"MATCH_THRESHOLD must be in [-1, 1], got {config.match_threshold}")

    if config.match_count <= 0:
        issues.append("MATCH_COUNT must be >= 1")

    if config.over_fetch < 1:
        issues.append("OVER_FETCH must be >= 1")

    if config.embed_timeout_sec <= 0 or config.store_timeout_sec <= 0:
        issues.append("EMBED_TIMEOUT_SEC and STORE_TIMEOUT_SEC must be > 0")

    if config.hnsw_m < 2 or config.hnsw_ef_construction < 1 or config.hnsw_ef_search < 1:
        issues.append("HNSW_M must be >= 2 and HNSW_EF_* must be >= 1")

    if config.exact_search_threshold < 0:
        issues.append("EXACT_SEARCH_THRESHOLD must be >= 0")

    if config.retry_attempts < 1:
        issues.append("RETRY_ATTEMPTS must be >= 1")

    return issues


def ensure_db_directory(config: SearchConfig) -> None:
    """Ensure the database directory exists."""
    Path(config.db_path).parent.mkdir(parents=True, exist_ok=True)


def get_vector_store(config: SearchConfig):
    """Get the configured vector store implementation."""
    from ..vector.index import SimpleInMemoryVectorStore

    if config.vector_provider == "memory":
        return SimpleInMemoryVectorStore(config.embed_dim)

    if config.vector_provider == "faiss":
        return _faiss_index(config)

    from ..vector.sqlite_store import SqliteVectorStore

    ensure_db_directory(config)
    if config.index_type == "faiss":
        index = _faiss_index(config)
    else:
        index = SimpleInMemoryVectorStore(config.embed_dim)
    return SqliteVectorStore(config.db_path, config.embed_dim, index=index, timeout=config.store_timeout_sec)


def _faiss_index(config: SearchConfig):
    from ..vector.faiss_store import FaissVectorStore
    from ..vector.types import Metric

    return FaissVectorStore(
        dimension=config.embed_dim,
        m=config.hnsw_m,
        ef_construction=config.hnsw_ef_construction,
        ef_search=config.hnsw_ef_search,
        exact_search_threshold=config.exact_search_threshold,
        over_fetch=config.over_fetch,
        index_metric=Metric(config.search_metric),
    )


def get_embedding_provider(config: SearchConfig):
    """Get the configured embedding provider implementation."""
    from ..vector import embeddings

    if config.embed_provider == "openai":
        return embeddings.OpenAIEmbedding(
            api_key=config.openai_api_key,
            model=config.embed_model_name or embeddings.DEFAULT_OPENAI_MODEL,
            dimension=config.embed_dim,
            base_url=config.openai_base_url,
            timeout=config.embed_timeout_sec,
        )
    if config.embed_provider == "sentence_transformers":
        return embeddings.SentenceTransformerEmbedding(
            config.embed_model_name or embeddings.DEFAULT_SENTENCE_TRANSFORMER_MODEL, dimension=config.embed_dim
        )
    return embeddings.DeterministicHashEmbedding(dimension=config.embed_dim)
