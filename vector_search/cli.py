"""
Command line entry point: ingest text, query it, rebuild the index, serve the API.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .core.config import get_embedding_provider, get_vector_store, load_config
from .core.exceptions import ConfigError, VectorSearchError
from .core.retry import RetryConfig
from .core.search_service import SemanticSearchService, SimilaritySearchEngine
from .vector.sqlite_store import SqliteVectorStore


def _read_documents(paths: List[str], whole_file: bool) -> List[str]:
    documents = []
    for path in paths:
        text = Path(path).read_text(encoding="utf-8")
        if whole_file:
            if text.strip():
                documents.append(text.strip())
        else:
            documents.extend(line.strip() for line in text.splitlines() if line.strip())
    return documents


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {number}")
    return number


def _build_service(config) -> SemanticSearchService:
    store = get_vector_store(config)
    engine = SimilaritySearchEngine.from_config(store, config)
    return SemanticSearchService(engine, get_embedding_provider(config),
                                 RetryConfig(max_attempts=config.retry_attempts))


def cmd_ingest(args, config) -> int:
    service = _build_service(config)
    documents = _read_documents(args.files, args.whole_file)
    if not documents:
        print("No documents to ingest.")
        return 0

    total = 0
    for start in range(0, len(documents), args.batch_size):
        batch = documents[start:start + args.batch_size]
        ids = service.index_texts(batch)
        total += len(ids)
        print(f"  ... stored {total}/{len(documents)} documents")

    print(f"✓ Ingested {total} documents")
    return 0


def cmd_query(args, config) -> int:
    service = _build_service(config)
    matches = service.search_text(args.text, args.threshold, args.limit)
    if not matches:
        print("No matches.")
        return 0
    for match in matches:
        print(f"{match.similarity:.4f}\t{match.id}\t{match.content}")
    return 0


def cmd_rebuild(args, config) -> int:
    store = get_vector_store(config)
    if not isinstance(store, SqliteVectorStore):
        print("ERROR: Index rebuild requires VECTOR_PROVIDER=sqlite")
        return 1
    count = store.rebuild_index()
    print(f"✓ Rebuilt index with {count} documents from {config.db_path}")
    return 0


def cmd_serve(args, config) -> int:
    import uvicorn

    from .api.main import create_app

    uvicorn.run(create_app(config), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vector-search",
        description="Semantic similarity search over stored embeddings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s ingest notes.txt              # One document per non-empty line
  %(prog)s ingest a.md b.md --whole-file # One document per file
  %(prog)s query "cats chasing mice" --threshold 0.5 --limit 3
  %(prog)s rebuild                       # Reload the index from SQLite
  %(prog)s serve --port 8000

Environment variables:
- EMBED_DIM (required, > 0)
- EMBED_PROVIDER=hash|sentence_transformers|openai
- VECTOR_PROVIDER=memory|faiss|sqlite, DB_PATH=./data/documents.db
- MATCH_THRESHOLD=0.78, MATCH_COUNT=10
        """
    )
    parser.add_argument("--env-file", help="Path to a .env file to load")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Embed and store text files")
    ingest.add_argument("files", nargs="+", help="Text files to ingest")
    ingest.add_argument("--whole-file", action="store_true", help="Store each file as one document")
    ingest.add_argument("--batch-size", type=_positive_int, default=32, help="Texts per embedding request")
    ingest.set_defaults(func=cmd_ingest)

    query = subparsers.add_parser("query", help="Search stored documents")
    query.add_argument("text", help="Query text")
    query.add_argument("--threshold", type=float, default=None, help="Minimum similarity in [-1, 1]")
    query.add_argument("--limit", type=int, default=None, help="Maximum number of results")
    query.set_defaults(func=cmd_query)

    rebuild = subparsers.add_parser("rebuild", help="Reload the in-memory index from SQLite")
    rebuild.set_defaults(func=cmd_rebuild)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(dotenv_path=args.env_file)
    except ConfigError as e:
        for issue in e.issues:
            print(f"ERROR: {issue}")
        return 2

    try:
        return args.func(args, config)
    except VectorSearchError as e:
        print(f"ERROR: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
