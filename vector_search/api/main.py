"""
HTTP interface: document writes, the match_documents procedure and search.
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query as QueryParam, Request
from fastapi.responses import JSONResponse

from .schemas import (
    DocumentBatchRequest,
    DocumentBatchResponse,
    DocumentCreateRequest,
    DocumentCreateResponse,
    DocumentResponse,
    ErrorResponse,
    HealthResponse,
    MatchDocumentsRequest,
    MatchResponse,
    SearchRequest,
    SearchResponse,
    TextIndexRequest,
    TextSearchRequest,
)
from ..core.config import VERSION, SearchConfig, get_embedding_provider, get_vector_store, load_config
from ..core.exceptions import VectorSearchError
from ..core.retry import RetryConfig
from ..core.search_service import SemanticSearchService, SimilaritySearchEngine
from ..vector.embeddings import IEmbeddingProvider
from ..vector.index import IVectorStore
from ..vector.types import MATCH_COLUMNS, project
from ..util.logging import logger, sanitize_payload

ERROR_RESPONSES = {422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}


def _to_response(match, include_embedding: bool = False) -> MatchResponse:
    return MatchResponse(
        id=match.id,
        content=match.content,
        similarity=match.similarity,
        embedding=[float(x) for x in match.embedding] if include_embedding else None,
    )


def create_app(config: Optional[SearchConfig] = None, store: Optional[IVectorStore] = None,
               provider: Optional[IEmbeddingProvider] = None) -> FastAPI:
    """Build the application. Missing collaborators are created from ``config``."""
    config = config or load_config()
    store = store if store is not None else get_vector_store(config)
    provider = provider if provider is not None else get_embedding_provider(config)

    engine = SimilaritySearchEngine.from_config(store, config)
    service = SemanticSearchService(engine, provider, RetryConfig(max_attempts=config.retry_attempts))

    app = FastAPI(
        title="Vector Search API",
        version=VERSION,
        description="Semantic similarity search over stored embeddings",
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
    )
    app.state.config = config
    app.state.store = store
    app.state.engine = engine
    app.state.service = service

    @app.exception_handler(VectorSearchError)
    async def vector_search_error_handler(request: Request, exc: VectorSearchError):
        status_code = 503 if exc.retryable else 422
        logger.log_operation(f"api.{request.url.path}", "failed", exc.to_dict())
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health", response_model=HealthResponse)
    def health_check_endpoint():
        """Check system health."""
        try:
            count = store.count()
            details = store.health_details()
            status = "healthy" if details.get("database", "ok") == "ok" else "unhealthy"
        except VectorSearchError as e:
            count = 0
            details = {"error": e.message}
            status = "unhealthy"
        return HealthResponse(
            status=status,
            version=VERSION,
            document_count=count,
            dimension=store.dimension,
            store=type(store).__name__,
            metric=engine.metric.value,
            details=details,
        )

    @app.post("/documents", response_model=DocumentCreateResponse, status_code=201, responses=ERROR_RESPONSES)
    def create_document(request: DocumentCreateRequest):
        """Store a document with a precomputed embedding."""
        logger.log_operation("api.documents.create", "received", sanitize_payload(request.model_dump()))
        doc_id = store.insert(request.content, request.embedding, key=request.idempotency_key)
        return DocumentCreateResponse(id=doc_id)

    @app.post("/documents/batch", response_model=DocumentBatchResponse, status_code=201,
              responses=ERROR_RESPONSES)
    def create_documents(request: DocumentBatchRequest):
        """Store several documents; all of them or none."""
        ids = store.batch_insert(
            [(d.content, d.embedding) for d in request.documents],
            keys=[d.idempotency_key for d in request.documents],
        )
        return DocumentBatchResponse(ids=ids)

    @app.post("/documents/text", response_model=DocumentBatchResponse, status_code=201,
              responses=ERROR_RESPONSES)
    def index_texts(request: TextIndexRequest):
        """Embed texts with the configured provider and store them."""
        return DocumentBatchResponse(ids=service.index_texts(request.contents))

    @app.get("/documents/{doc_id}", response_model=DocumentResponse)
    def get_document(doc_id: int):
        document = store.get(doc_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return DocumentResponse(
            id=document.id,
            content=document.content,
            embedding=[float(x) for x in document.embedding],
            created_at=document.created_at,
        )

    @app.delete("/documents/{doc_id}", status_code=204)
    def delete_document(doc_id: int):
        if not store.delete(doc_id):
            raise HTTPException(status_code=404, detail="Document not found")

    @app.post("/rpc/match_documents", responses=ERROR_RESPONSES)
    def match_documents(request: MatchDocumentsRequest,
                        select: Optional[str] = QueryParam(None, description="Comma separated columns"),
                        limit: Optional[int] = QueryParam(None, ge=0)) -> List[dict]:
        """Run the match procedure, then apply the column projection and row limit."""
        columns = None
        if select:
            columns = [c.strip() for c in select.split(",") if c.strip()]
            unknown = [c for c in columns if c not in MATCH_COLUMNS]
            if unknown:
                raise HTTPException(status_code=400, detail=f"Unknown columns: {unknown}")
        matches = engine.match(request.query_embedding, request.match_threshold)
        return project(matches, columns, limit)

    @app.post("/search", response_model=SearchResponse, response_model_exclude_none=True,
              responses=ERROR_RESPONSES)
    def search(request: SearchRequest, include_embedding: bool = False):
        """Ranked matches for a query embedding."""
        query = engine.build_query(request.query_embedding, request.threshold, request.limit)
        matches = engine.query(query.embedding, query.threshold, query.limit)
        return SearchResponse(
            matches=[_to_response(m, include_embedding) for m in matches],
            threshold=query.threshold,
            limit=query.limit,
        )

    @app.post("/search/text", response_model=SearchResponse, response_model_exclude_none=True,
              responses=ERROR_RESPONSES)
    def search_text(request: TextSearchRequest):
        """Embed the text with the configured provider and search with it."""
        threshold = engine.default_threshold if request.threshold is None else request.threshold
        limit = engine.default_limit if request.limit is None else request.limit
        matches = service.search_text(request.text, threshold, limit)
        return SearchResponse(matches=[_to_response(m) for m in matches], threshold=threshold, limit=limit)

    return app


def get_app() -> FastAPI:
    """Factory for ``uvicorn --factory vector_search.api.main:get_app``."""
    return create_app()
