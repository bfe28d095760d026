"""
Request and response models for the vector search API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class DocumentCreateRequest(BaseModel):
    content: str
    embedding: List[float]
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=200)

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v


class DocumentCreateResponse(BaseModel):
    id: int


class DocumentBatchRequest(BaseModel):
    documents: List[DocumentCreateRequest]


class DocumentBatchResponse(BaseModel):
    ids: List[int]


class DocumentResponse(BaseModel):
    id: int
    content: str
    embedding: List[float]
    created_at: Optional[datetime] = None


class MatchDocumentsRequest(BaseModel):
    query_embedding: List[float]
    match_threshold: Optional[float] = None


class SearchRequest(BaseModel):
    query_embedding: List[float]
    threshold: Optional[float] = None
    limit: Optional[int] = None


class TextSearchRequest(BaseModel):
    text: str
    threshold: Optional[float] = None
    limit: Optional[int] = None

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v


class TextIndexRequest(BaseModel):
    contents: List[str] = Field(min_length=1)


class MatchResponse(BaseModel):
    id: int
    content: str
    similarity: float
    embedding: Optional[List[float]] = None


class SearchResponse(BaseModel):
    matches: List[MatchResponse]
    threshold: float
    limit: int


class ErrorResponse(BaseModel):
    error: str
    field: Optional[str] = None
    message: str
    retryable: bool


class HealthResponse(BaseModel):
    status: str
    version: str
    document_count: int
    dimension: int
    store: str
    metric: str
    details: Dict[str, Any] = {}
