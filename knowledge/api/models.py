"""Pydantic request/response schemas for the Knowledge Sync API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class SyncAccepted(BaseModel):
    """Response for sync and delete requests that run in the background."""

    document_id: str
    workspace_id: str
    status: str = "accepted"


class QueryRequest(BaseModel):
    """Request body for the /api/query endpoint."""

    query: str
    workspace_id: str
    top_k: int = Field(default=10, ge=1, le=100)
    min_score: float | None = Field(default=None, ge=0.0, le=1.0)
    filter: dict[str, Any] | None = None
    rerank: bool = False

class MatchOut(BaseModel):
    """A single retrieved chunk with its similarity score."""

    id: str
    score: float
    content: str
    metadata: dict[str, Any]


class QueryResponse(BaseModel):
    """Response body for the /api/query endpoint."""

    matches: list[MatchOut]
    namespace: str


class NamespaceOut(BaseModel):
    vector_count: int


class StatsResponse(BaseModel):
    dimension: int
    index_fullness: float
    total_vector_count: int
    namespaces: dict[str, NamespaceOut]
