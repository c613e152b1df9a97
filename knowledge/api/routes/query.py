"""Query endpoint: similarity search within one workspace."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from knowledge.api.models import MatchOut, QueryRequest, QueryResponse
from knowledge.exceptions import ConfigurationError, RerankError, VectorStoreError
from knowledge.ingestion.embeddings import embed_query
from knowledge.ingestion.pipeline import get_vector_store
from knowledge.retrieval.reranker import get_reranker

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/query", response_model=QueryResponse)
def query(request: QueryRequest) -> QueryResponse:
    """Embed the query text and return the closest chunks in the workspace namespace.

    Retrieval is user-facing, so index failures surface as 503 instead of an
    empty result. With ``rerank`` set, twice ``top_k`` candidates are fetched
    and reordered by the reranker; if reranking fails the vector order is kept.
    """
    fetch_k = request.top_k * 2 if request.rerank else request.top_k
    try:
        result = get_vector_store().query_by_text(
            request.query,
            embed_query,
            namespace=request.workspace_id,
            top_k=fetch_k,
            filter=request.filter,
            min_score=request.min_score,
        )
    except ConfigurationError as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    except VectorStoreError as exc:
        raise HTTPException(status_code=503, detail=f"Vector index unavailable: {exc.message}") from exc

    matches = result.matches
    if request.rerank and matches:
        try:
            matches = get_reranker().rerank(request.query, matches, request.top_k)
        except RerankError as exc:
            logger.warning("Reranking failed, keeping vector order: %s", exc.message)
            matches = matches[: request.top_k]
    else:
        matches = matches[: request.top_k]

    return QueryResponse(
        matches=[
            MatchOut(id=m.id, score=m.score, content=m.content, metadata=m.metadata)
            for m in matches
        ],
        namespace=result.namespace,
    )
