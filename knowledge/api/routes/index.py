"""Index administration endpoints: stats and workspace reset."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Response

from knowledge.api.models import NamespaceOut, StatsResponse
from knowledge.exceptions import ConfigurationError, VectorStoreError
from knowledge.ingestion.pipeline import get_vector_store

router = APIRouter()


@router.get("/api/stats", response_model=StatsResponse)
def stats() -> StatsResponse:
    try:
        raw = get_vector_store().get_stats()
    except (ConfigurationError, VectorStoreError) as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc

    return StatsResponse(
        dimension=raw.dimension,
        index_fullness=raw.index_fullness,
        total_vector_count=raw.total_vector_count,
        namespaces={
            name: NamespaceOut(vector_count=ns.vector_count) for name, ns in raw.namespaces.items()
        },
    )


@router.delete("/api/workspaces/{workspace_id}/vectors", status_code=204)
def reset_workspace(workspace_id: str) -> Response:
    """Delete every vector in the workspace namespace (full tenant data reset)."""
    try:
        get_vector_store().delete_namespace(workspace_id)
    except (ConfigurationError, VectorStoreError) as exc:
        raise HTTPException(status_code=503, detail=exc.message) from exc
    return Response(status_code=204)
