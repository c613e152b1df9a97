"""Document sync endpoints: index, re-index and remove documents in the background."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, HTTPException

from knowledge.api.models import SyncAccepted
from knowledge.ingestion.models import Document
from knowledge.ingestion.pipeline import delete_from_rag, sync_document_to_rag
from knowledge.ingestion.storage import get_document, get_supabase_client

router = APIRouter()


@router.post("/api/documents/sync", response_model=SyncAccepted, status_code=202)
async def sync_document(document: Document, background_tasks: BackgroundTasks) -> SyncAccepted:
    """Schedule a sync of the posted document; the caller does not wait for it."""
    if not document.workspace_id:
        raise HTTPException(status_code=422, detail="workspace_id is required to sync a document")

    background_tasks.add_task(sync_document_to_rag, document)
    return SyncAccepted(document_id=document.id, workspace_id=document.workspace_id)


@router.post("/api/documents/{document_id}/sync", response_model=SyncAccepted, status_code=202)
async def resync_stored_document(
    document_id: str,
    workspace_id: str,
    background_tasks: BackgroundTasks,
) -> SyncAccepted:
    """Load a document from the document store and schedule its sync."""
    try:
        document = get_document(get_supabase_client(), document_id, workspace_id)
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Document store unavailable: {exc}") from exc

    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")

    background_tasks.add_task(sync_document_to_rag, document)
    return SyncAccepted(document_id=document_id, workspace_id=workspace_id)


@router.delete("/api/documents/{document_id}", response_model=SyncAccepted, status_code=202)
async def delete_document_vectors(
    document_id: str,
    workspace_id: str,
    background_tasks: BackgroundTasks,
) -> SyncAccepted:
    """Schedule removal of every vector belonging to the document."""
    background_tasks.add_task(delete_from_rag, document_id, workspace_id)
    return SyncAccepted(document_id=document_id, workspace_id=workspace_id)
