"""Read-only Supabase access to the document store."""

from __future__ import annotations

from typing import Any, cast

from supabase import Client, create_client

from knowledge.config import settings
from knowledge.ingestion.models import Document

DOCUMENT_COLUMNS = "id,workspaceId,content,metadata,createdByUserId,createdAt,title,kind"


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings / environment variables."""
    return create_client(settings.supabase_url, settings.supabase_key)


def get_document(client: Client, document_id: str, workspace_id: str) -> Document | None:
    """Fetch one document scoped to its workspace, or ``None`` if absent."""
    result = (
        client.table("documents")
        .select(DOCUMENT_COLUMNS)
        .eq("id", document_id)
        .eq("workspaceId", workspace_id)
        .limit(1)
        .execute()
    )
    rows = cast(list[dict[str, Any]], result.data)
    if not rows:
        return None
    return Document.model_validate(rows[0])


def list_documents(
    client: Client,
    workspace_id: str | None = None,
    document_id: str | None = None,
) -> list[Document]:
    """List documents that have content, optionally filtered by workspace or id."""
    query = client.table("documents").select(DOCUMENT_COLUMNS).not_.is_("content", "null")
    if workspace_id:
        query = query.eq("workspaceId", workspace_id)
    if document_id:
        query = query.eq("id", document_id)

    result = query.order("createdAt").execute()
    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    rows = cast(list[dict[str, Any]], result.data)
    return [Document.model_validate(row) for row in rows]
