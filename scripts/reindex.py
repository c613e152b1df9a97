"""Re-index documents from the document store into the vector index.

Usage:
    python scripts/reindex.py                         # every document
    python scripts/reindex.py --workspace ws-123      # one workspace
    python scripts/reindex.py --document doc-456      # one document
    python scripts/reindex.py --dry-run               # chunk only, write nothing
    python scripts/reindex.py --workspace ws-123 --clear-first
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from knowledge.config import settings
from knowledge.ingestion.chunking import HeuristicTopicClassifier
from knowledge.ingestion.pipeline import get_vector_store, plan_document, sync_documents
from knowledge.ingestion.storage import get_supabase_client, list_documents
from knowledge.pipeline_config import ChunkingMode, SyncConfig


def reindex(
    workspace_id: str | None = None,
    document_id: str | None = None,
    dry_run: bool = False,
    clear_first: bool = False,
    chunking_mode: str | None = None,
) -> None:
    """Load documents with content and sync each one to its workspace namespace."""
    documents = list_documents(get_supabase_client(), workspace_id=workspace_id, document_id=document_id)
    print(f"Found {len(documents)} documents with content")

    if dry_run:
        classifier = HeuristicTopicClassifier()
        for i, doc in enumerate(documents):
            try:
                records = plan_document(doc, classifier)
            except Exception as e:
                print(f"  [{i + 1}] ERROR {doc.id}: {e}")
                continue
            print(
                f"  [{i + 1}/{len(documents)}] {doc.id} ({doc.document_type}) "
                f"-> {len(records)} chunks in namespace {doc.workspace_id}"
            )
        print("\nDry run: nothing written.")
        return

    if clear_first:
        if not workspace_id:
            print("--clear-first requires --workspace")
            sys.exit(1)
        get_vector_store().delete_namespace(workspace_id)
        print(f"Cleared namespace {workspace_id}")

    mode = ChunkingMode(chunking_mode) if chunking_mode else None
    report = sync_documents(documents, config=SyncConfig(chunking_mode=mode))
    print(
        f"\nDone! Synced {report.synced} documents ({report.vectors_written} vectors), "
        f"{report.skipped} skipped."
    )


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())

    parser = argparse.ArgumentParser()
    parser.add_argument("--workspace", default=None)
    parser.add_argument("--document", default=None)
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--clear-first", action="store_true")
    parser.add_argument("--mode", choices=[m.value for m in ChunkingMode], default=None)
    args = parser.parse_args()
    reindex(args.workspace, args.document, args.dry_run, args.clear_first, args.mode)
