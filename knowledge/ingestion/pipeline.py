"""Document sync pipeline: parse -> chunk -> delete old vectors -> embed -> write.

Sync is a best-effort background concern: nothing in this module raises to
its caller, so indexing can never break the document-mutation request path.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from knowledge.exceptions import ParseError
from knowledge.ingestion.chunking import TopicClassifier, chunk_sections, chunk_transcript, get_classifier
from knowledge.ingestion.embeddings import embed_texts
from knowledge.ingestion.models import Chunk, Document, VectorRecord
from knowledge.ingestion.parsers import parse_sections, parse_transcript
from knowledge.ingestion.summary import (
    extract_metadata_from_content,
    parse_meeting_date,
    parse_meeting_metadata,
    validate_summary_structure,
)
from knowledge.pipeline_config import ContentSource, DocumentType, SyncConfig
from knowledge.retrieval.vector_store import VectorStoreClient

logger = logging.getLogger(__name__)

Embedder = Callable[[list[str]], list[list[float]]]

# Syncs of the same document id are serialised within this process. Each
# entry holds the lock and the number of callers using it; the entry is
# removed when the last one leaves.
_document_locks: dict[str, tuple[threading.Lock, int]] = {}
_document_locks_guard = threading.Lock()


@contextmanager
def _document_lock(document_id: str) -> Iterator[None]:
    with _document_locks_guard:
        lock, holders = _document_locks.get(document_id, (threading.Lock(), 0))
        _document_locks[document_id] = (lock, holders + 1)
    try:
        with lock:
            yield
    finally:
        with _document_locks_guard:
            lock, holders = _document_locks[document_id]
            if holders == 1:
                del _document_locks[document_id]
            else:
                _document_locks[document_id] = (lock, holders - 1)


@lru_cache(maxsize=1)
def get_vector_store() -> VectorStoreClient:
    """Return the shared client built from settings (raises if unconfigured)."""
    return VectorStoreClient()


@dataclass
class SyncReport:
    """Outcome counts for a multi-document sync run."""

    synced: int = 0
    skipped: int = 0
    vectors_written: int = 0


# -- chunking per document type ----------------------------------------------


def _chunk_transcript_document(document: Document, classifier: TopicClassifier | None) -> list[Chunk]:
    utterances = parse_transcript(document.content or "")
    logger.info("Parsed %d utterances for document %s", len(utterances), document.id)
    topics = document.metadata.get("topics") or []
    return chunk_transcript(utterances, [str(t) for t in topics], classifier)


def _chunk_structured_document(document: Document, classifier: TopicClassifier | None) -> list[Chunk]:
    _, _, content = extract_metadata_from_content(document.content or "")
    if document.document_type == DocumentType.MEETING_SUMMARY:
        validation = validate_summary_structure(content)
        if not validation.is_valid:
            # Still indexed
            logger.warning(
                "Meeting summary %s is malformed: %s", document.id, "; ".join(validation.errors)
            )
        logger.debug("Meeting summary %s covers %d topics", document.id, len(validation.topics))
    sections = parse_sections(content)
    logger.info("Parsed %d sections for document %s", len(sections), document.id)
    return chunk_sections(sections)


# Every DocumentType must have an entry; checked by the test suite. Types not
# listed here are indexed with section-based chunking.
CHUNKERS: dict[DocumentType, Callable[[Document, TopicClassifier | None], list[Chunk]]] = {
    DocumentType.TRANSCRIPT: _chunk_transcript_document,
    DocumentType.MEETING_SUMMARY: _chunk_structured_document,
    DocumentType.DOCUMENT: _chunk_structured_document,
}

CONTENT_SOURCES: dict[DocumentType, ContentSource] = {
    DocumentType.TRANSCRIPT: ContentSource.TRANSCRIPT,
    DocumentType.MEETING_SUMMARY: ContentSource.ARTIFACT,
    DocumentType.DOCUMENT: ContentSource.ARTIFACT,
}


def _known_type(document_type: str) -> DocumentType | None:
    try:
        return DocumentType(document_type)
    except ValueError:
        return None


def chunk_document(document: Document, classifier: TopicClassifier | None = None) -> list[Chunk]:
    """Parse and chunk *document* according to its type.

    Raises:
        ParseError: If the content cannot be parsed.
        ChunkingError: If topic classification fails.
    """
    doc_type = _known_type(document.document_type or "")
    if doc_type is None:
        logger.info(
            "Unknown document type %r for %s; using section-based chunking",
            document.document_type,
            document.id,
        )
        return _chunk_structured_document(document, classifier)
    return CHUNKERS[doc_type](document, classifier)


# -- record building ---------------------------------------------------------


def record_id(document_id: str, chunk_index: int, document_type: str | None) -> str:
    """Deterministic vector id: the same document and chunk index always map to the same id."""
    kind = "chunk" if document_type == DocumentType.TRANSCRIPT else "section"
    return f"{document_id}-{kind}-{chunk_index}"


def _source_transcript_ids(metadata: dict[str, Any]) -> list[str]:
    ids = metadata.get("sourceDocumentIds") or metadata.get("sourceTranscriptIds") or []
    return [str(i) for i in ids]


def build_records(document: Document, chunks: list[Chunk]) -> list[VectorRecord]:
    """Turn chunks into vector records (without embeddings) with full provenance metadata."""
    meta = document.metadata
    doc_type = document.document_type or DocumentType.DOCUMENT.value
    known = _known_type(doc_type)
    is_transcript = known is DocumentType.TRANSCRIPT
    created_at = document.created_at or datetime.now(timezone.utc)

    summary = parse_meeting_metadata(document.content or "") if known is DocumentType.MEETING_SUMMARY else None

    base: dict[str, Any] = {
        "documentId": document.id,
        "documentType": doc_type,
        "userId": document.created_by_user_id,
        "title": document.title or (summary.meeting_title if summary else None),
        "kind": document.kind,
        "createdAt": created_at.isoformat(),
        "totalChunks": len(chunks),
        "fileHash": hashlib.sha256(document.id.encode("utf-8")).hexdigest(),
        "contentSource": (CONTENT_SOURCES[known] if known else ContentSource.UNKNOWN).value,
        "sourceTranscriptIds": [] if is_transcript else _source_transcript_ids(meta),
        "meetingDate": parse_meeting_date(meta.get("meetingDate") or (summary.date if summary else None)),
        "fileName": meta.get("fileName"),
    }
    if summary is not None:
        base["participants"] = meta.get("participants") or summary.participants

    records: list[VectorRecord] = []
    for chunk in chunks:
        metadata = {
            **base,
            "chunkIndex": chunk.index,
            "chunkingStrategy": chunk.strategy.value,
        }
        if is_transcript:
            metadata.update(
                topic=chunk.topic,
                speakers=chunk.metadata.speakers,
                startTime=chunk.metadata.start_time,
                endTime=chunk.metadata.end_time,
            )
        else:
            metadata["sectionTitle"] = chunk.metadata.section_title

        records.append(
            VectorRecord(
                id=record_id(document.id, chunk.index, doc_type),
                content=chunk.content,
                metadata=metadata,
            )
        )
    return records


def attach_embeddings(records: list[VectorRecord], embedder: Embedder) -> list[VectorRecord]:
    embeddings = embedder([r.content for r in records])
    for record, embedding in zip(records, embeddings, strict=True):
        record.embedding = embedding
    return records


def plan_document(document: Document, classifier: TopicClassifier | None = None) -> list[VectorRecord]:
    """Records a sync would write, without embedding or touching the index."""
    return build_records(document, chunk_document(document, classifier))


# -- sync entry points ---------------------------------------------------------


def _sync(
    document: Document,
    store: VectorStoreClient | None,
    classifier: TopicClassifier | None,
    embedder: Embedder | None,
    config: SyncConfig,
) -> int:
    """Run one document sync and return the number of vectors written. Never raises."""
    if not document.content or not document.content.strip():
        logger.info("No content for document %s; nothing to sync", document.id)
        return 0
    if not document.workspace_id:
        logger.info("No workspace for document %s; cannot choose a namespace", document.id)
        return 0
    if not document.document_type:
        logger.error("Document %s has no documentType; skipping sync", document.id)
        return 0

    namespace = document.workspace_id
    try:
        with _document_lock(document.id):
            if classifier is None and document.document_type == DocumentType.TRANSCRIPT:
                classifier = get_classifier(config.chunking_mode)
            try:
                chunks = chunk_document(document, classifier)
            except ParseError:
                logger.exception("Failed to parse document %s", document.id)
                return 0

            if not chunks:
                logger.info("No chunks generated for document %s", document.id)
                return 0

            store = store or get_vector_store()
            # Remove every previous chunk first so a shrinking document leaves no stale vectors
            store.delete_by_metadata({"documentId": {"$eq": document.id}}, namespace)

            records = attach_embeddings(build_records(document, chunks), embedder or embed_texts)
            result = store.write_documents(records, batch_size=config.batch_size, namespace=namespace)
            if result.errors:
                logger.warning("Document %s synced with errors: %s", document.id, result.errors)
            logger.info(
                "Stored %d of %d chunks for document %s in namespace %s",
                result.documents_written,
                len(records),
                document.id,
                namespace,
            )
            return result.documents_written
    except Exception:
        logger.exception("Failed to sync document %s", document.id)
        return 0


def sync_document_to_rag(
    document: Document,
    *,
    store: VectorStoreClient | None = None,
    classifier: TopicClassifier | None = None,
    embedder: Embedder | None = None,
    config: SyncConfig | None = None,
) -> None:
    """Re-index *document* in its workspace namespace (delete then insert).

    Args:
        document: The document as supplied by the document store.
        store: Vector store client; defaults to the shared settings-based client.
        classifier: Topic classifier for transcripts; defaults to ``config.chunking_mode``.
        embedder: Batch text embedder; defaults to OpenAI.
        config: Chunking mode and write batch size.
    """
    _sync(document, store, classifier, embedder, config or SyncConfig())


def sync_documents(
    documents: list[Document],
    *,
    store: VectorStoreClient | None = None,
    classifier: TopicClassifier | None = None,
    embedder: Embedder | None = None,
    config: SyncConfig | None = None,
) -> SyncReport:
    """Sync *documents* one after another and count the outcomes."""
    report = SyncReport()
    for document in documents:
        written = _sync(document, store, classifier, embedder, config or SyncConfig())
        if written:
            report.synced += 1
            report.vectors_written += written
        else:
            report.skipped += 1
    logger.info(
        "Synced %d documents (%d skipped, %d vectors)",
        report.synced,
        report.skipped,
        report.vectors_written,
    )
    return report


def delete_from_rag(
    document_id: str,
    namespace: str | None,
    *,
    store: VectorStoreClient | None = None,
) -> None:
    """Delete every vector of *document_id* in *namespace*. Never raises."""
    if not namespace:
        logger.info("No namespace for document %s; skipping delete", document_id)
        return

    try:
        (store or get_vector_store()).delete_by_metadata({"documentId": {"$eq": document_id}}, namespace)
    except Exception:
        logger.exception("Failed to delete document %s from namespace %s", document_id, namespace)
        return
    logger.info("Deleted all chunks for document %s in namespace %s", document_id, namespace)
