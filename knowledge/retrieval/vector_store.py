"""Pinecone-backed vector store client scoped by namespace (one per workspace)."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from pinecone import Pinecone, ServerlessSpec
from pinecone.exceptions import NotFoundException

from knowledge.config import settings
from knowledge.exceptions import ConfigurationError, VectorStoreError
from knowledge.ingestion.models import (
    IndexStats,
    NamespaceStats,
    QueryMatch,
    QueryResult,
    VectorRecord,
    WriteResult,
)

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"
DEFAULT_TOP_K = 10
MAX_BATCH_SIZE = 100


def _to_index_metadata(record: VectorRecord) -> dict[str, Any]:
    """Flatten record metadata for the index.

    Pinecone rejects null values, so ``None`` entries are dropped. The chunk
    text is stored under ``content`` so matches can be returned without a
    second lookup.
    """
    metadata = {k: v for k, v in record.metadata.items() if v is not None}
    metadata["content"] = record.content
    return metadata


def _is_not_found(exc: Exception) -> bool:
    if isinstance(exc, NotFoundException):
        return True
    message = str(exc).lower()
    return "404" in message or "not found" in message


class VectorStoreClient:
    """Typed wrapper over a Pinecone index.

    Parameters
    ----------
    api_key:
        Pinecone API key. Falls back to ``PINECONE_API_KEY``; a missing key
        fails here, not on first use.
    index_name:
        Index to operate on. Falls back to ``PINECONE_INDEX_NAME``.
    client:
        Pre-built ``Pinecone`` client (used by tests and scripts).
    """

    def __init__(
        self,
        api_key: str | None = None,
        index_name: str | None = None,
        *,
        client: Pinecone | None = None,
    ) -> None:
        key = api_key or settings.pinecone_api_key
        if not key:
            raise ConfigurationError(
                "Pinecone API key is required. Set PINECONE_API_KEY or pass api_key."
            )

        self.index_name = index_name or settings.pinecone_index_name
        self._pc = client or Pinecone(api_key=key)
        self._index: Any = None

        logger.debug(
            "Vector store client initialised for index %s (source: %s)",
            self.index_name,
            "argument" if index_name else "settings",
        )

    @property
    def index(self) -> Any:
        if self._index is None:
            self._index = self._pc.Index(self.index_name)
        return self._index

    # -- writes ---------------------------------------------------------------

    def write_documents(
        self,
        records: Sequence[VectorRecord],
        *,
        batch_size: int = MAX_BATCH_SIZE,
        namespace: str = DEFAULT_NAMESPACE,
        progress_callback: Callable[[int], None] | None = None,
    ) -> WriteResult:
        """Upsert *records* under *namespace* in sequential batches.

        Records without an embedding are left out. A batch in which no record
        has an embedding is reported in ``errors`` as
        ``"Batch N: No valid embeddings"`` and the remaining batches still run.
        ``progress_callback`` receives a 0-100 percentage after each batch.

        Raises:
            ValueError: If *batch_size* is less than 1.
            VectorStoreError: If the index rejects an upsert.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        if not records:
            logger.debug("Nothing to write to namespace %s", namespace)
            return WriteResult(success=True, documents_written=0, namespace=namespace)

        total = len(records)
        logger.info(
            "Writing %d records to namespace %s in batches of %d", total, namespace, batch_size
        )

        errors: list[str] = []
        written = 0
        for start in range(0, total, batch_size):
            batch_number = start // batch_size + 1
            batch = records[start : start + batch_size]
            vectors = [
                {"id": r.id, "values": r.embedding, "metadata": _to_index_metadata(r)}
                for r in batch
                if r.embedding
            ]

            if not vectors:
                logger.warning("Batch %d has no records with embeddings; skipped", batch_number)
                errors.append(f"Batch {batch_number}: No valid embeddings")
            else:
                if len(vectors) < len(batch):
                    logger.warning(
                        "Batch %d: %d of %d records lack embeddings",
                        batch_number,
                        len(batch) - len(vectors),
                        len(batch),
                    )
                try:
                    self.index.upsert(vectors=vectors, namespace=namespace)
                except Exception as exc:
                    raise VectorStoreError(
                        f"Failed to write batch {batch_number} to namespace {namespace}: {exc}",
                        {"batch": batch_number, "written": written},
                    ) from exc
                written += len(vectors)

            if progress_callback is not None:
                progress_callback(min(100, round(min(start + batch_size, total) / total * 100)))

        if written == 0:
            logger.warning(
                "No records written to namespace %s: all %d records lacked embeddings",
                namespace,
                total,
            )

        return WriteResult(
            success=True,
            documents_written=written,
            namespace=namespace,
            errors=errors or None,
        )

    # -- reads ----------------------------------------------------------------

    def query(
        self,
        vector: list[float],
        *,
        namespace: str = DEFAULT_NAMESPACE,
        top_k: int = DEFAULT_TOP_K,
        filter: dict[str, Any] | None = None,
        min_score: float | None = None,
    ) -> QueryResult:
        """Nearest-neighbour lookup within *namespace*.

        Matches arrive sorted by descending score; those scoring below
        *min_score* are dropped.
        """
        params: dict[str, Any] = {
            "vector": vector,
            "top_k": top_k,
            "include_metadata": True,
            "namespace": namespace,
        }
        if filter:
            params["filter"] = filter

        try:
            response = self.index.query(**params)
        except Exception as exc:
            raise VectorStoreError(f"Query failed: {exc}") from exc

        matches: list[QueryMatch] = []
        for match in response.matches or []:
            score = match.score or 0.0
            if min_score is not None and score < min_score:
                continue
            metadata = dict(match.metadata or {})
            content = metadata.pop("content", "")
            matches.append(QueryMatch(id=match.id, score=score, content=content, metadata=metadata))

        return QueryResult(matches=matches, namespace=namespace)

    def query_by_text(
        self,
        text: str,
        embedder: Callable[[str], list[float]],
        **options: Any,
    ) -> QueryResult:
        """Embed *text* with *embedder* and delegate to :meth:`query`."""
        return self.query(embedder(text), **options)

    # -- deletes --------------------------------------------------------------

    def delete_namespace(self, namespace: str) -> None:
        """Delete every vector in *namespace* (full workspace reset)."""
        try:
            self.index.delete(delete_all=True, namespace=namespace)
        except Exception as exc:
            raise VectorStoreError(f"Failed to delete namespace {namespace}: {exc}") from exc
        logger.info("Deleted all vectors in namespace %s", namespace)

    def delete_documents(self, ids: Sequence[str], namespace: str = DEFAULT_NAMESPACE) -> None:
        """Delete vectors by id; an empty *ids* list makes no index call."""
        if not ids:
            return
        try:
            self.index.delete(ids=list(ids), namespace=namespace)
        except Exception as exc:
            raise VectorStoreError(f"Failed to delete documents: {exc}") from exc

    def delete_by_metadata(self, filter: dict[str, Any], namespace: str = DEFAULT_NAMESPACE) -> None:
        """Delete vectors matching a metadata *filter* (``{"field": {"$eq": v}}``).

        A namespace that does not exist yet has nothing to delete and is not
        an error.
        """
        try:
            self.index.delete(filter=filter, namespace=namespace)
        except Exception as exc:
            if _is_not_found(exc):
                logger.debug("Namespace %s does not exist; nothing to delete", namespace)
                return
            raise VectorStoreError(f"Delete by metadata failed: {exc}") from exc
        logger.debug("Deleted vectors matching %s in namespace %s", filter, namespace)

    # -- index lifecycle ------------------------------------------------------

    def get_stats(self) -> IndexStats:
        """Aggregate statistics for the whole index."""
        try:
            stats = self.index.describe_index_stats()
        except Exception as exc:
            raise VectorStoreError(f"Failed to get index stats: {exc}") from exc

        namespaces = {
            name: NamespaceStats(vector_count=getattr(summary, "vector_count", 0) or 0)
            for name, summary in (getattr(stats, "namespaces", None) or {}).items()
        }
        return IndexStats(
            dimension=getattr(stats, "dimension", 0) or 0,
            index_fullness=getattr(stats, "index_fullness", 0.0) or 0.0,
            total_vector_count=getattr(stats, "total_vector_count", 0) or 0,
            namespaces=namespaces,
        )

    def index_exists(self) -> bool:
        try:
            return self.index_name in self._pc.list_indexes().names()
        except Exception as exc:
            raise VectorStoreError(f"Failed to check index existence: {exc}") from exc

    def create_index_if_not_exists(
        self,
        dimension: int | None = None,
        *,
        max_retries: int = 30,
        poll_interval: float = 2.0,
    ) -> bool:
        """Create the index with the configured metric and region if missing.

        Blocks until the new index reports ready.

        Returns:
            ``True`` if an index was created, ``False`` if it already existed.
        """
        if self.index_exists():
            return False

        try:
            self._pc.create_index(
                name=self.index_name,
                dimension=dimension or settings.embedding_dimensions,
                metric=settings.pinecone_metric,
                spec=ServerlessSpec(cloud=settings.pinecone_cloud, region=settings.pinecone_region),
            )
        except Exception as exc:
            raise VectorStoreError(f"Failed to create index {self.index_name}: {exc}") from exc

        logger.info("Created index %s; waiting for it to become ready", self.index_name)
        self._wait_for_index_ready(max_retries, poll_interval)
        return True

    def _wait_for_index_ready(self, max_retries: int, poll_interval: float) -> None:
        for attempt in range(max_retries):
            try:
                description = self._pc.describe_index(self.index_name)
                if description.status["ready"]:
                    return
            except Exception:
                # The index may not be visible yet right after creation
                logger.debug("Index %s not describable yet (attempt %d)", self.index_name, attempt + 1)
            time.sleep(poll_interval)

        raise VectorStoreError(f"Index {self.index_name} failed to become ready within timeout")
