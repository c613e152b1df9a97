"""Shared fixtures: an in-memory stand-in for a Pinecone index."""

from __future__ import annotations

import hashlib
import math
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

from knowledge.ingestion.models import Document
from knowledge.retrieval.vector_store import VectorStoreClient


def _matches_filter(metadata: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    if not filter:
        return True
    for field, condition in filter.items():
        if isinstance(condition, dict):
            if "$eq" in condition and metadata.get(field) != condition["$eq"]:
                return False
            if "$in" in condition and metadata.get(field) not in condition["$in"]:
                return False
        elif metadata.get(field) != condition:
            return False
    return True


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeIndex:
    """Namespaced in-memory index implementing the calls the client makes."""

    def __init__(self, dimension: int = 4) -> None:
        self.dimension = dimension
        self.namespaces: dict[str, dict[str, dict[str, Any]]] = {}
        self.upsert_calls: list[tuple[str, int]] = []
        self.delete_calls: list[dict[str, Any]] = []

    def upsert(self, vectors: list[dict[str, Any]], namespace: str = "") -> None:
        self.upsert_calls.append((namespace, len(vectors)))
        bucket = self.namespaces.setdefault(namespace, {})
        for vector in vectors:
            bucket[vector["id"]] = vector

    def query(
        self,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
        namespace: str = "",
        filter: dict[str, Any] | None = None,
    ) -> SimpleNamespace:
        bucket = self.namespaces.get(namespace, {})
        matches = [
            SimpleNamespace(id=v["id"], score=_cosine(vector, v["values"]), metadata=dict(v["metadata"]))
            for v in bucket.values()
            if _matches_filter(v["metadata"], filter)
        ]
        matches.sort(key=lambda m: m.score, reverse=True)
        return SimpleNamespace(matches=matches[:top_k], namespace=namespace)

    def delete(
        self,
        ids: list[str] | None = None,
        delete_all: bool = False,
        filter: dict[str, Any] | None = None,
        namespace: str = "",
    ) -> None:
        self.delete_calls.append(
            {"ids": ids, "delete_all": delete_all, "filter": filter, "namespace": namespace}
        )
        bucket = self.namespaces.get(namespace, {})
        if delete_all:
            self.namespaces.pop(namespace, None)
        elif ids is not None:
            for vector_id in ids:
                bucket.pop(vector_id, None)
        elif filter is not None:
            for vector_id in [k for k, v in bucket.items() if _matches_filter(v["metadata"], filter)]:
                del bucket[vector_id]

    def describe_index_stats(self) -> SimpleNamespace:
        return SimpleNamespace(
            dimension=self.dimension,
            index_fullness=0.0,
            total_vector_count=sum(len(b) for b in self.namespaces.values()),
            namespaces={n: SimpleNamespace(vector_count=len(b)) for n, b in self.namespaces.items()},
        )

    def ids(self, namespace: str) -> set[str]:
        return set(self.namespaces.get(namespace, {}))


def fake_embedding(text: str, dimension: int = 4) -> list[float]:
    """Deterministic, non-zero vector derived from the text."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [(digest[i] + 1) / 256 for i in range(dimension)]


def fake_embedder(texts: list[str]) -> list[list[float]]:
    return [fake_embedding(t) for t in texts]


@pytest.fixture
def embedder() -> Any:
    return fake_embedder


@pytest.fixture
def fake_index() -> FakeIndex:
    return FakeIndex()


@pytest.fixture
def pinecone_client(fake_index: FakeIndex) -> MagicMock:
    client = MagicMock()
    client.Index.return_value = fake_index
    client.list_indexes.return_value.names.return_value = ["test-index"]
    return client


@pytest.fixture
def store(pinecone_client: MagicMock) -> VectorStoreClient:
    return VectorStoreClient(api_key="test-key", index_name="test-index", client=pinecone_client)


TRANSCRIPT = """00:00:05 Alice: Let's discuss the Q3 budget.
00:00:12 Bob: Marketing went over by fifteen percent.
00:00:20 Alice: We need to cut travel spend.
00:00:31 Bob: Agreed, I will draft a proposal.
00:00:45 Carol: Moving on to the product launch.
00:00:52 Alice: Is authentication ready?
00:01:05 Carol: Yes, it shipped last week.
00:01:20 Bob: Then launch is on track for October.
"""

SUMMARY = """# Meeting Summary: Q3 Planning

**Date:** 2024-09-11
**Participants:** Alice, Bob, Carol

## Topic: Budget
Marketing overspent by 15%. Travel spend will be cut.

## Topic: Product Launch
Authentication shipped; launch on track for October.

## Action Items
- Bob drafts the travel proposal.
"""


@pytest.fixture
def transcript_document() -> Document:
    return Document(
        id="doc-1",
        workspace_id="ws-1",
        content=TRANSCRIPT,
        document_type="transcript",
        metadata={"topics": ["Budget", "Product Launch"]},
        created_by_user_id="user-1",
        title="Q3 planning call",
        kind="text",
    )


@pytest.fixture
def summary_document() -> Document:
    return Document(
        id="doc-2",
        workspace_id="ws-1",
        content=SUMMARY,
        document_type="meeting-summary",
        metadata={"sourceDocumentIds": ["doc-1"]},
        created_by_user_id="user-1",
        title="Q3 planning summary",
        kind="text",
    )
