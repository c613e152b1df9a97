"""Tests for the namespaced vector store client."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from pinecone.exceptions import NotFoundException

from knowledge.exceptions import ConfigurationError, VectorStoreError
from knowledge.ingestion.models import VectorRecord
from knowledge.retrieval.vector_store import DEFAULT_NAMESPACE, VectorStoreClient
from conftest import FakeIndex, fake_embedding


def _records(n: int, embedded: bool = True) -> list[VectorRecord]:
    return [
        VectorRecord(
            id=f"doc-{i}",
            content=f"chunk {i}",
            metadata={"documentId": "doc", "chunkIndex": i, "meetingDate": None},
            embedding=fake_embedding(f"chunk {i}") if embedded else None,
        )
        for i in range(n)
    ]


def _client_with_index(index: MagicMock) -> VectorStoreClient:
    pc = MagicMock()
    pc.Index.return_value = index
    return VectorStoreClient(api_key="test-key", index_name="test-index", client=pc)


class TestConstruction:
    def test_missing_api_key_raises(self) -> None:
        with patch("knowledge.retrieval.vector_store.settings") as mock_settings:
            mock_settings.pinecone_api_key = ""
            with pytest.raises(ConfigurationError, match="PINECONE_API_KEY"):
                VectorStoreClient()

    def test_index_name_from_settings(self, pinecone_client: MagicMock) -> None:
        with patch("knowledge.retrieval.vector_store.settings") as mock_settings:
            mock_settings.pinecone_api_key = "key"
            mock_settings.pinecone_index_name = "from-settings"
            store = VectorStoreClient(client=pinecone_client)
        assert store.index_name == "from-settings"

    def test_index_handle_is_lazy(self, pinecone_client: MagicMock) -> None:
        store = VectorStoreClient(api_key="k", index_name="test-index", client=pinecone_client)
        pinecone_client.Index.assert_not_called()
        store.index
        store.index
        pinecone_client.Index.assert_called_once_with("test-index")


class TestWriteDocuments:
    def test_empty_makes_no_calls(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        result = store.write_documents([], namespace="ws-1")
        assert result.success is True
        assert result.documents_written == 0
        assert result.namespace == "ws-1"
        assert fake_index.upsert_calls == []

    def test_batches_sequentially(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        result = store.write_documents(_records(150), namespace="ws-1")
        assert result.documents_written == 150
        assert result.errors is None
        assert fake_index.upsert_calls == [("ws-1", 100), ("ws-1", 50)]

    def test_default_namespace(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        result = store.write_documents(_records(2))
        assert result.namespace == DEFAULT_NAMESPACE
        assert fake_index.ids(DEFAULT_NAMESPACE) == {"doc-0", "doc-1"}

    def test_null_metadata_dropped_and_content_stored(
        self, store: VectorStoreClient, fake_index: FakeIndex
    ) -> None:
        store.write_documents(_records(1), namespace="ws-1")
        stored = fake_index.namespaces["ws-1"]["doc-0"]["metadata"]
        assert "meetingDate" not in stored
        assert stored["content"] == "chunk 0"

    def test_batch_without_embeddings_reported(
        self, store: VectorStoreClient, fake_index: FakeIndex
    ) -> None:
        result = store.write_documents(_records(3, embedded=False), namespace="ws-1")
        assert result.success is True
        assert result.documents_written == 0
        assert result.errors == ["Batch 1: No valid embeddings"]
        assert fake_index.upsert_calls == []

    def test_unembedded_records_skipped_within_batch(
        self, store: VectorStoreClient, fake_index: FakeIndex
    ) -> None:
        records = _records(3)
        records[1].embedding = None
        result = store.write_documents(records, namespace="ws-1")
        assert result.documents_written == 2
        assert result.errors is None
        assert fake_index.ids("ws-1") == {"doc-0", "doc-2"}

    def test_later_batches_run_after_empty_batch(
        self, store: VectorStoreClient, fake_index: FakeIndex
    ) -> None:
        records = _records(2, embedded=False) + _records(2)
        result = store.write_documents(records, batch_size=2, namespace="ws-1")
        assert result.errors == ["Batch 1: No valid embeddings"]
        assert result.documents_written == 2

    def test_progress_is_monotonic_and_reaches_100(self, store: VectorStoreClient) -> None:
        progress: list[int] = []
        store.write_documents(_records(25), batch_size=10, namespace="ws-1", progress_callback=progress.append)
        assert progress == [40, 80, 100]
        assert progress == sorted(progress)

    def test_invalid_batch_size(self, store: VectorStoreClient) -> None:
        with pytest.raises(ValueError):
            store.write_documents(_records(1), batch_size=0)

    def test_upsert_failure_raises(self) -> None:
        index = MagicMock()
        index.upsert.side_effect = RuntimeError("503 unavailable")
        store = _client_with_index(index)
        with pytest.raises(VectorStoreError, match="batch 1"):
            store.write_documents(_records(2), namespace="ws-1")

    def test_rewrite_same_ids_is_idempotent(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        store.write_documents(_records(3), namespace="ws-1")
        store.write_documents(_records(3), namespace="ws-1")
        assert len(fake_index.ids("ws-1")) == 3


class TestQuery:
    def test_min_score_filters_matches(self) -> None:
        index = MagicMock()
        index.query.return_value = SimpleNamespace(
            matches=[
                SimpleNamespace(id="a", score=0.9, metadata={"content": "A", "documentId": "doc-a"}),
                SimpleNamespace(id="b", score=0.5, metadata={"content": "B"}),
                SimpleNamespace(id="c", score=0.3, metadata={"content": "C"}),
            ]
        )
        result = _client_with_index(index).query([0.1, 0.2], namespace="ws-1", min_score=0.6)
        assert [m.id for m in result.matches] == ["a"]
        assert result.matches[0].content == "A"
        assert "content" not in result.matches[0].metadata
        assert result.namespace == "ws-1"

    def test_missing_metadata_left_empty(self) -> None:
        index = MagicMock()
        index.query.return_value = SimpleNamespace(
            matches=[SimpleNamespace(id="x", score=0.7, metadata=None)]
        )
        result = _client_with_index(index).query([0.1])
        assert result.matches[0].metadata == {}
        assert result.matches[0].content == ""

    def test_empty_filter_not_sent(self) -> None:
        index = MagicMock()
        index.query.return_value = SimpleNamespace(matches=[])
        store = _client_with_index(index)

        store.query([0.1], namespace="ws-1", filter={})
        assert "filter" not in index.query.call_args.kwargs

        store.query([0.1], namespace="ws-1", filter={"documentType": {"$eq": "transcript"}})
        assert index.query.call_args.kwargs["filter"] == {"documentType": {"$eq": "transcript"}}
        assert index.query.call_args.kwargs["include_metadata"] is True

    def test_namespaces_isolated(self, store: VectorStoreClient) -> None:
        store.write_documents(_records(2), namespace="ws-1")
        vector = fake_embedding("chunk 0")
        assert store.query(vector, namespace="ws-2").matches == []
        assert store.query(vector, namespace="ws-1", top_k=1).matches[0].id == "doc-0"

    def test_query_by_text_embeds_first(self, store: VectorStoreClient) -> None:
        store.write_documents(_records(2), namespace="ws-1")
        result = store.query_by_text("chunk 1", fake_embedding, namespace="ws-1", top_k=1)
        assert result.matches[0].id == "doc-1"
        assert result.matches[0].score == pytest.approx(1.0)

    def test_query_failure_raises(self) -> None:
        index = MagicMock()
        index.query.side_effect = RuntimeError("boom")
        with pytest.raises(VectorStoreError):
            _client_with_index(index).query([0.1])


class TestDeletes:
    def test_delete_namespace(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        store.write_documents(_records(2), namespace="ws-1")
        store.write_documents(_records(1), namespace="ws-2")
        store.delete_namespace("ws-1")
        assert fake_index.ids("ws-1") == set()
        assert fake_index.ids("ws-2") == {"doc-0"}

    def test_delete_documents_by_id(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        store.write_documents(_records(3), namespace="ws-1")
        store.delete_documents(["doc-0", "doc-2"], namespace="ws-1")
        assert fake_index.ids("ws-1") == {"doc-1"}

    def test_delete_documents_empty_makes_no_call(
        self, store: VectorStoreClient, fake_index: FakeIndex
    ) -> None:
        store.delete_documents([], namespace="ws-1")
        assert fake_index.delete_calls == []

    def test_delete_by_metadata(self, store: VectorStoreClient, fake_index: FakeIndex) -> None:
        records = _records(2)
        records[1].metadata["documentId"] = "other"
        store.write_documents(records, namespace="ws-1")
        store.delete_by_metadata({"documentId": {"$eq": "doc"}}, namespace="ws-1")
        assert fake_index.ids("ws-1") == {"doc-1"}

    def test_delete_by_metadata_ignores_missing_namespace(self) -> None:
        index = MagicMock()
        index.delete.side_effect = NotFoundException(status=404, reason="Namespace not found")
        _client_with_index(index).delete_by_metadata({"documentId": {"$eq": "x"}}, "ws-new")

    def test_delete_by_metadata_other_errors_raise(self) -> None:
        index = MagicMock()
        index.delete.side_effect = RuntimeError("connection reset")
        with pytest.raises(VectorStoreError):
            _client_with_index(index).delete_by_metadata({"documentId": {"$eq": "x"}}, "ws-1")


class TestIndexLifecycle:
    def test_stats(self, store: VectorStoreClient) -> None:
        store.write_documents(_records(3), namespace="ws-1")
        store.write_documents(_records(1), namespace="ws-2")
        stats = store.get_stats()
        assert stats.dimension == 4
        assert stats.total_vector_count == 4
        assert stats.namespaces["ws-1"].vector_count == 3
        assert stats.namespaces["ws-2"].vector_count == 1

    def test_index_exists(self, store: VectorStoreClient, pinecone_client: MagicMock) -> None:
        assert store.index_exists() is True
        pinecone_client.list_indexes.return_value.names.return_value = ["other"]
        assert store.index_exists() is False

    def test_existing_index_not_recreated(
        self, store: VectorStoreClient, pinecone_client: MagicMock
    ) -> None:
        assert store.create_index_if_not_exists(4) is False
        pinecone_client.create_index.assert_not_called()

    def test_creates_and_waits_until_ready(self, pinecone_client: MagicMock) -> None:
        pinecone_client.list_indexes.return_value.names.return_value = []
        pinecone_client.describe_index.side_effect = [
            SimpleNamespace(status={"ready": False}),
            SimpleNamespace(status={"ready": True}),
        ]
        store = VectorStoreClient(api_key="k", index_name="new-index", client=pinecone_client)

        assert store.create_index_if_not_exists(8, poll_interval=0) is True
        kwargs = pinecone_client.create_index.call_args.kwargs
        assert kwargs["name"] == "new-index"
        assert kwargs["dimension"] == 8
        assert pinecone_client.describe_index.call_count == 2

    def test_ready_timeout_raises(self, pinecone_client: MagicMock) -> None:
        pinecone_client.list_indexes.return_value.names.return_value = []
        pinecone_client.describe_index.return_value = SimpleNamespace(status={"ready": False})
        store = VectorStoreClient(api_key="k", index_name="new-index", client=pinecone_client)

        with pytest.raises(VectorStoreError, match="ready"):
            store.create_index_if_not_exists(8, max_retries=2, poll_interval=0)
