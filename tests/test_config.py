"""Tests for Settings, SyncConfig and the pipeline enums."""

from __future__ import annotations

import pytest

from knowledge.config import Settings
from knowledge.exceptions import (
    ChunkingError,
    ConfigurationError,
    KnowledgeError,
    ParseError,
    RerankError,
    VectorStoreError,
)
from knowledge.pipeline_config import (
    ChunkingMode,
    ChunkingStrategy,
    ContentSource,
    DocumentType,
    SyncConfig,
)

# ---------------------------------------------------------------------------
# Enum tests
# ---------------------------------------------------------------------------


class TestDocumentType:
    def test_values(self) -> None:
        assert DocumentType.TRANSCRIPT.value == "transcript"
        assert DocumentType.MEETING_SUMMARY.value == "meeting-summary"
        assert DocumentType.DOCUMENT.value == "document"

    def test_from_string(self) -> None:
        assert DocumentType("meeting-summary") is DocumentType.MEETING_SUMMARY

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            DocumentType("spreadsheet")

    def test_compares_equal_to_plain_string(self) -> None:
        """Metadata carries plain strings; enum members must match them."""
        assert DocumentType.TRANSCRIPT == "transcript"


class TestChunkingEnums:
    def test_strategy_values(self) -> None:
        assert ChunkingStrategy.TOPIC.value == "topic"
        assert ChunkingStrategy.SECTION.value == "section"

    def test_mode_from_string(self) -> None:
        assert ChunkingMode("llm") is ChunkingMode.LLM
        assert ChunkingMode("heuristic") is ChunkingMode.HEURISTIC

    def test_is_str_subclass(self) -> None:
        assert isinstance(ChunkingStrategy.TOPIC, str)
        assert isinstance(ContentSource.ARTIFACT, str)


# ---------------------------------------------------------------------------
# SyncConfig tests
# ---------------------------------------------------------------------------


class TestSyncConfig:
    def test_defaults(self) -> None:
        cfg = SyncConfig()
        assert cfg.chunking_mode is None
        assert cfg.batch_size == 100

    def test_custom_values(self) -> None:
        cfg = SyncConfig(chunking_mode=ChunkingMode.HEURISTIC, batch_size=10)
        assert cfg.chunking_mode is ChunkingMode.HEURISTIC
        assert cfg.batch_size == 10

    def test_immutable(self) -> None:
        cfg = SyncConfig()
        with pytest.raises(AttributeError):
            cfg.batch_size = 5  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Settings tests
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "PINECONE_INDEX_NAME",
            "PINECONE_METRIC",
            "EMBEDDING_DIMENSIONS",
            "EMBEDDING_BATCH_SIZE",
            "CHUNKING_MODE",
        ):
            monkeypatch.delenv(name, raising=False)
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.pinecone_index_name == "rag-index"
        assert s.pinecone_metric == "cosine"
        assert s.embedding_dimensions == 1536
        assert s.embedding_batch_size == 2048
        assert s.chunking_mode == "llm"

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PINECONE_INDEX_NAME", "from-env")
        monkeypatch.setenv("WRITE_BATCH_SIZE", "25")
        s = Settings(_env_file=None)  # type: ignore[call-arg]
        assert s.pinecone_index_name == "from-env"
        assert s.write_batch_size == 25


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class TestExceptions:
    @pytest.mark.parametrize(
        "exc_type", [ConfigurationError, ParseError, ChunkingError, VectorStoreError, RerankError]
    )
    def test_subclasses_base(self, exc_type: type[KnowledgeError]) -> None:
        err = exc_type("boom", {"k": 1})
        assert isinstance(err, KnowledgeError)
        assert err.message == "boom"
        assert err.details == {"k": 1}
        assert str(err) == "boom"

    def test_codes_are_distinct(self) -> None:
        classes = (KnowledgeError, ConfigurationError, ParseError, ChunkingError, VectorStoreError, RerankError)
        assert len({cls.code for cls in classes}) == 6
