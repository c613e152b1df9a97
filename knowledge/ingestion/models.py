"""Data models for the ingestion and retrieval pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

from knowledge.pipeline_config import ChunkingStrategy


@dataclass
class Utterance:
    """One time-coded line of a conversational transcript."""

    timecode: int
    speaker: str
    text: str


@dataclass
class Section:
    """A titled section of a structured document."""

    title: str
    content: str


@dataclass
class TopicSpan:
    """Inclusive index range of units that share one topic."""

    topic: str
    start_idx: int
    end_idx: int


@dataclass
class ChunkMetadata:
    start_time: int | None = None
    end_time: int | None = None
    speakers: list[str] | None = None
    section_title: str | None = None


@dataclass
class Chunk:
    """A contiguous, topic-coherent span of parsed units."""

    index: int
    topic: str
    start_idx: int
    end_idx: int
    content: str
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    strategy: ChunkingStrategy = ChunkingStrategy.TOPIC


@dataclass
class VectorRecord:
    """A chunk ready for the vector index (a "RAG document").

    ``embedding`` may be ``None`` when embedding failed; such records are
    skipped at write time.
    """

    id: str
    content: str
    metadata: dict[str, Any]
    embedding: list[float] | None = None


@dataclass
class QueryMatch:
    id: str
    score: float
    content: str
    metadata: dict[str, Any]


@dataclass
class QueryResult:
    matches: list[QueryMatch]
    namespace: str


@dataclass
class WriteResult:
    success: bool
    documents_written: int
    namespace: str
    errors: list[str] | None = None


@dataclass
class NamespaceStats:
    vector_count: int


@dataclass
class IndexStats:
    dimension: int
    index_fullness: float
    total_vector_count: int
    namespaces: dict[str, NamespaceStats] = field(default_factory=dict)


class Document(BaseModel):
    """A document record as supplied by the document store.

    Accepts both snake_case and the store's camelCase column names. When
    ``document_type`` is not given it is read from ``metadata["documentType"]``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    workspace_id: str | None = None
    content: str | None = None
    document_type: str | None = None
    metadata: dict[str, Any] = {}
    created_by_user_id: str | None = None
    created_at: datetime | None = None
    title: str | None = None
    kind: str | None = None

    @model_validator(mode="after")
    def _document_type_from_metadata(self) -> Document:
        if self.document_type is None:
            value = self.metadata.get("documentType")
            if isinstance(value, str) and value:
                self.document_type = value
        return self
