"""Pipeline configuration: document types, chunking enums and SyncConfig."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from knowledge.config import settings


class DocumentType(str, Enum):
    """Document categories the sync pipeline knows how to index."""

    TRANSCRIPT = "transcript"
    MEETING_SUMMARY = "meeting-summary"
    DOCUMENT = "document"


class ChunkingStrategy(str, Enum):
    """How parsed units are grouped into chunks."""

    TOPIC = "topic"
    SECTION = "section"


class ChunkingMode(str, Enum):
    """Which topic classifier drives transcript chunking."""

    LLM = "llm"
    HEURISTIC = "heuristic"


class ContentSource(str, Enum):
    """Provenance tag stored on every vector record."""

    TRANSCRIPT = "transcript"
    ARTIFACT = "artifact"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SyncConfig:
    """Immutable configuration for one sync run.

    ``chunking_mode`` of ``None`` uses the ``CHUNKING_MODE`` setting and
    ``batch_size`` defaults to ``WRITE_BATCH_SIZE``.
    """

    chunking_mode: ChunkingMode | None = None
    batch_size: int = field(default_factory=lambda: settings.write_batch_size)
