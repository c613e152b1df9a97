"""Exception hierarchy for the knowledge sync pipeline."""

from __future__ import annotations

from typing import Any


class KnowledgeError(Exception):
    """Base class for every error raised by this package."""

    code = "KNOWLEDGE_ERROR"

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(KnowledgeError):
    """A required credential or setting is missing."""

    code = "CONFIGURATION_ERROR"


class ParseError(KnowledgeError, ValueError):
    """Raw document content could not be parsed into units."""

    code = "PARSING_ERROR"


class ChunkingError(KnowledgeError):
    """The topic classifier did not return usable boundaries."""

    code = "CHUNKING_ERROR"


class VectorStoreError(KnowledgeError):
    """A call to the vector index service failed."""

    code = "VECTOR_STORE_ERROR"


class RerankError(KnowledgeError):
    """The reranker did not return usable relevance scores."""

    code = "RERANK_ERROR"
