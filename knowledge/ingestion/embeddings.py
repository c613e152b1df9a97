"""Embedding helpers using OpenAI text-embedding-3-small."""

from __future__ import annotations

import logging

from openai import OpenAI

from knowledge.config import settings

logger = logging.getLogger(__name__)

# Hard per-request input limit of the OpenAI embeddings endpoint
MAX_INPUTS_PER_REQUEST = 2048


def embed_texts(
    texts: list[str],
    model: str | None = None,
    batch_size: int | None = None,
) -> list[list[float]]:
    """Embed a list of texts using the OpenAI embeddings API.

    Texts are sent in requests of at most *batch_size* inputs.

    Args:
        texts: Strings to embed.
        model: OpenAI embedding model name (default: ``settings.embedding_model``).
        batch_size: Inputs per request (default: ``settings.embedding_batch_size``,
            capped at 2048).

    Returns:
        A list of embedding vectors (one per input text, in input order).
    """
    if not texts:
        return []

    size = min(batch_size or settings.embedding_batch_size, MAX_INPUTS_PER_REQUEST)
    if size < 1:
        raise ValueError(f"batch_size must be >= 1, got {size}")

    client = OpenAI(api_key=settings.openai_api_key or None)
    embeddings: list[list[float]] = []
    for start in range(0, len(texts), size):
        batch = texts[start : start + size]
        logger.debug("Embedding texts %d-%d of %d", start, start + len(batch) - 1, len(texts))
        response = client.embeddings.create(
            input=batch,
            model=model or settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
        embeddings.extend(item.embedding for item in sorted(response.data, key=lambda d: d.index))
    return embeddings


def embed_query(text: str, model: str | None = None) -> list[float]:
    """Generate an embedding vector for a single query string."""
    return embed_texts([text], model=model)[0]
