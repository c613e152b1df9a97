"""LLM reranking of vector search matches."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any

from anthropic import Anthropic, APIError

from knowledge.config import settings
from knowledge.exceptions import RerankError
from knowledge.ingestion.models import QueryMatch

logger = logging.getLogger(__name__)

# Matches scored below this are not relevant enough to return
MIN_RELEVANCE = 0.3
# Candidates beyond this are not sent to the model
MAX_CANDIDATES = 30
PREVIEW_CHARS = 800

RERANK_TOOL: dict[str, Any] = {
    "name": "record_relevance_scores",
    "description": (
        "Record how relevant each search result is to the query. Call this "
        "once, listing only results that are at least tangentially relevant."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "matches": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "id": {
                            "type": "string",
                            "description": "The ID of the search result.",
                        },
                        "score": {
                            "type": "number",
                            "description": "Relevance between 0 and 1.",
                        },
                    },
                    "required": ["id", "score"],
                },
            },
        },
        "required": ["matches"],
    },
}

SYSTEM_PROMPT = (
    "You rate search results from a meeting knowledge base against a user's query.\n\n"
    "Scoring guide:\n"
    "- 0.8-1.0: directly answers the query\n"
    "- 0.5-0.79: related or useful context\n"
    "- 0.3-0.49: tangentially related\n"
    "- below 0.3: not relevant, leave it out\n\n"
    "Use the record_relevance_scores tool to return your answer."
)


def _preview(content: str) -> str:
    if not content:
        return "[NO CONTENT]"
    if len(content) <= PREVIEW_CHARS:
        return content
    half = PREVIEW_CHARS // 2
    return f"{content[:half]}...[truncated]...{content[-half:]}"


def build_rerank_prompt(query: str, matches: list[QueryMatch]) -> str:
    """Render the query and candidate matches for the reranker."""
    blocks = []
    for match in matches[:MAX_CANDIDATES]:
        lines = [
            f"ID: {match.id}",
            f"Document: {match.metadata.get('title') or 'Unknown'}",
            f"Type: {match.metadata.get('documentType') or 'unknown'}",
        ]
        speakers = match.metadata.get("speakers")
        if speakers:
            lines.append(f"Speakers: {', '.join(speakers)}")
        lines.append(f"Content: {_preview(match.content)}")
        blocks.append("\n".join(lines))
    return f'Query: "{query}"\n\nSearch results:\n' + "\n---\n".join(blocks)


def _parse_scores(response: Any) -> list[tuple[str, float]]:
    for block in response.content:
        if block.type != "tool_use" or block.name != RERANK_TOOL["name"]:
            continue

        data = block.input
        if isinstance(data, str):
            data = json.loads(data)

        try:
            return [(str(item["id"]), float(item["score"])) for item in data.get("matches", [])]
        except (KeyError, TypeError, ValueError) as exc:
            raise RerankError("Malformed relevance scores from reranker", data) from exc

    raise RerankError("Reranker response contained no relevance scores")


class LLMReranker:
    """Reorders vector matches by Claude-judged relevance to the query."""

    def __init__(self, client: Anthropic | None = None, model: str | None = None) -> None:
        self._client = client or Anthropic(api_key=settings.anthropic_api_key)
        self._model = model or settings.llm_model

    def rerank(self, query: str, matches: list[QueryMatch], top_k: int) -> list[QueryMatch]:
        """Return at most *top_k* of *matches*, rescored and sorted by relevance.

        Matches the model leaves out or scores below 0.3 are dropped, as are
        ids it invents. The returned matches carry the model's score.

        Raises:
            RerankError: If the model call fails or its answer is unusable.
        """
        if not matches:
            return []

        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=2048,
                system=SYSTEM_PROMPT,
                tools=[RERANK_TOOL],
                tool_choice={"type": "tool", "name": RERANK_TOOL["name"]},
                messages=[{"role": "user", "content": build_rerank_prompt(query, matches)}],
            )
        except APIError as exc:
            raise RerankError(f"Reranking request failed: {exc}") from exc

        by_id = {m.id: m for m in matches}
        reranked: dict[str, QueryMatch] = {}
        for match_id, score in _parse_scores(response):
            if score < MIN_RELEVANCE or match_id in reranked:
                continue
            original = by_id.get(match_id)
            if original is None:
                logger.warning("Reranker returned unknown match id %s", match_id)
                continue
            reranked[match_id] = QueryMatch(
                id=original.id,
                score=min(score, 1.0),
                content=original.content,
                metadata=original.metadata,
            )

        ordered = sorted(reranked.values(), key=lambda m: m.score, reverse=True)
        logger.info("Reranked %d matches to %d", len(matches), len(ordered))
        return ordered[:top_k]


@lru_cache(maxsize=1)
def get_reranker() -> LLMReranker:
    """Return the shared reranker built from settings."""
    return LLMReranker()
