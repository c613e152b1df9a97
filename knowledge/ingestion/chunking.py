"""Chunking strategies: topic-based for transcripts, section-based for documents."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from typing import Any, Protocol

from anthropic import Anthropic

from knowledge.config import settings
from knowledge.exceptions import ChunkingError
from knowledge.ingestion.models import Chunk, ChunkMetadata, Section, TopicSpan, Utterance
from knowledge.pipeline_config import ChunkingMode, ChunkingStrategy

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "General Discussion"

# Tool definition for Claude structured output
CHUNKING_TOOL: dict[str, Any] = {
    "name": "record_topic_segments",
    "description": (
        "Record the topic segments of a conversation. Call this once with "
        "every segment, in order, covering every utterance index exactly once."
    ),
    "input_schema": {
        "type": "object",
        "properties": {
            "chunks": {
                "type": "array",
                "description": "Contiguous topic segments in conversation order.",
                "items": {
                    "type": "object",
                    "properties": {
                        "topic": {
                            "type": "string",
                            "description": "The topic discussed in this segment.",
                        },
                        "startIdx": {
                            "type": "integer",
                            "description": "Index of the first utterance (inclusive).",
                        },
                        "endIdx": {
                            "type": "integer",
                            "description": "Index of the last utterance (inclusive).",
                        },
                    },
                    "required": ["topic", "startIdx", "endIdx"],
                },
            },
        },
        "required": ["chunks"],
    },
}

SYSTEM_PROMPT = (
    "You segment business meeting transcripts into topically coherent chunks "
    "for a retrieval index.\n\n"
    "Rules:\n"
    "1. Every segment has startIdx and endIdx (both inclusive).\n"
    "2. Segments are contiguous: each segment starts right after the previous one ends.\n"
    "3. The first segment starts at 0 and the last ends at the final index.\n"
    "4. Topics may repeat when the conversation returns to them "
    "(A, B, A is three segments).\n"
    "5. Prefer natural topic boundaries over size constraints.\n\n"
    "Use the record_topic_segments tool to return your answer."
)


class TopicClassifier(Protocol):
    """Finds topic boundaries in an utterance sequence."""

    def classify(self, utterances: list[Utterance], topics: list[str]) -> list[TopicSpan]: ...


def build_chunking_prompt(utterances: list[Utterance], topics: list[str]) -> str:
    """Render the numbered conversation and topic hints for the classifier."""
    formatted = "\n".join(f"[{idx}] {u.speaker}: {u.text}" for idx, u in enumerate(utterances))
    topic_lines = "\n".join(f"- {t}" for t in topics)
    return (
        "AVAILABLE TOPICS:\n"
        f"{topic_lines}\n"
        f"- {DEFAULT_TOPIC} (use when no specific topic fits)\n\n"
        f"The conversation has {len(utterances)} utterances, indexed 0 to "
        f"{len(utterances) - 1}.\n\n"
        "Look for topic transitions (\"let's discuss\", \"moving on\", "
        "\"regarding\"), questions that change subject, and returns to "
        "earlier topics.\n\n"
        f"CONVERSATION TO SEGMENT:\n{formatted}"
    )


def normalize_spans(spans: list[TopicSpan], total: int) -> list[TopicSpan]:
    """Repair classifier output so the spans tile ``0..total-1`` exactly.

    The first span is pulled back to 0, gaps and overlaps are closed by
    starting each span right after its predecessor, spans left empty by that
    are dropped, and the last span is stretched to the final index.
    """
    if total <= 0:
        return []
    if not spans:
        return [TopicSpan(topic=DEFAULT_TOPIC, start_idx=0, end_idx=total - 1)]

    fixed: list[TopicSpan] = []
    next_start = 0
    for span in sorted(spans, key=lambda s: s.start_idx):
        if next_start >= total:
            break
        if span.end_idx < next_start:
            logger.warning(
                "Dropping span %r (%d-%d) covered by its predecessor",
                span.topic,
                span.start_idx,
                span.end_idx,
            )
            continue
        if span.start_idx != next_start:
            logger.warning("Fixing span start: %d -> %d", span.start_idx, next_start)
        end = min(max(span.end_idx, next_start), total - 1)
        fixed.append(TopicSpan(topic=span.topic or DEFAULT_TOPIC, start_idx=next_start, end_idx=end))
        next_start = end + 1

    if not fixed:
        return [TopicSpan(topic=DEFAULT_TOPIC, start_idx=0, end_idx=total - 1)]

    if fixed[-1].end_idx != total - 1:
        logger.warning("Fixing last span end: %d -> %d", fixed[-1].end_idx, total - 1)
        fixed[-1].end_idx = total - 1

    return fixed


def _parse_tool_response(response: Any) -> list[TopicSpan]:
    """Parse the Claude tool_use response into topic spans."""
    for block in response.content:
        if block.type != "tool_use" or block.name != CHUNKING_TOOL["name"]:
            continue

        data = block.input
        if isinstance(data, str):
            data = json.loads(data)

        try:
            return [
                TopicSpan(
                    topic=str(item.get("topic") or DEFAULT_TOPIC),
                    start_idx=int(item["startIdx"]),
                    end_idx=int(item["endIdx"]),
                )
                for item in data.get("chunks", [])
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise ChunkingError("Malformed topic segments from classifier", data) from exc

    raise ChunkingError("Classifier response contained no topic segments")


class LLMTopicClassifier:
    """Topic boundary detection with Claude (production mode)."""

    def __init__(self, client: Anthropic | None = None, model: str | None = None) -> None:
        self._client = client or Anthropic(api_key=settings.anthropic_api_key)
        self._model = model or settings.llm_model

    def classify(self, utterances: list[Utterance], topics: list[str]) -> list[TopicSpan]:
        response = self._client.messages.create(
            model=self._model,
            max_tokens=4096,
            system=SYSTEM_PROMPT,
            tools=[CHUNKING_TOOL],
            tool_choice={"type": "tool", "name": CHUNKING_TOOL["name"]},
            messages=[{"role": "user", "content": build_chunking_prompt(utterances, topics)}],
        )
        return normalize_spans(_parse_tool_response(response), len(utterances))


class HeuristicTopicClassifier:
    """Deterministic boundary detection for tests and dry runs.

    Spans aim for ``min(30, max(5, ceil(n / len(topics))))`` utterances and
    end early at a speaker change or a pause of more than 30 seconds. Topic
    hints are assigned round-robin.
    """

    max_span = 30
    min_span = 5
    pause_seconds = 30

    def classify(self, utterances: list[Utterance], topics: list[str]) -> list[TopicSpan]:
        hints = topics or [DEFAULT_TOPIC]
        total = len(utterances)
        target = min(self.max_span, max(self.min_span, math.ceil(total / len(hints))))

        spans: list[TopicSpan] = []
        current = 0
        while current < total:
            end = min(current + target - 1, total - 1)

            # Look back for a natural boundary, keeping at least 4 utterances
            if end < total - 1:
                for i in range(end, current + 3, -1):
                    prev, cur = utterances[i - 1], utterances[i]
                    if cur.speaker != prev.speaker or cur.timecode - prev.timecode > self.pause_seconds:
                        end = i - 1
                        break

            spans.append(TopicSpan(topic=hints[len(spans) % len(hints)], start_idx=current, end_idx=end))
            current = end + 1

        return spans


# Every ChunkingMode must have an entry; checked by the test suite.
CLASSIFIERS: dict[ChunkingMode, Callable[[], TopicClassifier]] = {
    ChunkingMode.LLM: LLMTopicClassifier,
    ChunkingMode.HEURISTIC: HeuristicTopicClassifier,
}


def get_classifier(mode: str | ChunkingMode | None = None) -> TopicClassifier:
    """Instantiate the classifier for *mode* (default: ``settings.chunking_mode``).

    Raises:
        ValueError: If *mode* is not a known chunking mode.
    """
    return CLASSIFIERS[ChunkingMode(mode or settings.chunking_mode)]()


def _format_utterances(utterances: list[Utterance]) -> str:
    return "\n".join(f"[{u.timecode}s] {u.speaker}: {u.text}" for u in utterances)


def chunk_transcript(
    utterances: list[Utterance],
    topics: list[str] | None = None,
    classifier: TopicClassifier | None = None,
) -> list[Chunk]:
    """Group contiguous utterances into topic chunks.

    Classifier failures propagate; there is no fallback chunking.

    Args:
        utterances: Parsed utterances in source order.
        topics: Optional topic hints (e.g. from a meeting summary).
        classifier: Boundary detector; defaults to the configured mode.

    Returns:
        Chunks whose index ranges tile the input exactly once.
    """
    if not utterances:
        return []

    classifier = classifier or get_classifier()
    spans = normalize_spans(classifier.classify(utterances, list(topics or [])), len(utterances))

    chunks: list[Chunk] = []
    for index, span in enumerate(spans):
        span_items = utterances[span.start_idx : span.end_idx + 1]
        chunks.append(
            Chunk(
                index=index,
                topic=span.topic,
                start_idx=span.start_idx,
                end_idx=span.end_idx,
                content=_format_utterances(span_items),
                metadata=ChunkMetadata(
                    start_time=span_items[0].timecode,
                    end_time=span_items[-1].timecode,
                    speakers=list(dict.fromkeys(u.speaker for u in span_items)),
                ),
                strategy=ChunkingStrategy.TOPIC,
            )
        )
    return chunks


def chunk_sections(sections: list[Section]) -> list[Chunk]:
    """One chunk per section; no merging or splitting."""
    chunks: list[Chunk] = []
    for index, section in enumerate(sections):
        title = section.title or f"Section {index + 1}"
        content = f"{section.title}\n{section.content}".strip() if section.title else section.content
        chunks.append(
            Chunk(
                index=index,
                topic=title,
                start_idx=index,
                end_idx=index,
                content=content,
                metadata=ChunkMetadata(section_title=title),
                strategy=ChunkingStrategy.SECTION,
            )
        )
    return chunks
