"""Helpers for structured meeting-summary documents."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

_H1_RE = re.compile(r"^# (.+)$", re.MULTILINE)
_H2_RE = re.compile(r"^## (.+)$", re.MULTILINE)
_METADATA_COMMENT_RE = re.compile(r"^<!--\s*metadata:\s*(\{.*?\})\s*-->", re.MULTILINE | re.DOTALL)
_HTML_COMMENT_RE = re.compile(r"^<!--.*?-->\n*", re.MULTILINE | re.DOTALL)

# H2 headings that structure a summary but are not discussion topics
META_SECTIONS = (
    "overview",
    "summary",
    "decisions",
    "action items",
    "next meeting",
    "next steps",
    "participants",
    "attendees",
    "key points",
    "takeaways",
    "follow-up",
    "notes",
)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%B %d %Y",
)
_MONTH_DAY_FORMATS = ("%B %d", "%b %d")


@dataclass
class MeetingSummaryMetadata:
    date: str | None = None
    participants: list[str] | None = None
    duration: str | None = None
    meeting_title: str | None = None


@dataclass
class SummaryValidation:
    is_valid: bool
    topics: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def is_meta_section(title: str) -> bool:
    lowered = title.lower()
    return any(keyword in lowered for keyword in META_SECTIONS)


def extract_topics_from_summary(markdown: str) -> list[str]:
    """Return discussion topics from the H2 headings of a summary.

    ``## Topic: Budget`` yields ``"Budget"``; meta sections such as
    "Key Decisions" or "Action Items" are left out.
    """
    topics: list[str] = []
    for match in _H2_RE.finditer(markdown):
        header = match.group(1).strip()
        if header.lower().startswith("topic:"):
            topics.append(header[len("topic:") :].strip())
        elif not is_meta_section(header):
            topics.append(header)
    return topics


def parse_meeting_metadata(markdown: str) -> MeetingSummaryMetadata:
    """Pull date, participants, duration and title out of a summary body."""
    metadata = MeetingSummaryMetadata()

    date_match = re.search(r"\*\*Date:\*\*\s*(.+)", markdown)
    if date_match:
        metadata.date = date_match.group(1).strip()

    participants_match = re.search(r"\*\*Participants?:\*\*\s*(.+)", markdown)
    if participants_match:
        metadata.participants = [
            p.strip() for p in participants_match.group(1).split(",") if p.strip()
        ]

    duration_match = re.search(r"\*\*Duration:\*\*\s*(.+)", markdown)
    if duration_match:
        metadata.duration = duration_match.group(1).strip()

    title_match = _H1_RE.search(markdown)
    if title_match:
        metadata.meeting_title = re.sub(
            r"Meeting Summary:?\s*", "", title_match.group(1), flags=re.IGNORECASE
        ).strip()

    return metadata


def validate_summary_structure(markdown: str) -> SummaryValidation:
    """Check a summary for a title, date, participants and at least two topics."""
    errors: list[str] = []
    topics = extract_topics_from_summary(markdown)

    if not _H1_RE.search(markdown):
        errors.append("Missing title (H1 header)")

    if not topics:
        errors.append('No topic sections found (use "## Topic: [Name]" format)')
    elif len(topics) < 2:
        errors.append("Only one topic found - consider breaking down the discussion further")

    if "**Date:**" not in markdown:
        errors.append("Missing meeting date")

    if not re.search(r"\*\*Participants?:\*\*", markdown):
        errors.append("Missing participants list")

    return SummaryValidation(is_valid=not errors, topics=topics, errors=errors)


def extract_metadata_from_content(
    content: str,
) -> tuple[str | None, dict[str, Any] | None, str]:
    """Read a leading ``<!-- metadata: {...} -->`` comment.

    Returns:
        ``(document_type, metadata, clean_content)``. When there is no
        comment, or its JSON is invalid, the first two are ``None`` and the
        content is returned unchanged.
    """
    match = _METADATA_COMMENT_RE.search(content)
    if not match:
        return None, None, content

    try:
        metadata = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.warning("Ignoring metadata comment with invalid JSON")
        return None, None, content

    if not isinstance(metadata, dict):
        return None, None, content

    clean_content = _HTML_COMMENT_RE.sub("", content)
    return metadata.get("documentType"), metadata, clean_content


def parse_meeting_date(value: str | None) -> str | None:
    """Normalise a free-form meeting date to an ISO-8601 string.

    Month-day strings such as ``"September 11"`` are assumed to be in the
    current year. Returns ``None`` when the value cannot be parsed.
    """
    if not value:
        return None
    text = value.strip()

    if re.match(r"^\d{4}-\d{2}-\d{2}", text):
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
        except ValueError:
            pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).isoformat()
        except ValueError:
            continue

    for fmt in _MONTH_DAY_FORMATS:
        try:
            parsed = datetime.strptime(f"{text} {datetime.now().year}", f"{fmt} %Y")
        except ValueError:
            continue
        return parsed.isoformat()

    logger.warning("Could not parse meeting date: %r", value)
    return None
