"""Structural parsers: transcripts into utterances, documents into sections."""

from __future__ import annotations

import re
from collections.abc import Callable

from knowledge.exceptions import ParseError
from knowledge.ingestion.models import Section, Utterance

# ``HH:MM:SS``, ``MM:SS`` or plain integer seconds, then ``Speaker: text``
_LINE_RE = re.compile(r"^(\d+(?::\d{1,2}){0,2})\s+([^:]+?):\s*(.*)$")
_VTT_TIMESTAMP_RE = re.compile(
    r"(\d{1,2}:\d{2}:\d{2}[.,]\d{3}|\d{1,2}:\d{2}[.,]\d{3})\s*-->"
)
_VTT_SPEAKER_RE = re.compile(r"^(.+?):\s*(.+)$")
# Teams <v SpeakerName> tag; the closing </v> tag is optional in WebVTT.
_TEAMS_VOICE_RE = re.compile(r"^<v ([^>]+)>(.*?)(?:</v>)?$", re.DOTALL)
_FATHOM_HEADER_RE = re.compile(r"^(\d+:\d{2}(?::\d{2})?)\s*-\s*([^(]+?)\s*(?:\([^)]*\))?\s*$")
_HEADING_RE = re.compile(r"^#{1,3}\s+(.+?)(?:\s+#+)?\s*$")


def parse_timecode(value: str) -> int:
    """Convert ``HH:MM:SS``, ``MM:SS`` or ``SS`` (fractions allowed) to whole seconds.

    Raises:
        ParseError: If *value* is not a timecode.
    """
    parts = value.strip().replace(",", ".").split(":")
    if not 1 <= len(parts) <= 3:
        raise ParseError(f"Invalid timecode: {value!r}")
    try:
        numbers = [float(p) for p in parts]
    except ValueError as exc:
        raise ParseError(f"Invalid timecode: {value!r}") from exc
    if any(n < 0 for n in numbers):
        raise ParseError(f"Invalid timecode: {value!r}")

    seconds = 0.0
    for number in numbers:
        seconds = seconds * 60 + number
    return int(seconds)


def parse_lines(content: str) -> list[Utterance]:
    """Parse one utterance per line: ``<timecode> <speaker>: <text>``.

    Blank lines are ignored; any other line that does not match is an error.
    """
    utterances: list[Utterance] = []
    for line_no, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue

        match = _LINE_RE.match(line)
        if match is None or not match.group(3).strip():
            raise ParseError(f"Malformed transcript line {line_no}: {line[:80]!r}")

        utterances.append(
            Utterance(
                timecode=parse_timecode(match.group(1)),
                speaker=match.group(2).strip(),
                text=match.group(3).strip(),
            )
        )
    return utterances


def parse_vtt(content: str) -> list[Utterance]:
    """Parse a WebVTT transcript.

    Speakers come from ``Speaker: text`` labels or Microsoft Teams
    ``<v Speaker>text</v>`` voice tags (the Teams tag wins when both are
    present). Cues without a speaker, or without a cue timing line, are
    skipped. The utterance timecode is the cue start in whole seconds.
    """
    utterances: list[Utterance] = []

    lines = content.strip().splitlines()
    i = 0
    while i < len(lines):
        match = _VTT_TIMESTAMP_RE.search(lines[i])
        if not match:
            i += 1
            continue

        start = parse_timecode(match.group(1))

        # Collect text lines until blank line or next timestamp / end
        text_lines: list[str] = []
        i += 1
        while i < len(lines) and lines[i].strip() and not _VTT_TIMESTAMP_RE.search(lines[i]):
            text_lines.append(lines[i].strip())
            i += 1

        full_text = " ".join(text_lines)
        speaker: str | None = None

        teams_match = _TEAMS_VOICE_RE.match(full_text)
        if teams_match:
            speaker = teams_match.group(1).strip()
            full_text = teams_match.group(2).strip()
        else:
            speaker_match = _VTT_SPEAKER_RE.match(full_text)
            if speaker_match:
                speaker = speaker_match.group(1).strip()
                full_text = speaker_match.group(2).strip()

        if speaker and full_text:
            utterances.append(Utterance(timecode=start, speaker=speaker, text=full_text))

    return utterances


def parse_fathom(content: str) -> list[Utterance]:
    """Parse a Fathom export.

    Each utterance is a ``M:SS - Speaker Name (Company)`` header followed by
    its text on the next non-blank line. Headers with no text are skipped.
    """
    utterances: list[Utterance] = []
    lines = content.splitlines()

    i = 0
    while i < len(lines):
        match = _FATHOM_HEADER_RE.match(lines[i].strip())
        if not match:
            i += 1
            continue

        j = i + 1
        while j < len(lines) and not lines[j].strip():
            j += 1

        if j < len(lines) and not _FATHOM_HEADER_RE.match(lines[j].strip()):
            utterances.append(
                Utterance(
                    timecode=parse_timecode(match.group(1)),
                    speaker=match.group(2).strip(),
                    text=lines[j].strip(),
                )
            )
            i = j
        i += 1

    return utterances


# Checked in order; the first marker found in the content selects the parser.
# Content with no marker falls through to the line format.
TRANSCRIPT_FORMATS: dict[str, tuple[str, Callable[[str], list[Utterance]]]] = {
    "vtt": ("WEBVTT", parse_vtt),
    "fathom": ("VIEW RECORDING", parse_fathom),
}


def detect_transcript_format(content: str) -> str:
    """Return ``"vtt"``, ``"fathom"`` or ``"lines"`` for *content*."""
    for name, (marker, _) in TRANSCRIPT_FORMATS.items():
        if marker in content:
            return name
    return "lines"


def parse_transcript(content: str) -> list[Utterance]:
    """Parse raw transcript text into ordered utterances.

    Args:
        content: Raw transcript in line, WebVTT or Fathom format.

    Returns:
        Utterances in source order.

    Raises:
        ParseError: If *content* is empty, not a string, or malformed.
    """
    if not isinstance(content, str):
        raise ParseError(f"Transcript content must be a string, got {type(content).__name__}")
    if not content.strip():
        raise ParseError("Transcript is empty")

    fmt = detect_transcript_format(content)
    if fmt == "lines":
        return parse_lines(content)
    _, parser = TRANSCRIPT_FORMATS[fmt]
    return parser(content)


def parse_sections(content: str) -> list[Section]:
    """Split a markdown-style document on ``#``, ``##`` and ``###`` headings.

    Each section's content is everything up to the next heading. Non-blank
    text before the first heading (or a document with no headings at all)
    becomes a section with an empty title.
    """
    sections: list[Section] = []
    title: str | None = None
    body: list[str] = []

    def flush() -> None:
        text = "\n".join(body).strip()
        if title is not None:
            sections.append(Section(title=title, content=text))
        elif text:
            sections.append(Section(title="", content=text))

    in_code_block = False
    for line in content.splitlines():
        if line.lstrip().startswith("```"):
            in_code_block = not in_code_block
        heading = None if in_code_block else _HEADING_RE.match(line)
        if heading:
            flush()
            title = heading.group(1)
            body = []
        else:
            body.append(line)
    flush()

    return sections
