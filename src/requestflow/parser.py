"""Free-text request parser.

Two input shapes are accepted:

Pipe mode, ``Title | cap 5 | high | anything else``: the first segment is the
title, later segments are read as priority, season, chapter or free text.

Bare mode, ``Title season 2 cap 10-12``: season and chapter markers are
located anywhere in the text and cut out of the title.
"""

from __future__ import annotations

import re

from requestflow.errors import ValidationError
from requestflow.models.entities import Priority
from requestflow.models.query import ParsedQuery

MAX_REQUEST_LENGTH = 500

PRIORITY_LITERALS: dict[str, Priority] = {
    "high": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "low": Priority.LOW,
    "alta": Priority.HIGH,
    "media": Priority.MEDIUM,
    "baja": Priority.LOW,
}

_RANGE_SEPARATOR = r"\s*(?:-|–|a|to)\s*"
_CHAPTER_WORD = r"(?:cap(?:[ií]tulo)?|ch(?:apter)?)s?\.?"

SEASON_RE = re.compile(r"\b(?:temporada|temp|season|s|t)\s*0*(\d{1,2})\b", re.IGNORECASE)
CHAPTER_RANGE_RE = re.compile(
    rf"\b{_CHAPTER_WORD}\s*0*(\d{{1,4}}){_RANGE_SEPARATOR}0*(\d{{1,4}})\b",
    re.IGNORECASE,
)
CHAPTER_RE = re.compile(rf"\b{_CHAPTER_WORD}\s*0*(\d{{1,4}})\b", re.IGNORECASE)

# Pipe segments made only of a number or a range are chapter segments too
_BARE_RANGE_RE = re.compile(rf"^0*(\d{{1,4}}){_RANGE_SEPARATOR}0*(\d{{1,4}})$", re.IGNORECASE)
_BARE_NUMBER_RE = re.compile(r"^0*(\d{1,4})$")

_DANGLING = " \t-–—:,;.|/"


def parse_request(raw: str) -> ParsedQuery:
    """Parse a raw request string.

    Raises ValidationError when the input is empty, too long, or leaves no
    title once season and chapter markers are removed.
    """
    text = (raw or "").strip()
    if not text:
        raise ValidationError(
            "The request is empty.",
            "Write the title you are looking for, e.g. 'Title | cap 5'.",
        )
    if len(text) > MAX_REQUEST_LENGTH:
        raise ValidationError(
            f"The request is too long ({len(text)} characters).",
            f"Keep it under {MAX_REQUEST_LENGTH} characters.",
        )

    segments = [segment.strip() for segment in text.split("|")]
    segments = [segment for segment in segments if segment]
    if "|" in text and len(segments) >= 2:
        parsed = _parse_pipe(segments)
    else:
        parsed = _parse_bare(text)

    if not parsed.title:
        raise ValidationError(
            "The request has no title.",
            "Include the title before the season or chapter, e.g. 'Title cap 10'.",
        )
    return parsed


def _parse_pipe(segments: list[str]) -> ParsedQuery:
    title = _clean_title(segments[0])
    season: int | None = None
    chapters: tuple[int, int] | None = None
    priority: Priority | None = None
    extra: list[str] = []

    for segment in segments[1:]:
        literal = segment.lower()
        if literal in PRIORITY_LITERALS:
            priority = PRIORITY_LITERALS[literal]
            continue

        matched = False
        season_match = SEASON_RE.search(segment)
        if season_match:
            season = int(season_match.group(1))
            matched = True

        segment_chapters = _chapters_in(segment) or _bare_chapters(segment)
        if segment_chapters:
            chapters = segment_chapters
            matched = True

        if not matched:
            extra.append(segment)

    return _build(title, season, chapters, priority, " | ".join(extra))


def _parse_bare(text: str) -> ParsedQuery:
    spans: list[tuple[int, int]] = []
    season: int | None = None

    season_match = SEASON_RE.search(text)
    if season_match:
        season = int(season_match.group(1))
        spans.append(season_match.span())

    chapters: tuple[int, int] | None = None
    range_match = CHAPTER_RANGE_RE.search(text)
    if range_match:
        chapters = _ordered(int(range_match.group(1)), int(range_match.group(2)))
        spans.append(range_match.span())
    else:
        chapter_match = CHAPTER_RE.search(text)
        if chapter_match:
            number = int(chapter_match.group(1))
            chapters = (number, number)
            spans.append(chapter_match.span())

    title = text
    for start, end in sorted(spans, reverse=True):
        title = f"{title[:start]} {title[end:]}"
    return _build(_clean_title(title), season, chapters, None, "")


def _chapters_in(segment: str) -> tuple[int, int] | None:
    range_match = CHAPTER_RANGE_RE.search(segment)
    if range_match:
        return _ordered(int(range_match.group(1)), int(range_match.group(2)))
    chapter_match = CHAPTER_RE.search(segment)
    if chapter_match:
        number = int(chapter_match.group(1))
        return number, number
    return None


def _bare_chapters(segment: str) -> tuple[int, int] | None:
    range_match = _BARE_RANGE_RE.match(segment)
    if range_match:
        return _ordered(int(range_match.group(1)), int(range_match.group(2)))
    number_match = _BARE_NUMBER_RE.match(segment)
    if number_match:
        number = int(number_match.group(1))
        return number, number
    return None


def _ordered(first: int, second: int) -> tuple[int, int]:
    return (first, second) if first <= second else (second, first)


def _clean_title(title: str) -> str:
    return " ".join(title.split()).strip(_DANGLING)


def _build(
    title: str,
    season: int | None,
    chapters: tuple[int, int] | None,
    priority: Priority | None,
    extra_text: str,
) -> ParsedQuery:
    chapter_from, chapter_to = chapters if chapters else (None, None)
    return ParsedQuery(
        title=title,
        season=season,
        chapter_from=chapter_from,
        chapter_to=chapter_to,
        priority=priority,
        extra_text=extra_text,
    )
