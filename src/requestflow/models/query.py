from __future__ import annotations

from pydantic import BaseModel

from requestflow.models.entities import (
    CandidateSource,
    ContentSource,
    ContentType,
    Priority,
)


class ParsedQuery(BaseModel):
    """Structured form of a free-text request."""

    title: str
    season: int | None = None
    chapter_from: int | None = None
    chapter_to: int | None = None
    priority: Priority | None = None
    extra_text: str = ""

    @property
    def has_chapter(self) -> bool:
        return self.chapter_from is not None

    @property
    def is_range(self) -> bool:
        return self.chapter_from is not None and self.chapter_to != self.chapter_from


class Classification(BaseModel):
    content_type: ContentType = ContentType.MAIN
    content_source: ContentSource | None = None
    is_sensitive: bool = False


class Candidate(BaseModel):
    """A scored library item or contribution offered for a request."""

    source: CandidateSource
    candidate_id: str
    title: str
    score: int
    season: int | None = None
    chapter: int | None = None
    classification: Classification = Classification()

    @property
    def content_type(self) -> ContentType:
        return self.classification.content_type


class TitleBucket(BaseModel):
    """Library items grouped under one normalized title."""

    key: str  # Normalized title
    title: str  # Display title of the first item seen
    sample_id: str
    score: int = 0
    seasons: set[int] = set()  # 0 stands for "no season"
    chapters: list[int] = []
    item_count: int = 0

    def chapter_span(self) -> str:
        if not self.chapters:
            return "-"
        return f"{min(self.chapters)}-{max(self.chapters)} ({len(self.chapters)})"
