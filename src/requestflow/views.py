"""Chooser and text builders for the resolution flow.

Every row carries the full command that selects it, so the plain-text
fallback and rich widgets share one action vocabulary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from requestflow.models.commands import Chooser, ChooserRow, ChooserSection
from requestflow.models.entities import PRIORITY_ORDER, ContentType

if TYPE_CHECKING:
    from requestflow.models.entities import LibraryItem, PendingConfirmation, Provider, Request
    from requestflow.models.query import Candidate, Classification, TitleBucket

SENSITIVE_LABEL = "BL"

_CONTENT_TYPE_LABELS: dict[ContentType, str] = {
    ContentType.MAIN: "Main chapters",
    ContentType.ILLUSTRATION: "Illustrations",
    ContentType.SPIN_OFF: "Spin-offs",
    ContentType.AU: "Alternate universes",
    ContentType.SIDE: "Side stories",
    ContentType.BONUS: "Bonus chapters",
    ContentType.EPILOGUE: "Epilogues",
    ContentType.PROLOGUE: "Prologues",
    ContentType.EXTRA: "Extras",
}


def content_type_label(content_type: ContentType) -> str:
    return _CONTENT_TYPE_LABELS.get(content_type, str(content_type))


def _chapter_label(chapter_from: int | None, chapter_to: int | None) -> str:
    if chapter_from is None:
        return ""
    if chapter_to is None or chapter_to == chapter_from:
        return f"ch. {chapter_from}"
    return f"ch. {chapter_from}-{chapter_to}"


def request_heading(request: Request) -> str:
    parts = [f"#{request.id} {request.title}"]
    if request.season is not None:
        parts.append(f"season {request.season}")
    chapters = _chapter_label(request.chapter_from, request.chapter_to)
    if chapters:
        parts.append(chapters)
    return " · ".join(parts)


def request_line(request: Request) -> str:
    return f"{request_heading(request)} [{request.status}, {request.priority}, votes {request.votes}]"


def request_detail(request: Request) -> str:
    lines = [
        request_heading(request),
        f"Status: {request.status} ({request.flow_state})",
        f"Priority: {request.priority}",
        f"Votes: {request.votes}",
        f"Requested by: {request.requester_id}",
    ]
    if request.description:
        lines.append(f"Notes: {request.description}")
    if request.provider_id:
        lines.append(f"Provider: {request.provider_id}")
    if request.pending_confirmation is not None:
        pending = request.pending_confirmation
        lines.append(f"Awaiting confirmation: {pending.title} ({pending.content_type})")
    if request.resolution is not None:
        resolution = request.resolution
        lines.append(f"Resolved with: {resolution.title} ({resolution.source})")
    return "\n".join(lines)


def sort_for_listing(requests: list[Request]) -> list[Request]:
    return sorted(requests, key=lambda r: (PRIORITY_ORDER[r.priority], -r.votes, r.id))


def _candidate_row(request: Request, candidate: Candidate, prefix: str) -> ChooserRow:
    details = [str(candidate.source), f"score {candidate.score}"]
    chapters = _chapter_label(candidate.chapter, candidate.chapter)
    if candidate.season is not None:
        details.append(f"season {candidate.season}")
    if chapters:
        details.append(chapters)
    if candidate.content_type != ContentType.MAIN:
        details.append(str(candidate.content_type))
    if candidate.classification.is_sensitive:
        details.append(SENSITIVE_LABEL)
    return ChooserRow(
        action=f"{prefix}select {request.id} {candidate.source} {candidate.candidate_id}",
        title=candidate.title,
        description=" · ".join(details),
    )


def candidates_chooser(
    request: Request,
    candidates: list[Candidate],
    prefix: str,
    *,
    title: str,
    body: str = "",
) -> Chooser:
    return Chooser(
        title=title,
        body=body or request_heading(request),
        button_text="Pick one",
        footer=f"{prefix}cancelrequest {request.id} to cancel",
        sections=[
            ChooserSection(
                title="Matches",
                rows=[_candidate_row(request, candidate, prefix) for candidate in candidates],
            )
        ],
    )


def titles_chooser(request: Request, buckets: list[TitleBucket], prefix: str) -> Chooser:
    rows = [
        ChooserRow(
            action=f"{prefix}seasons {request.id} {bucket.sample_id}",
            title=bucket.title,
            description=f"Seasons: {len(bucket.seasons)} · Chapters: {bucket.chapter_span()}",
        )
        for bucket in buckets
    ]
    return Chooser(
        title="Matching titles",
        body=request_heading(request),
        button_text="Titles",
        footer=f"{prefix}contributions {request.id} to see user contributions",
        sections=[ChooserSection(title="Titles", rows=rows)],
    )


def seasons_chooser(
    request: Request,
    bucket_title: str,
    sample_id: str,
    seasons: list[int],
    prefix: str,
    *,
    other_types: dict[ContentType, int] | None = None,
    sensitive: bool = False,
) -> Chooser:
    """Seasons of the main chapters; other content types get a section of their own."""
    sections = []
    if seasons:
        rows = [
            ChooserRow(
                action=f"{prefix}chapters {request.id} {sample_id} {season} 1",
                title=f"Season {season}" if season else "No season",
            )
            for season in seasons
        ]
        sections.append(ChooserSection(title=content_type_label(ContentType.MAIN), rows=rows))
    if other_types:
        rows = [
            ChooserRow(
                action=f"{prefix}types {request.id} {sample_id} {content_type}",
                title=content_type_label(content_type),
                description=f"Items: {count} · needs confirmation",
            )
            for content_type, count in other_types.items()
        ]
        sections.append(ChooserSection(title="Other content", rows=rows))

    body = "Choose a season" if not other_types else "Choose what to receive"
    if sensitive:
        body = f"{body}\n{SENSITIVE_LABEL}: yes"
    return Chooser(
        title=bucket_title,
        body=body,
        button_text="Seasons",
        sections=sections,
    )


def content_chooser(
    request: Request,
    bucket_title: str,
    content_type: ContentType,
    entries: list[tuple[LibraryItem, Classification]],
    prefix: str,
) -> Chooser:
    rows = []
    for item, classification in entries:
        details = []
        if item.season is not None:
            details.append(f"season {item.season}")
        if item.chapter is not None:
            details.append(f"ch. {item.chapter}")
        if classification.content_source is not None:
            details.append(str(classification.content_source))
        if classification.is_sensitive:
            details.append(SENSITIVE_LABEL)
        if item.original_name:
            details.append(item.original_name)
        rows.append(
            ChooserRow(
                action=f"{prefix}select {request.id} library {item.id}",
                title=item.title,
                description=" · ".join(details),
            )
        )
    return Chooser(
        title=f"{bucket_title}: {content_type_label(content_type)}",
        body="Selecting an item asks for confirmation",
        button_text="Items",
        footer=f"{prefix}cancelrequest {request.id} to cancel",
        sections=[ChooserSection(title="Items", rows=rows)],
    )


def chapters_chooser(
    request: Request,
    bucket_title: str,
    items: list[LibraryItem],
    *,
    sample_id: str,
    season: int,
    page: int,
    total_pages: int,
    prefix: str,
) -> Chooser:
    rows = []
    for item in items:
        label = f"Chapter {item.chapter}" if item.chapter is not None else item.title
        rows.append(
            ChooserRow(
                action=f"{prefix}select {request.id} library {item.id}",
                title=label,
                description=item.original_name,
            )
        )
    sections = [ChooserSection(title=f"Page {page}/{total_pages}", rows=rows)]
    if page < total_pages:
        sections.append(
            ChooserSection(
                title="More",
                rows=[
                    ChooserRow(
                        action=f"{prefix}chapters {request.id} {sample_id} {season} {page + 1}",
                        title="Next page",
                    )
                ],
            )
        )
    return Chooser(
        title=bucket_title,
        body=f"Season {season}" if season else "Chapters",
        button_text="Chapters",
        sections=sections,
    )


def providers_chooser(request: Request, providers: list[Provider], prefix: str) -> Chooser:
    rows = [
        ChooserRow(
            action=f"{prefix}useprovider {request.id} {provider.id}",
            title=provider.name,
            description=provider.kind,
        )
        for provider in providers
    ]
    return Chooser(
        title="Choose a provider",
        body=request_heading(request),
        button_text="Providers",
        sections=[ChooserSection(title="Providers", rows=rows)],
    )


def confirmation_text(request: Request, pending: PendingConfirmation, prefix: str) -> str:
    lines = [f"'{pending.title}' is marked as {pending.content_type}, not main content."]
    if pending.content_source is not None:
        lines.append(f"Source: {pending.content_source}")
    if pending.is_sensitive:
        lines.append(f"{SENSITIVE_LABEL}: yes")
    lines.append(
        f"Reply {prefix}confirm {request.id} yes to receive it, "
        f"or {prefix}confirm {request.id} no to keep browsing."
    )
    return "\n".join(lines)
