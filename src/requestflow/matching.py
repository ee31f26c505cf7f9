"""Matching and scoring of library items and contributions.

Pure business logic: receives a ParsedQuery plus candidate records and
returns scored Candidates or TitleBuckets. No knowledge of AppState, the
store, or the channel.

Three strategies, used by the resolution machine in this order:
  1. Exact match, when the query names a chapter or chapter range
  2. Title buckets, when it does not (browse by title, season, chapter)
  3. Ranked token-overlap scoring, for suggestions and contribution listings

Every ranking sorts by score descending, ties by ascending numeric id.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from rapidfuzz import fuzz

from requestflow.classifier import DEFAULT_RULES, classify
from requestflow.models.entities import ApprovalStatus, CandidateSource, Contribution, LibraryItem
from requestflow.models.query import Candidate, TitleBucket
from requestflow.text import normalize_text, strip_known_extensions, token_overlap, tokenize

if TYPE_CHECKING:
    from collections.abc import Iterable

    from requestflow.classifier import ClassificationRules
    from requestflow.models.commands import Actor
    from requestflow.models.query import ParsedQuery

_ITEM_RANGE_RE = re.compile(r"\b(\d{1,4})\s*[-–]\s*(\d{1,4})\b")

SEASON_BONUS = 4

# (exact title, contained title)
SINGLE_EQUAL_SCORES = (100, 86)
SINGLE_IN_ITEM_RANGE_SCORES = (96, 82)
RANGE_COVERED_SCORES = (100, 88)
ITEM_IN_QUERY_RANGE_SCORES = (92, 78)

BUCKET_EQUAL = 100
BUCKET_PREFIX = 80
BUCKET_CONTAINS = 60
BUCKET_SEASON_BONUS_CAP = 10


def id_key(identifier: str | int) -> tuple[int, int, str]:
    """Sort key ordering numeric ids numerically and before non-numeric ones."""
    text = str(identifier)
    if text.isdigit():
        return (0, int(text), "")
    return (1, 0, text)


def _contains_words(haystack: str, needle: str) -> bool:
    return f" {needle} " in f" {haystack} "


def title_relation(query_title: str, candidate_titles: Iterable[str]) -> str | None:
    """Return ``"exact"``, ``"contains"`` or None for the best candidate title."""
    query = normalize_text(query_title)
    if not query:
        return None
    relation: str | None = None
    for title in candidate_titles:
        candidate = normalize_text(title)
        if not candidate:
            continue
        if candidate == query:
            return "exact"
        if _contains_words(candidate, query) or _contains_words(query, candidate):
            relation = "contains"
    return relation


def _library_titles(item: LibraryItem) -> list[str]:
    return [item.title, strip_known_extensions(item.original_name)]


def _contribution_titles(contribution: Contribution) -> list[str]:
    titles = [contribution.title]
    if contribution.attachment is not None:
        titles.append(strip_known_extensions(contribution.attachment.filename))
    return titles


def item_chapter_range(*texts: str) -> tuple[int, int] | None:
    """Find an ``N-M`` chapter range declared in any of *texts*."""
    for text in texts:
        match = _ITEM_RANGE_RE.search(text or "")
        if match:
            first, second = int(match.group(1)), int(match.group(2))
            return (first, second) if first <= second else (second, first)
    return None


def chapter_fit(
    query: ParsedQuery,
    item_chapter: int | None,
    item_range: tuple[int, int] | None,
    *,
    exact_title: bool,
) -> int | None:
    """Score how an item's chapter information fits the query, or None."""
    pick = 0 if exact_title else 1
    if query.chapter_from is None:
        return None
    low, high = query.chapter_from, query.chapter_to or query.chapter_from

    if not query.is_range:
        if item_chapter is not None and item_chapter == low:
            return SINGLE_EQUAL_SCORES[pick]
        if item_range is not None and item_range[0] <= low <= item_range[1]:
            return SINGLE_IN_ITEM_RANGE_SCORES[pick]
        return None

    if item_range is not None and item_range[0] <= low and high <= item_range[1]:
        return RANGE_COVERED_SCORES[pick]
    if item_chapter is not None and low <= item_chapter <= high:
        return ITEM_IN_QUERY_RANGE_SCORES[pick]
    return None


def _exact_score(
    query: ParsedQuery,
    titles: list[str],
    season: int | None,
    chapter: int | None,
) -> int | None:
    relation = title_relation(query.title, titles)
    if relation is None:
        return None
    if query.season is not None and season != query.season:
        return None
    score = chapter_fit(
        query,
        chapter,
        item_chapter_range(*titles),
        exact_title=relation == "exact",
    )
    if score is None:
        return None
    if query.season is not None:
        score += SEASON_BONUS
    return score


def _rank(candidates: list[Candidate], limit: int | None) -> list[Candidate]:
    candidates.sort(key=lambda c: (-c.score, id_key(c.candidate_id), c.source))
    return candidates if limit is None else candidates[:limit]


def library_candidate(
    item: LibraryItem, score: int, rules: ClassificationRules = DEFAULT_RULES
) -> Candidate:
    return Candidate(
        source=CandidateSource.LIBRARY,
        candidate_id=item.id,
        title=item.title or strip_known_extensions(item.original_name),
        score=score,
        season=item.season,
        chapter=item.chapter,
        classification=classify(item, rules),
    )


def contribution_candidate(
    contribution: Contribution, score: int, rules: ClassificationRules = DEFAULT_RULES
) -> Candidate:
    return Candidate(
        source=CandidateSource.CONTRIBUTION,
        candidate_id=contribution.id,
        title=contribution.title,
        score=score,
        season=contribution.season,
        chapter=contribution.chapter,
        classification=classify(contribution, rules),
    )


# ---------------------------------------------------------------------------
# Scope and visibility
# ---------------------------------------------------------------------------


def scoped_library(
    items: Iterable[LibraryItem],
    *,
    provider_id: str | None,
    actor: Actor,
) -> list[LibraryItem]:
    """Library items a request may draw from.

    A bound provider restricts the search to its items. Without one, the
    whole library is searchable only by the owner or outside group scopes.
    """
    if provider_id is not None:
        return [item for item in items if item.provider_id == provider_id]
    if actor.is_owner or not actor.is_group_scoped:
        return list(items)
    return []


def contribution_visible(contribution: Contribution, actor: Actor) -> bool:
    if actor.is_owner or contribution.approval == ApprovalStatus.APPROVED:
        return True
    if contribution.submitter_id == actor.requester_id:
        return True
    return (
        actor.is_elevated
        and actor.origin_scope_id is not None
        and contribution.origin_scope_id == actor.origin_scope_id
    )


# ---------------------------------------------------------------------------
# Exact match
# ---------------------------------------------------------------------------


def exact_match_library(
    query: ParsedQuery,
    items: Iterable[LibraryItem],
    *,
    rules: ClassificationRules = DEFAULT_RULES,
    limit: int | None = None,
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for item in items:
        score = _exact_score(query, _library_titles(item), item.season, item.chapter)
        if score is not None:
            candidates.append(library_candidate(item, score, rules))
    return _rank(candidates, limit)


def exact_match_contributions(
    query: ParsedQuery,
    contributions: Iterable[Contribution],
    actor: Actor,
    *,
    rules: ClassificationRules = DEFAULT_RULES,
    limit: int | None = None,
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for contribution in contributions:
        if not contribution_visible(contribution, actor):
            continue
        score = _exact_score(
            query,
            _contribution_titles(contribution),
            contribution.season,
            contribution.chapter,
        )
        if score is not None:
            candidates.append(contribution_candidate(contribution, score, rules))
    return _rank(candidates, limit)


def combined_exact_matches(
    query: ParsedQuery,
    items: Iterable[LibraryItem],
    contributions: Iterable[Contribution],
    actor: Actor,
    *,
    rules: ClassificationRules = DEFAULT_RULES,
) -> list[Candidate]:
    """Exact matches across both stores, ranked together."""
    combined = exact_match_library(query, items, rules=rules)
    combined += exact_match_contributions(query, contributions, actor, rules=rules)
    return _rank(combined, None)


# ---------------------------------------------------------------------------
# Title buckets
# ---------------------------------------------------------------------------


def _bucket_score(query: str, key: str, fuzzy_cutoff: int) -> int | None:
    if key == query:
        return BUCKET_EQUAL
    if key.startswith(query) or query.startswith(key):
        return BUCKET_PREFIX
    if _contains_words(key, query) or _contains_words(query, key):
        return BUCKET_CONTAINS
    ratio = fuzz.ratio(query, key)
    if ratio >= fuzzy_cutoff:
        # Always ranks below a containment match
        return int(ratio / 2)
    return None


def search_title_buckets(
    query_title: str,
    items: Iterable[LibraryItem],
    *,
    fuzzy_cutoff: int = 85,
    limit: int | None = None,
) -> list[TitleBucket]:
    """Group matching library items by normalized title."""
    query = normalize_text(query_title)
    if not query:
        return []

    buckets: dict[str, TitleBucket] = {}
    for item in sorted(items, key=lambda i: id_key(i.id)):
        key = normalize_text(item.title) or normalize_text(strip_known_extensions(item.original_name))
        if not key:
            continue
        bucket = buckets.get(key)
        if bucket is None:
            score = _bucket_score(query, key, fuzzy_cutoff)
            if score is None:
                continue
            bucket = TitleBucket(
                key=key,
                title=item.title or strip_known_extensions(item.original_name),
                sample_id=item.id,
                score=score,
            )
            buckets[key] = bucket
        bucket.seasons.add(item.season or 0)
        if item.chapter is not None and item.chapter not in bucket.chapters:
            bucket.chapters.append(item.chapter)
        bucket.item_count += 1

    ranked = list(buckets.values())
    for bucket in ranked:
        bucket.score += min(BUCKET_SEASON_BONUS_CAP, len(bucket.seasons))
        bucket.chapters.sort()
    ranked.sort(key=lambda b: (-b.score, id_key(b.sample_id)))
    return ranked if limit is None else ranked[:limit]


def items_in_bucket(
    bucket_key: str,
    items: Iterable[LibraryItem],
    *,
    season: int | None = None,
) -> list[LibraryItem]:
    """Items grouped under *bucket_key*, optionally restricted to one season (0 = none)."""
    selected = []
    for item in items:
        key = normalize_text(item.title) or normalize_text(strip_known_extensions(item.original_name))
        if key != bucket_key:
            continue
        if season is not None and (item.season or 0) != season:
            continue
        selected.append(item)
    selected.sort(key=lambda i: (i.chapter is None, i.chapter or 0, id_key(i.id)))
    return selected


# ---------------------------------------------------------------------------
# Ranked scoring
# ---------------------------------------------------------------------------


def _chapter_requested(query: ParsedQuery, chapter: int | None) -> bool:
    if chapter is None or query.chapter_from is None:
        return False
    return query.chapter_from <= chapter <= (query.chapter_to or query.chapter_from)


def score_item(query: ParsedQuery, item: LibraryItem, *, category: str | None = None) -> int:
    """Token-overlap score of a library item against the query."""
    query_tokens = tokenize(query.title)
    overlap = token_overlap(query_tokens, tokenize(f"{item.title} {item.original_name}"))
    score = 70 * overlap

    relation = title_relation(query.title, _library_titles(item))
    if relation == "exact":
        score += 28
    elif relation == "contains":
        score += 18

    if _chapter_requested(query, item.chapter):
        score += 30
    if query.season is not None and item.season == query.season:
        score += 18
    if category and normalize_text(category) == normalize_text(item.category):
        score += 10
    return round(score)


def score_contribution(query: ParsedQuery, contribution: Contribution) -> int:
    """Token-overlap score of a contribution against the query."""
    query_tokens = tokenize(query.title)
    filename = contribution.attachment.filename if contribution.attachment else ""
    overlap = token_overlap(query_tokens, tokenize(f"{contribution.title} {filename}"))
    score = 100 * overlap

    if title_relation(query.title, _contribution_titles(contribution)) is not None:
        score += 12
    if contribution.approval == ApprovalStatus.APPROVED:
        score += 8
    if contribution.attachment is not None:
        score += 6
    if query.season is not None and contribution.season == query.season:
        score += 14
    if _chapter_requested(query, contribution.chapter):
        score += 18
    return round(score)


def _is_related(query: ParsedQuery, titles: list[str], text: str) -> bool:
    if title_relation(query.title, titles) is not None:
        return True
    return token_overlap(tokenize(query.title), tokenize(text)) > 0


def suggest_items(
    query: ParsedQuery,
    items: Iterable[LibraryItem],
    *,
    category: str | None = None,
    rules: ClassificationRules = DEFAULT_RULES,
    limit: int | None = None,
) -> list[Candidate]:
    """Library items ranked by score_item, unrelated items excluded."""
    candidates = [
        library_candidate(item, score_item(query, item, category=category), rules)
        for item in items
        if _is_related(query, _library_titles(item), f"{item.title} {item.original_name}")
    ]
    return _rank(candidates, limit)


def rank_contributions(
    query: ParsedQuery,
    contributions: Iterable[Contribution],
    actor: Actor,
    *,
    rules: ClassificationRules = DEFAULT_RULES,
    limit: int | None = None,
) -> list[Candidate]:
    """Visible contributions ranked by score_contribution, unrelated ones excluded."""
    candidates = []
    for contribution in contributions:
        if not contribution_visible(contribution, actor):
            continue
        titles = _contribution_titles(contribution)
        if not _is_related(query, titles, " ".join(titles)):
            continue
        candidates.append(
            contribution_candidate(contribution, score_contribution(query, contribution), rules)
        )
    return _rank(candidates, limit)
