"""Request resolution state machine.

Flow states::

    PENDING ──chapter parsed, one main candidate──────────▶ COMPLETED
       │   ──chapter parsed, one non-main candidate──────▶ AWAITING_CONFIRMATION
       └───otherwise─────────────────────────────────────▶ BROWSING
    BROWSING ──select main──────────────────────────────▶ COMPLETED
             ──select non-main──────────────────────────▶ AWAITING_CONFIRMATION
    AWAITING_CONFIRMATION ──yes──▶ COMPLETED   ──no / expired──▶ BROWSING
    any non-terminal ──cancel──▶ CANCELLED

Browsing a title splits it by content type: main chapters go season →
chapter page, every other type (extras, illustrations...) is listed on its
own and its items always need confirmation. Changing the provider drops a
live pending confirmation.

Every mutation re-reads the request from the store and re-checks that it
is still open before acting. Pending confirmations expire lazily: the age
check runs whenever the request is touched, never on a timer.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog

from requestflow import views
from requestflow.classifier import DEFAULT_RULES, split_by_content_type
from requestflow.errors import (
    AlreadyCancelledError,
    AlreadyCompletedError,
    ClassificationConfirmationRequired,
    ConfirmationExpiredError,
    DeliveryError,
    ErrorCode,
    NotFoundError,
    PermissionDeniedError,
    RequestFlowError,
    ValidationError,
)
from requestflow.events import REQUEST_CREATED, REQUEST_UPDATED
from requestflow.matching import (
    combined_exact_matches,
    contribution_candidate,
    contribution_visible,
    exact_match_contributions,
    exact_match_library,
    id_key,
    items_in_bucket,
    library_candidate,
    rank_contributions,
    score_contribution,
    score_item,
    scoped_library,
    search_title_buckets,
    suggest_items,
)
from requestflow.models.commands import FlowResult
from requestflow.models.entities import (
    STATUS_RANK,
    CandidateSource,
    ContentType,
    FlowState,
    PendingConfirmation,
    Priority,
    Request,
    RequestStatus,
    utcnow,
)
from requestflow.models.query import ParsedQuery
from requestflow.parser import parse_request
from requestflow.text import normalize_text, strip_known_extensions

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from requestflow.classifier import ClassificationRules
    from requestflow.config import Settings
    from requestflow.delivery import Fulfillment
    from requestflow.events import EventEmitter
    from requestflow.models.commands import Actor
    from requestflow.models.entities import LibraryItem
    from requestflow.models.query import Candidate
    from requestflow.protocols import ChannelProtocol
    from requestflow.store import Repositories

log = structlog.get_logger()

YES_ANSWERS = frozenset({"si", "yes", "y", "s", "ok"})
NO_ANSWERS = frozenset({"no", "n", "cancelar", "volver", "back"})

STATUS_ALIASES: dict[str, RequestStatus] = {
    "pendiente": RequestStatus.PENDING,
    "en_proceso": RequestStatus.IN_PROGRESS,
    "en proceso": RequestStatus.IN_PROGRESS,
    "in progress": RequestStatus.IN_PROGRESS,
    "completado": RequestStatus.COMPLETED,
    "cancelado": RequestStatus.CANCELLED,
    "canceled": RequestStatus.CANCELLED,
}


def can_manage(request: Request, actor: Actor) -> bool:
    """True if *actor* may mutate *request*.

    Allowed: the global owner; the requester within the request's origin
    scope; an elevated moderator of that same scope.
    """
    if actor.is_owner:
        return True
    same_scope = request.origin_scope_id is None or actor.origin_scope_id == request.origin_scope_id
    if actor.requester_id == request.requester_id and same_scope:
        return True
    return (
        actor.is_elevated
        and request.origin_scope_id is not None
        and actor.origin_scope_id == request.origin_scope_id
    )


def authorize(request: Request, actor: Actor) -> None:
    if not can_manage(request, actor):
        log.warning(
            "permission_denied",
            request_id=request.id,
            actor=actor.requester_id,
            origin_scope_id=actor.origin_scope_id,
        )
        raise PermissionDeniedError(
            f"You cannot change request #{request.id}.",
            "Only its requester, a moderator of its group, or the owner can do that.",
        )


def parse_status(value: str) -> RequestStatus:
    literal = value.strip().lower()
    if literal in STATUS_ALIASES:
        return STATUS_ALIASES[literal]
    try:
        return RequestStatus(literal)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in RequestStatus)
        raise ValidationError(f"Unknown status '{value}'.", f"Use one of: {allowed}.") from exc


def query_for(request: Request) -> ParsedQuery:
    return ParsedQuery(
        title=request.title,
        season=request.season,
        chapter_from=request.chapter_from,
        chapter_to=request.chapter_to,
    )


def _bucket_key(item: LibraryItem) -> str:
    return normalize_text(item.title) or normalize_text(strip_known_extensions(item.original_name))


class ResolutionMachine:
    def __init__(
        self,
        repos: Repositories,
        fulfillment: Fulfillment,
        events: EventEmitter,
        settings: Settings,
        *,
        rules: ClassificationRules = DEFAULT_RULES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repos = repos
        self._fulfillment = fulfillment
        self._events = events
        self._settings = settings
        self._rules = rules
        self._clock = clock

    @property
    def _prefix(self) -> str:
        return self._settings.router.prefix

    @property
    def _ttl(self) -> timedelta:
        return timedelta(minutes=self._settings.resolution.confirmation_ttl_minutes)

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    async def load(self, request_id: int) -> Request:
        request = await self._repos.requests.get(request_id)
        if request is None:
            raise NotFoundError(
                f"Request #{request_id} does not exist.",
                f"Use {self._prefix}requests to list open requests.",
            )
        return request

    async def _load_open(self, request_id: int) -> Request:
        """Re-read the request and reject terminal ones with the idempotent reply."""
        request = await self.load(request_id)
        if request.status == RequestStatus.COMPLETED:
            raise AlreadyCompletedError(f"Request #{request.id} is already completed.")
        if request.status == RequestStatus.CANCELLED:
            raise AlreadyCancelledError(f"Request #{request.id} is already cancelled.")
        return request

    async def _save(self, request: Request, event: str = REQUEST_UPDATED) -> bool:
        saved = await self._repos.requests.save(request)
        if saved:
            self._events.emit(event, request)
        return saved

    async def _expire_pending(self, request: Request) -> bool:
        """Drop an expired pending confirmation. Returns True if one was dropped."""
        pending = request.pending_confirmation
        now = self._clock()
        if pending is None or not pending.is_expired(now, self._ttl):
            return False
        request.pending_confirmation = None
        request.flow_state = FlowState.BROWSING
        request.record(
            "confirmation_expired",
            now,
            source=pending.source,
            candidate_id=pending.candidate_id,
        )
        await self._save(request)
        log.info("confirmation_expired", request_id=request.id, candidate_id=pending.candidate_id)
        return True

    def _discard_pending(self, request: Request, *, reason: str) -> None:
        """Drop a live pending confirmation that no longer applies. Caller saves."""
        pending = request.pending_confirmation
        if pending is None:
            return
        request.pending_confirmation = None
        request.flow_state = FlowState.BROWSING
        request.record(
            "confirmation_discarded",
            self._clock(),
            source=pending.source,
            candidate_id=pending.candidate_id,
            reason=reason,
        )
        log.info(
            "confirmation_discarded",
            request_id=request.id,
            candidate_id=pending.candidate_id,
            reason=reason,
        )

    async def _library_for(self, request: Request, actor: Actor) -> list[LibraryItem]:
        return scoped_library(
            await self._repos.library.list(),
            provider_id=request.provider_id,
            actor=actor,
        )

    # ------------------------------------------------------------------
    # Creation and the automatic path
    # ------------------------------------------------------------------

    async def create(self, actor: Actor, raw: str, channel: ChannelProtocol) -> FlowResult:
        """Parse *raw*, store a new request, and run the automatic resolution path."""
        parsed = parse_request(raw)
        request_id = await self._repos.requests.next_id()
        now = self._clock()

        provider_id = None
        if actor.is_group_scoped and actor.origin_scope_id:
            provider = await self._repos.providers.get(actor.origin_scope_id)
            if provider is not None:
                provider_id = provider.id

        request = Request(
            id=request_id,
            title=parsed.title,
            description=parsed.extra_text,
            priority=parsed.priority or Priority.MEDIUM,
            requester_id=actor.requester_id,
            origin_scope_id=actor.origin_scope_id,
            provider_id=provider_id,
            season=parsed.season,
            chapter_from=parsed.chapter_from,
            chapter_to=parsed.chapter_to,
            created_at=now,
            updated_at=now,
        )
        request.record("request_created", now, raw=raw)
        if not await self._save(request, REQUEST_CREATED):
            raise RequestFlowError(
                "The request could not be stored.",
                "Try again in a moment.",
                code=ErrorCode.STORE_UNAVAILABLE,
                recoverable=True,
            )
        log.info("request_created", request_id=request.id, title=request.title)
        return await self.start(request, actor, channel)

    async def start(self, request: Request, actor: Actor, channel: ChannelProtocol) -> FlowResult:
        """Try the automatic path; fall back to browsing."""
        if not request.has_chapter:
            return await self._browse(request, actor)

        library = await self._library_for(request, actor)
        contributions = await self._repos.contributions.list()
        candidates = combined_exact_matches(
            query_for(request), library, contributions, actor, rules=self._rules
        )
        log.info("auto_match", request_id=request.id, candidates=len(candidates))

        if len(candidates) == 1:
            candidate = candidates[0]
            try:
                return await self._fulfill(request, candidate, channel, auto=True)
            except DeliveryError as exc:
                return await self._browse(request, actor, candidates=candidates, note=exc.user_text())
        return await self._browse(request, actor, candidates=candidates)

    async def _browse(
        self,
        request: Request,
        actor: Actor,
        *,
        candidates: list[Candidate] | None = None,
        note: str = "",
    ) -> FlowResult:
        if request.flow_state != FlowState.BROWSING:
            request.flow_state = FlowState.BROWSING
            request.updated_at = self._clock()
            await self._save(request)

        heading = f"Request #{request.id} registered: {request.title}"
        text = f"{note}\n{heading}".strip() if note else heading
        limit = self._settings.resolution.browse_limit

        if candidates:
            chooser = views.candidates_chooser(
                request,
                candidates[: self._settings.resolution.exact_match_limit],
                self._prefix,
                title="Exact matches",
            )
            return FlowResult(request, text, chooser)

        library = await self._library_for(request, actor)
        buckets = search_title_buckets(
            request.title,
            library,
            fuzzy_cutoff=self._settings.resolution.fuzzy_title_cutoff,
            limit=limit,
        )
        if buckets:
            return FlowResult(request, text, views.titles_chooser(request, buckets, self._prefix))

        ranked = rank_contributions(
            query_for(request),
            await self._repos.contributions.list(),
            actor,
            rules=self._rules,
            limit=limit,
        )
        if ranked:
            chooser = views.candidates_chooser(request, ranked, self._prefix, title="Contributions")
            return FlowResult(request, text, chooser)

        if request.provider_id is None and actor.is_group_scoped and not actor.is_owner:
            providers = await self._repos.providers.list()
            if providers:
                providers.sort(key=lambda p: id_key(p.id))
                chooser = views.providers_chooser(request, providers[:limit], self._prefix)
                return FlowResult(request, text, chooser)

        return FlowResult(
            request,
            f"{text}\nNothing matches yet. The request stays open for the team.",
        )

    # ------------------------------------------------------------------
    # Browsing views (read-only)
    # ------------------------------------------------------------------

    async def titles(self, actor: Actor, request_id: int) -> FlowResult:
        request = await self._load_open(request_id)
        buckets = search_title_buckets(
            request.title,
            await self._library_for(request, actor),
            fuzzy_cutoff=self._settings.resolution.fuzzy_title_cutoff,
            limit=self._settings.resolution.browse_limit,
        )
        if not buckets:
            return FlowResult(request, f"No library titles match '{request.title}'.")
        return FlowResult(request, "", views.titles_chooser(request, buckets, self._prefix))

    async def _bucket(
        self, request: Request, actor: Actor, sample_id: str
    ) -> tuple[LibraryItem, list[LibraryItem]]:
        library = await self._library_for(request, actor)
        sample = next((item for item in library if item.id == sample_id), None)
        if sample is None:
            raise NotFoundError(
                f"Library item {sample_id} is not available for this request.",
                f"Use {self._prefix}titles {request.id} to list the titles again.",
                code=ErrorCode.CANDIDATE_NOT_FOUND,
            )
        return sample, items_in_bucket(_bucket_key(sample), library)

    async def seasons(self, actor: Actor, request_id: int, sample_id: str) -> FlowResult:
        """Seasons of the title's main content, plus one entry per other content type."""
        request = await self._load_open(request_id)
        sample, items = await self._bucket(request, actor, sample_id)
        groups = split_by_content_type(items, self._rules)
        sensitive = any(
            classification.is_sensitive
            for entries in groups.values()
            for _, classification in entries
        )
        main_items = [item for item, _ in groups.pop(ContentType.MAIN, [])]
        limit = self._settings.resolution.browse_limit
        seasons = sorted({item.season or 0 for item in main_items})[:limit]
        others = {content_type: len(entries) for content_type, entries in groups.items()}
        if others:
            log.debug("content_types_split", request_id=request.id, types=list(others))
        chooser = views.seasons_chooser(
            request,
            sample.title,
            sample.id,
            seasons,
            self._prefix,
            other_types=others,
            sensitive=sensitive,
        )
        return FlowResult(request, "", chooser)

    async def content(
        self,
        actor: Actor,
        request_id: int,
        sample_id: str,
        content_type: str,
    ) -> FlowResult:
        """Items of one non-main content type within a title (extras, illustrations...)."""
        request = await self._load_open(request_id)
        wanted = self._parse_content_type(content_type)
        if wanted == ContentType.MAIN:
            raise ValidationError(
                "Main chapters are listed by season.",
                f"Use {self._prefix}seasons {request.id} {sample_id}.",
            )
        sample, items = await self._bucket(request, actor, sample_id)
        entries = split_by_content_type(items, self._rules).get(wanted, [])
        if not entries:
            raise NotFoundError(
                f"'{sample.title}' has no {views.content_type_label(wanted).lower()}.",
                f"Use {self._prefix}seasons {request.id} {sample.id} to see what it has.",
                code=ErrorCode.CANDIDATE_NOT_FOUND,
            )
        entries.sort(key=lambda entry: id_key(entry[0].id))
        chooser = views.content_chooser(
            request,
            sample.title,
            wanted,
            entries[: self._settings.resolution.browse_limit],
            self._prefix,
        )
        return FlowResult(request, "", chooser)

    def _parse_content_type(self, value: str) -> ContentType:
        literal = normalize_text(value).replace(" ", "_").replace("-", "_")
        try:
            return ContentType(literal)
        except ValueError:
            pass
        # Free text such as "ilustraciones" or "side story" goes through the rule table
        detected = self._rules.classify_text(value).content_type
        if detected == ContentType.MAIN and literal not in ("main", "principal"):
            allowed = ", ".join(content_type.value for content_type in ContentType)
            raise ValidationError(f"Unknown content type '{value}'.", f"Use one of: {allowed}.")
        return detected

    async def chapters(
        self,
        actor: Actor,
        request_id: int,
        sample_id: str,
        season: int,
        page: int = 1,
    ) -> FlowResult:
        request = await self._load_open(request_id)
        sample, items = await self._bucket(request, actor, sample_id)
        main_items = split_by_content_type(items, self._rules).get(ContentType.MAIN, [])
        in_season = [item for item, _ in main_items if (item.season or 0) == season]
        if not in_season:
            raise NotFoundError(
                f"'{sample.title}' has nothing in season {season}.",
                f"Use {self._prefix}seasons {request.id} {sample.id} to list its seasons.",
                code=ErrorCode.CANDIDATE_NOT_FOUND,
            )
        per_page = self._settings.resolution.chapters_per_page
        total_pages = max(1, math.ceil(len(in_season) / per_page))
        page = min(max(page, 1), total_pages)
        window = in_season[(page - 1) * per_page : page * per_page]
        chooser = views.chapters_chooser(
            request,
            sample.title,
            window,
            sample_id=sample.id,
            season=season,
            page=page,
            total_pages=total_pages,
            prefix=self._prefix,
        )
        return FlowResult(request, "", chooser)

    async def contributions(self, actor: Actor, request_id: int) -> FlowResult:
        request = await self._load_open(request_id)
        ranked = rank_contributions(
            query_for(request),
            await self._repos.contributions.list(),
            actor,
            rules=self._rules,
            limit=self._settings.resolution.browse_limit,
        )
        if not ranked:
            return FlowResult(request, f"No contributions match '{request.title}'.")
        chooser = views.candidates_chooser(request, ranked, self._prefix, title="Contributions")
        return FlowResult(request, "", chooser)

    async def suggest(self, actor: Actor, request_id: int) -> FlowResult:
        request = await self._load_open(request_id)
        ranked = suggest_items(
            query_for(request),
            await self._library_for(request, actor),
            category=request.category,
            rules=self._rules,
            limit=self._settings.resolution.suggest_limit,
        )
        if not ranked:
            return FlowResult(request, f"No library suggestions for '{request.title}'.")
        chooser = views.candidates_chooser(request, ranked, self._prefix, title="Suggestions")
        return FlowResult(request, "", chooser)

    async def providers(self, actor: Actor, request_id: int) -> FlowResult:
        request = await self._load_open(request_id)
        providers = sorted(await self._repos.providers.list(), key=lambda p: id_key(p.id))
        if not providers:
            return FlowResult(request, "No providers are registered.")
        limit = self._settings.resolution.browse_limit
        return FlowResult(request, "", views.providers_chooser(request, providers[:limit], self._prefix))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def bind_provider(
        self,
        actor: Actor,
        request_id: int,
        provider_id: str,
        channel: ChannelProtocol,
    ) -> FlowResult:
        request = await self._load_open(request_id)
        provider = await self._repos.providers.get(provider_id)
        if provider is None:
            raise NotFoundError(
                f"Provider {provider_id} does not exist.",
                f"Use {self._prefix}providers {request.id} to list providers.",
                code=ErrorCode.PROVIDER_NOT_FOUND,
            )
        if not await self._expire_pending(request):
            self._discard_pending(request, reason="provider_changed")
        request.provider_id = provider.id
        request.record("provider_bound", self._clock(), provider_id=provider.id)
        await self._save(request)
        log.info("provider_bound", request_id=request.id, provider_id=provider.id)
        return await self.start(request, actor, channel)

    async def _candidate(
        self,
        request: Request,
        actor: Actor,
        source: CandidateSource,
        candidate_id: str,
    ) -> Candidate:
        """Rebuild a scored candidate for an explicit selection."""
        query = query_for(request)
        missing = NotFoundError(
            f"{source.capitalize()} entry {candidate_id} is not available for this request.",
            f"Use {self._prefix}titles {request.id} or {self._prefix}contributions {request.id}.",
            code=ErrorCode.CANDIDATE_NOT_FOUND,
        )
        if source == CandidateSource.LIBRARY:
            library = await self._library_for(request, actor)
            item = next((entry for entry in library if entry.id == candidate_id), None)
            if item is None:
                raise missing
            exact = exact_match_library(query, [item], rules=self._rules) if query.has_chapter else []
            score = exact[0].score if exact else score_item(query, item, category=request.category)
            return library_candidate(item, score, self._rules)

        contribution = await self._repos.contributions.get(candidate_id)
        if contribution is None or not contribution_visible(contribution, actor):
            raise missing
        exact = (
            exact_match_contributions(query, [contribution], actor, rules=self._rules)
            if query.has_chapter
            else []
        )
        score = exact[0].score if exact else score_contribution(query, contribution)
        return contribution_candidate(contribution, score, self._rules)

    def _require_main(self, candidate: Candidate) -> None:
        if candidate.content_type != ContentType.MAIN:
            raise ClassificationConfirmationRequired(
                candidate.source, candidate.candidate_id, candidate.content_type
            )

    async def _fulfill(
        self,
        request: Request,
        candidate: Candidate,
        channel: ChannelProtocol,
        *,
        auto: bool,
    ) -> FlowResult:
        """Deliver *candidate*, or park it for confirmation when it is not main content."""
        try:
            self._require_main(candidate)
        except ClassificationConfirmationRequired:
            return await self._await_confirmation(request, candidate, auto=auto)

        completed = await self._fulfillment.deliver(
            request,
            candidate.source,
            candidate.candidate_id,
            channel,
            score=candidate.score,
        )
        how = "automatically" if auto else "with your selection"
        return FlowResult(completed, f"Request #{completed.id} resolved {how}: {candidate.title}")

    async def _await_confirmation(
        self,
        request: Request,
        candidate: Candidate,
        *,
        auto: bool,
    ) -> FlowResult:
        now = self._clock()
        pending = PendingConfirmation(
            source=candidate.source,
            candidate_id=candidate.candidate_id,
            content_type=candidate.content_type,
            content_source=candidate.classification.content_source,
            is_sensitive=candidate.classification.is_sensitive,
            title=candidate.title,
            score=candidate.score,
            created_at=now,
        )
        request.pending_confirmation = pending
        request.flow_state = FlowState.AWAITING_CONFIRMATION
        request.record(
            "extra_selected",
            now,
            source=candidate.source,
            candidate_id=candidate.candidate_id,
            content_type=candidate.content_type,
            auto=auto,
        )
        await self._save(request)
        log.info(
            "confirmation_requested",
            request_id=request.id,
            candidate_id=candidate.candidate_id,
            content_type=candidate.content_type,
        )
        return FlowResult(request, views.confirmation_text(request, pending, self._prefix))

    async def select(
        self,
        actor: Actor,
        request_id: int,
        source: str,
        candidate_id: str,
        channel: ChannelProtocol,
    ) -> FlowResult:
        try:
            candidate_source = CandidateSource(source.strip().lower())
        except ValueError as exc:
            raise ValidationError(
                f"Unknown source '{source}'.",
                "Use 'library' or 'contribution'.",
            ) from exc

        request = await self._load_open(request_id)
        await self._expire_pending(request)
        candidate = await self._candidate(request, actor, candidate_source, candidate_id)
        return await self._fulfill(request, candidate, channel, auto=False)

    async def confirm(
        self,
        actor: Actor,
        request_id: int,
        answer: str,
        channel: ChannelProtocol,
    ) -> FlowResult:
        request = await self._load_open(request_id)
        pending = request.pending_confirmation
        if pending is None or request.flow_state != FlowState.AWAITING_CONFIRMATION:
            raise ValidationError(
                f"Request #{request.id} has nothing awaiting confirmation.",
                code=ErrorCode.NO_PENDING_CONFIRMATION,
            )
        if await self._expire_pending(request):
            raise ConfirmationExpiredError(
                f"The confirmation for request #{request.id} expired.",
                f"Select the item again with {self._prefix}titles {request.id}.",
            )

        normalized = normalize_text(answer)
        if normalized in YES_ANSWERS:
            completed = await self._fulfillment.deliver(
                request,
                pending.source,
                pending.candidate_id,
                channel,
                score=pending.score,
                note="extra_confirmed",
            )
            return FlowResult(completed, f"Request #{completed.id} resolved: {pending.title}")

        if normalized in NO_ANSWERS:
            now = self._clock()
            request.pending_confirmation = None
            request.flow_state = FlowState.BROWSING
            request.record(
                "extra_cancelled",
                now,
                source=pending.source,
                candidate_id=pending.candidate_id,
            )
            await self._save(request)
            return FlowResult(request, f"Selection discarded. Request #{request.id} is open again.")

        raise ValidationError(
            f"Unrecognised answer '{answer}'.",
            f"Reply {self._prefix}confirm {request.id} yes or {self._prefix}confirm {request.id} no.",
        )

    async def cancel(self, actor: Actor, request_id: int) -> FlowResult:
        request = await self._load_open(request_id)
        now = self._clock()
        request.status = RequestStatus.CANCELLED
        request.flow_state = FlowState.CANCELLED
        request.pending_confirmation = None
        request.record("request_cancelled", now, by=actor.requester_id)
        await self._save(request)
        log.info("request_cancelled", request_id=request.id, by=actor.requester_id)
        return FlowResult(request, f"Request #{request.id} cancelled.")

    async def set_status(self, actor: Actor, request_id: int, value: str) -> FlowResult:
        target = parse_status(value)
        if target == RequestStatus.CANCELLED:
            return await self.cancel(actor, request_id)

        request = await self._load_open(request_id)
        if target == request.status:
            return FlowResult(request, f"Request #{request.id} is already {target}.")
        if STATUS_RANK[target] < STATUS_RANK[request.status]:
            raise ValidationError(
                f"Request #{request.id} cannot go back from {request.status} to {target}.",
                "Status only moves forward.",
            )

        now = self._clock()
        previous = request.status
        request.status = target
        if target == RequestStatus.COMPLETED:
            request.flow_state = FlowState.COMPLETED
            request.pending_confirmation = None
        request.record("status_changed", now, previous=previous, current=target, by=actor.requester_id)
        await self._save(request)
        log.info("request_status_changed", request_id=request.id, previous=previous, current=target)
        return FlowResult(request, f"Request #{request.id} is now {target}.")

    async def vote(self, actor: Actor, request_id: int) -> FlowResult:
        request = await self._load_open(request_id)
        if actor.requester_id in request.voters:
            return FlowResult(request, f"You already voted for request #{request.id}.")
        request.voters.append(actor.requester_id)
        request.votes = len(request.voters)
        request.record("vote_added", self._clock(), voter=actor.requester_id)
        await self._save(request)
        return FlowResult(request, f"Vote counted. Request #{request.id} has {request.votes} vote(s).")

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def view(self, request_id: int) -> FlowResult:
        request = await self.load(request_id)
        if not request.is_terminal:
            await self._expire_pending(request)
        return FlowResult(request, views.request_detail(request))

    async def list_open(self) -> list[Request]:
        requests = [
            request
            for request in await self._repos.requests.list()
            if request.status != RequestStatus.CANCELLED
        ]
        return views.sort_for_listing(requests)[: self._settings.resolution.list_limit]

    async def list_mine(self, actor: Actor) -> list[Request]:
        requests = [
            request
            for request in await self._repos.requests.list()
            if request.requester_id == actor.requester_id
        ]
        requests.sort(key=lambda r: r.id, reverse=True)
        return requests[: self._settings.resolution.list_limit]
