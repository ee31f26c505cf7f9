from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

AUDIT_LOG_LIMIT = 200


def utcnow() -> datetime:
    return datetime.now(UTC)


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class RequestStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.COMPLETED, RequestStatus.CANCELLED)


# Forward-only progression; cancelled is reachable from any non-terminal status.
STATUS_RANK = {
    RequestStatus.PENDING: 0,
    RequestStatus.IN_PROGRESS: 1,
    RequestStatus.COMPLETED: 2,
}


class FlowState(StrEnum):
    PENDING = "pending"
    BROWSING = "browsing"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"


class ContentType(StrEnum):
    MAIN = "main"
    ILLUSTRATION = "illustration"
    SPIN_OFF = "spin_off"
    AU = "au"
    SIDE = "side"
    BONUS = "bonus"
    EPILOGUE = "epilogue"
    PROLOGUE = "prologue"
    EXTRA = "extra"


class ContentSource(StrEnum):
    OFFICIAL = "official"
    FAN = "fan"


class CandidateSource(StrEnum):
    LIBRARY = "library"
    CONTRIBUTION = "contribution"


class AuditEntry(BaseModel):
    at: datetime
    event: str
    payload: dict[str, Any] = {}


class PendingConfirmation(BaseModel):
    """A non-main candidate the requester must affirm before delivery."""

    source: CandidateSource
    candidate_id: str
    content_type: ContentType
    content_source: ContentSource | None = None
    is_sensitive: bool = False
    title: str = ""
    score: int = 0
    created_at: datetime

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at > ttl


class Resolution(BaseModel):
    source: CandidateSource
    candidate_id: str
    title: str
    score: int
    content_type: ContentType
    resolved_at: datetime


class Request(BaseModel):
    """A content request and its resolution progress."""

    id: int
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    status: RequestStatus = RequestStatus.PENDING
    flow_state: FlowState = FlowState.PENDING
    requester_id: str
    origin_scope_id: str | None = None
    provider_id: str | None = None
    season: int | None = None
    chapter_from: int | None = None
    chapter_to: int | None = None
    category: str | None = None
    tags: list[str] = []
    votes: int = 0
    voters: list[str] = []
    audit_log: list[AuditEntry] = []
    pending_confirmation: PendingConfirmation | None = None
    resolution: Resolution | None = None
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_chapter(self) -> bool:
        return self.chapter_from is not None

    @property
    def is_range(self) -> bool:
        return self.chapter_from is not None and self.chapter_to != self.chapter_from

    def record(self, event: str, now: datetime, **payload: Any) -> None:
        """Append an audit entry, keeping only the most recent AUDIT_LOG_LIMIT."""
        self.audit_log.append(AuditEntry(at=now, event=event, payload=payload))
        if len(self.audit_log) > AUDIT_LOG_LIMIT:
            del self.audit_log[: len(self.audit_log) - AUDIT_LOG_LIMIT]
        self.updated_at = now


class LibraryItem(BaseModel):
    """Provider-owned asset. Read-only to the engine."""

    id: str
    provider_id: str
    title: str
    season: int | None = None
    chapter: int | None = None
    category: str = ""
    tags: list[str] = []
    original_name: str = ""
    location: str | None = None  # On-disk path of the asset
    size_bytes: int | None = None
    reference_url: str | None = None


class Attachment(BaseModel):
    filename: str
    path: str | None = None
    url: str | None = None
    size_bytes: int | None = None


class Contribution(BaseModel):
    """User-submitted asset, visible to everyone once approved."""

    id: str
    submitter_id: str
    origin_scope_id: str | None = None
    title: str
    body: str = ""
    type: str = ""
    season: int | None = None
    chapter: int | None = None
    approval: ApprovalStatus = ApprovalStatus.PENDING
    tags: list[str] = []
    attachment: Attachment | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Provider(BaseModel):
    id: str  # Origin scope the provider is bound to
    name: str
    kind: str = "group"
