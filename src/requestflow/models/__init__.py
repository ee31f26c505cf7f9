from __future__ import annotations

from requestflow.models.commands import (
    Actor,
    Chooser,
    ChooserRow,
    ChooserSection,
    FlowResult,
    InboundCommand,
)
from requestflow.models.entities import (
    ApprovalStatus,
    Attachment,
    AuditEntry,
    CandidateSource,
    ContentSource,
    ContentType,
    Contribution,
    FlowState,
    LibraryItem,
    PendingConfirmation,
    Priority,
    Provider,
    Request,
    RequestStatus,
    Resolution,
)
from requestflow.models.query import Candidate, Classification, ParsedQuery, TitleBucket

__all__ = [
    # entities
    "ApprovalStatus",
    "Attachment",
    "AuditEntry",
    "CandidateSource",
    "ContentSource",
    "ContentType",
    "Contribution",
    "FlowState",
    "LibraryItem",
    "PendingConfirmation",
    "Priority",
    "Provider",
    "Request",
    "RequestStatus",
    "Resolution",
    # query
    "Candidate",
    "Classification",
    "ParsedQuery",
    "TitleBucket",
    # commands
    "Actor",
    "Chooser",
    "ChooserRow",
    "ChooserSection",
    "FlowResult",
    "InboundCommand",
]
