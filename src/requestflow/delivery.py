"""Fulfillment: deliver a chosen asset and complete its request.

Nothing about the request changes until the asset has actually been
transported: as a file, or as a link for a contribution hosted elsewhere.
Failures before that point raise DeliveryError or
NotFoundError and leave the stored request untouched. After transport
the summary artifact is best-effort: its failure is logged and recorded in
the completion audit entry, never reverted.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from requestflow.classifier import DEFAULT_RULES, classify
from requestflow.errors import DeliveryError, ErrorCode, NotFoundError
from requestflow.events import REQUEST_UPDATED
from requestflow.models.entities import (
    CandidateSource,
    ContentType,
    FlowState,
    RequestStatus,
    Resolution,
    utcnow,
)
from requestflow.summary import RequestSummary, write_summary

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from requestflow.classifier import ClassificationRules
    from requestflow.config import DeliverySettings
    from requestflow.events import EventEmitter
    from requestflow.models.entities import Request
    from requestflow.protocols import ChannelProtocol
    from requestflow.store import Repositories

log = structlog.get_logger()

_SEPARATORS = re.compile(r"[\\/]+")
_DOUBLED_EXTENSION = re.compile(r"(\.[A-Za-z0-9]{1,5})\1$", re.IGNORECASE)


def sanitize_filename(name: str, fallback_extension: str = "") -> str:
    """Make *name* safe to send as an attachment name.

    Path separators become underscores, a doubled extension (``x.pdf.pdf``)
    is collapsed, and *fallback_extension* is appended when none is present.
    """
    cleaned = _SEPARATORS.sub("_", name).strip().strip(".") or "file"
    doubled = _DOUBLED_EXTENSION.search(cleaned)
    if doubled:
        cleaned = cleaned[: -len(doubled.group(1))]
    if not Path(cleaned).suffix and fallback_extension:
        cleaned = f"{cleaned}.{fallback_extension.lstrip('.')}"
    return cleaned


def _human_size(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.1f} MB"


@dataclass
class Asset:
    source: CandidateSource
    candidate_id: str
    title: str
    content_type: ContentType
    path: Path | None
    filename: str
    link: str | None = None


class Fulfillment:
    def __init__(
        self,
        repos: Repositories,
        events: EventEmitter,
        settings: DeliverySettings,
        *,
        rules: ClassificationRules = DEFAULT_RULES,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repos = repos
        self._events = events
        self._settings = settings
        self._rules = rules
        self._clock = clock

    async def resolve_asset(self, source: CandidateSource, candidate_id: str) -> Asset:
        """Look up the stored record behind a candidate. Raises NotFoundError."""
        if source == CandidateSource.LIBRARY:
            item = await self._repos.library.get(candidate_id)
            if item is None:
                raise NotFoundError(
                    f"Library item {candidate_id} does not exist.",
                    "Browse the titles again and pick one of the listed items.",
                    code=ErrorCode.CANDIDATE_NOT_FOUND,
                )
            location = Path(item.location).expanduser() if item.location else None
            extension = location.suffix if location else ""
            return Asset(
                source=source,
                candidate_id=item.id,
                title=item.title,
                content_type=classify(item, self._rules).content_type,
                path=location,
                filename=sanitize_filename(item.original_name or item.title, extension),
                link=item.reference_url,
            )

        contribution = await self._repos.contributions.get(candidate_id)
        if contribution is None:
            raise NotFoundError(
                f"Contribution {candidate_id} does not exist.",
                "List the contributions again and pick one of the listed entries.",
                code=ErrorCode.CANDIDATE_NOT_FOUND,
            )
        attachment = contribution.attachment
        path = Path(attachment.path).expanduser() if attachment and attachment.path else None
        filename = attachment.filename if attachment else contribution.title
        return Asset(
            source=source,
            candidate_id=contribution.id,
            title=contribution.title,
            content_type=classify(contribution, self._rules).content_type,
            path=path,
            filename=sanitize_filename(filename, path.suffix if path else ""),
            link=attachment.url if attachment else None,
        )

    async def deliver(
        self,
        request: Request,
        source: CandidateSource,
        candidate_id: str,
        channel: ChannelProtocol,
        *,
        score: int = 0,
        note: str | None = None,
    ) -> Request:
        """Send the asset, then mark *request* completed. Returns the stored request.

        *note* is an extra audit event recorded just before completion, e.g.
        the confirmation that released a non-main candidate.
        """
        bound = log.bind(request_id=request.id, source=source, candidate_id=candidate_id)
        asset = await self.resolve_asset(source, candidate_id)
        caption = f"Request #{request.id}: {asset.title}"

        if asset.path is None or not asset.path.is_file():
            # Contributions may be hosted elsewhere: the link itself is the delivery
            if asset.source != CandidateSource.CONTRIBUTION or not asset.link:
                raise DeliveryError(
                    f"The file for '{asset.title}' is not available.",
                    "Ask an administrator to re-upload it, or pick another option.",
                    code=ErrorCode.ASSET_NOT_FOUND,
                    link=asset.link,
                )
            await self._transport(channel.reply(f"{caption}\nLink: {asset.link}"), asset, bound)
            bound.info("asset_link_delivered", link=asset.link)
            summary_status = await self._send_summary(request, asset, None, channel)
            return await self._finalize(
                request.id, asset, score, summary_status, note, delivery="link"
            )

        size_bytes = asset.path.stat().st_size
        if size_bytes > self._settings.max_bytes:
            raise DeliveryError(
                f"'{asset.title}' is too large to send ({_human_size(size_bytes)}, "
                f"limit {_human_size(self._settings.max_bytes)}).",
                "Use the link instead." if asset.link else "Ask an administrator for another copy.",
                code=ErrorCode.ASSET_TOO_LARGE,
                link=asset.link,
            )

        await self._transport(channel.send_file(asset.path, asset.filename, caption), asset, bound)
        bound.info("asset_delivered", filename=asset.filename, size_bytes=size_bytes)
        summary_status = await self._send_summary(request, asset, size_bytes, channel)
        return await self._finalize(request.id, asset, score, summary_status, note, delivery="file")

    async def _transport(self, send: Awaitable[None], asset: Asset, bound: Any) -> None:
        """Await one outbound send under the transport timeout. Raises DeliveryError."""
        try:
            await asyncio.wait_for(send, timeout=self._settings.transport_timeout_seconds)
        except TimeoutError as exc:
            bound.warning("delivery_timeout", timeout=self._settings.transport_timeout_seconds)
            raise DeliveryError(
                f"Sending '{asset.title}' timed out.",
                "Try the selection again later.",
                code=ErrorCode.TRANSPORT_FAILED,
                link=asset.link,
            ) from exc
        except Exception as exc:
            bound.warning("delivery_failed", exc_info=True)
            raise DeliveryError(
                f"Sending '{asset.title}' failed.",
                "Try the selection again later.",
                code=ErrorCode.TRANSPORT_FAILED,
                link=asset.link,
            ) from exc

    async def _send_summary(
        self,
        request: Request,
        asset: Asset,
        size_bytes: int | None,
        channel: ChannelProtocol,
    ) -> str:
        summary = RequestSummary(
            request_id=request.id,
            title=request.title,
            description=request.description,
            priority=request.priority,
            requester_id=request.requester_id,
            season=request.season,
            chapter_from=request.chapter_from,
            chapter_to=request.chapter_to,
            votes=request.votes,
            source=asset.source,
            candidate_id=asset.candidate_id,
            candidate_title=asset.title,
            content_type=asset.content_type,
            filename=asset.filename,
            size_bytes=size_bytes,
            created_at=request.created_at,
            resolved_at=self._clock(),
        )
        try:
            path = write_summary(summary, self._settings.summary_dir)
        except OSError:
            log.warning("summary_write_failed", request_id=request.id, exc_info=True)
            return "write_failed"

        try:
            await asyncio.wait_for(
                channel.send_file(path, path.name, f"Summary of request #{request.id}"),
                timeout=self._settings.transport_timeout_seconds,
            )
        except Exception:
            log.warning("summary_send_failed", request_id=request.id, exc_info=True)
            return "send_failed"
        return "sent"

    async def _finalize(
        self,
        request_id: int,
        asset: Asset,
        score: int,
        summary: str,
        note: str | None,
        *,
        delivery: str,
    ) -> Request:
        current = await self._repos.requests.get(request_id)
        if current is None:
            raise NotFoundError(f"Request #{request_id} does not exist.")
        if current.is_terminal:
            # Another command finished the request while the asset was in flight
            log.warning("request_finalize_skipped", request_id=request_id, status=current.status)
            return current

        now = self._clock()
        current.status = RequestStatus.COMPLETED
        current.flow_state = FlowState.COMPLETED
        current.pending_confirmation = None
        current.resolution = Resolution(
            source=asset.source,
            candidate_id=asset.candidate_id,
            title=asset.title,
            score=score,
            content_type=asset.content_type,
            resolved_at=now,
        )
        if note:
            current.record(note, now, source=asset.source, candidate_id=asset.candidate_id)
        current.record(
            "request_completed",
            now,
            source=asset.source,
            candidate_id=asset.candidate_id,
            score=score,
            delivery=delivery,
            summary=summary,
        )
        await self._repos.requests.save(current)
        self._events.emit(REQUEST_UPDATED, current)
        log.info("request_completed", request_id=request_id, source=asset.source)
        return current
