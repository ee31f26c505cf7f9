"""Request lifecycle events.

The engine emits ``request.created`` and ``request.updated`` after each
persisted change. Delivery to sinks is fire-and-forget: every sink runs in
its own task, and a failing sink is logged and never affects the command
that produced the event.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from requestflow import __version__

if TYPE_CHECKING:
    from requestflow.config import EventSettings
    from requestflow.models.entities import Request
    from requestflow.protocols import EventSinkProtocol

log = structlog.get_logger()

REQUEST_CREATED = "request.created"
REQUEST_UPDATED = "request.updated"


def event_payload(request: Request) -> dict[str, Any]:
    return {
        "request_id": request.id,
        "title": request.title,
        "status": request.status,
        "flow_state": request.flow_state,
        "priority": request.priority,
        "requester_id": request.requester_id,
        "origin_scope_id": request.origin_scope_id,
        "version": request.version,
        "resolution": request.resolution.model_dump(mode="json") if request.resolution else None,
        "updated_at": request.updated_at.isoformat(),
    }


class EventEmitter:
    def __init__(self, sinks: list[EventSinkProtocol] | None = None) -> None:
        self._sinks: list[EventSinkProtocol] = list(sinks or [])
        self._tasks: set[asyncio.Task[None]] = set()

    def add_sink(self, sink: EventSinkProtocol) -> None:
        self._sinks.append(sink)

    def emit(self, event: str, request: Request) -> None:
        """Schedule *event* for every sink without waiting for delivery."""
        payload = event_payload(request)
        for sink in self._sinks:
            task = asyncio.create_task(self._deliver(sink, event, payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, sink: EventSinkProtocol, event: str, payload: dict[str, Any]) -> None:
        try:
            await sink.publish(event, payload)
        except Exception:
            log.warning(
                "event_delivery_failed",
                event=event,
                sink=type(sink).__name__,
                request_id=payload.get("request_id"),
                exc_info=True,
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries. Called at shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def build_http_client(settings: EventSettings) -> httpx.AsyncClient:
    """Create the shared httpx client for outbound event delivery."""
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": f"requestflow/{__version__}"},
        limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
    )


class WebhookSink:
    """POSTs each event as JSON to a fixed URL."""

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        response = await self._client.post(self._url, json={"event": event, "data": payload})
        response.raise_for_status()
        log.debug("event_delivered", event=event, status_code=response.status_code)
