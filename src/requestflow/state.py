"""Application state container.

AppState is created once at startup (inside the lifespan context manager)
and handed to the router, which passes it to every command handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from requestflow.classifier import ClassificationRules
    from requestflow.config import Settings
    from requestflow.dedup import IdempotencyGuard
    from requestflow.delivery import Fulfillment
    from requestflow.events import EventEmitter
    from requestflow.machine import ResolutionMachine
    from requestflow.store import Repositories


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every command handler."""

    settings: Settings
    repos: Repositories
    guard: IdempotencyGuard
    events: EventEmitter
    rules: ClassificationRules
    fulfillment: Fulfillment
    machine: ResolutionMachine
    http_client: httpx.AsyncClient | None = None
