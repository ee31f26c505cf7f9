"""Duplicate command suppression.

Messaging platforms redeliver events. A command is identified by
(command name, origin scope, requester, message id); the same key seen
again inside the window is dropped. Events without a message id cannot
be told apart and are always admitted.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from requestflow.config import DedupSettings
    from requestflow.models.commands import InboundCommand

log = structlog.get_logger()

DedupKey = tuple[str, str, str, str]


class IdempotencyGuard:
    """Process-local map of command keys to the monotonic time they were last seen."""

    def __init__(
        self,
        settings: DedupSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._clock = clock
        # Insertion order doubles as age order for the hard-cap eviction
        self._seen: OrderedDict[DedupKey, float] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    @staticmethod
    def key_for(command: InboundCommand) -> DedupKey | None:
        if not command.message_id:
            return None
        return (
            command.command_name.lower(),
            command.origin_scope_id or "",
            command.requester_id,
            command.message_id,
        )

    def should_skip(self, command: InboundCommand) -> bool:
        """Return True if *command* was already seen inside the window."""
        key = self.key_for(command)
        if key is None:
            return False

        now = self._clock()
        last_seen = self._seen.get(key)
        if last_seen is not None and now - last_seen < self._settings.window_seconds:
            log.info("command_duplicate_skipped", command=key[0], message_id=key[3])
            return True

        self._seen.pop(key, None)
        self._seen[key] = now
        self._evict(now)
        return False

    def _evict(self, now: float) -> None:
        if len(self._seen) <= self._settings.soft_limit:
            return

        max_age = self._settings.max_age_hours * 3600
        expired = [key for key, seen_at in self._seen.items() if now - seen_at > max_age]
        for key in expired:
            del self._seen[key]

        dropped = 0
        if len(self._seen) > self._settings.hard_cap:
            while len(self._seen) > self._settings.target_size:
                self._seen.popitem(last=False)
                dropped += 1

        log.debug(
            "dedup_evicted",
            expired=len(expired),
            dropped=dropped,
            remaining=len(self._seen),
        )
