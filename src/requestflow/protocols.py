"""Protocol interfaces for swappable components.

Handlers and AppState reference these protocols, not the concrete
implementations. Tests drive the engine through lightweight recording
channels and sinks; real messaging transports implement ChannelProtocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from requestflow.models.commands import Chooser, ChooserRow

# Values a channel may advertise in ``capabilities``
CAPABILITY_LIST = "list"
CAPABILITY_BUTTONS = "buttons"
CAPABILITY_TEMPLATE = "template"


class ChannelProtocol(Protocol):
    """Outbound side of the conversational channel for one reply target."""

    capabilities: frozenset[str]

    async def reply(self, text: str) -> None: ...

    async def send_file(self, path: Path, filename: str, caption: str = "") -> None: ...

    async def send_list(self, chooser: Chooser) -> None: ...

    async def send_buttons(self, text: str, rows: list[ChooserRow], footer: str = "") -> None: ...

    async def send_template(self, text: str, rows: list[ChooserRow], footer: str = "") -> None: ...


class StoreProtocol(Protocol):
    """Interface for the document store backend."""

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def list(self, collection: str) -> list[dict[str, Any]]: ...

    async def put(
        self,
        collection: str,
        doc_id: str,
        body: dict[str, Any],
        *,
        version: int | None = None,
    ) -> bool: ...

    async def next_id(self, counter: str) -> int: ...


class EventSinkProtocol(Protocol):
    """Receives request lifecycle events. Failures are the emitter's to log."""

    async def publish(self, event: str, payload: dict[str, Any]) -> None: ...
