from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Iterable

    from requestflow.models.entities import Request


class InboundCommand(BaseModel):
    """One command as delivered by the conversational channel."""

    command_name: str
    argument_tokens: list[str] = []
    requester_id: str
    origin_scope_id: str | None = None
    is_group_scoped: bool = False
    reply_target_id: str | None = None
    is_requester_elevated: bool = False
    message_id: str | None = None

    @property
    def text(self) -> str:
        return " ".join(self.argument_tokens).strip()


@dataclass(frozen=True)
class Actor:
    """Who is issuing a command, and with which privileges."""

    requester_id: str
    origin_scope_id: str | None = None
    is_group_scoped: bool = False
    is_elevated: bool = False
    is_owner: bool = False

    @classmethod
    def from_command(cls, command: InboundCommand, owner_ids: Iterable[str]) -> Actor:
        return cls(
            requester_id=command.requester_id,
            origin_scope_id=command.origin_scope_id,
            is_group_scoped=command.is_group_scoped,
            is_elevated=command.is_requester_elevated,
            is_owner=command.requester_id in set(owner_ids),
        )


class ChooserRow(BaseModel):
    action: str  # Command text sent back when the row is picked
    title: str
    description: str = ""


class ChooserSection(BaseModel):
    title: str
    rows: list[ChooserRow] = []


class Chooser(BaseModel):
    """Widget-agnostic choice prompt; chooser.send_chooser picks the rendering."""

    title: str
    body: str = ""
    button_text: str = "Choose"
    footer: str = ""
    sections: list[ChooserSection] = []

    @property
    def rows(self) -> list[ChooserRow]:
        return [row for section in self.sections for row in section.rows]


@dataclass
class FlowResult:
    """Outcome of one resolution machine step, ready to be rendered."""

    request: Request | None
    text: str
    chooser: Chooser | None = None
