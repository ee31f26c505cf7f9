"""Shared pieces for command handlers: the per-command context, argument
parsing, and rendering of FlowResults onto the channel."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from requestflow.chooser import send_chooser
from requestflow.errors import ValidationError

if TYPE_CHECKING:
    from requestflow.models.commands import Actor, FlowResult, InboundCommand
    from requestflow.protocols import ChannelProtocol
    from requestflow.state import AppState


@dataclass
class CommandContext:
    command: InboundCommand
    actor: Actor
    channel: ChannelProtocol
    state: AppState
    log: Any = field(default_factory=structlog.get_logger)

    @property
    def args(self) -> list[str]:
        return self.command.argument_tokens

    @property
    def prefix(self) -> str:
        return self.state.settings.router.prefix


def parse_request_id(token: str | None, usage: str = "") -> int:
    """Read a request id such as ``12`` or ``#12``."""
    value = (token or "").strip().lstrip("#")
    if not value.isdigit():
        raise ValidationError(
            f"'{token or ''}' is not a request id." if token else "A request id is required.",
            f"Usage: {usage}" if usage else "",
        )
    return int(value)


def require_args(ctx: CommandContext, count: int, usage: str) -> list[str]:
    if len(ctx.args) < count:
        raise ValidationError("Missing arguments.", f"Usage: {ctx.prefix}{usage}")
    return ctx.args


def parse_int(token: str, name: str, usage: str) -> int:
    try:
        return int(token)
    except ValueError as exc:
        raise ValidationError(f"{name} must be a number, got '{token}'.", f"Usage: {usage}") from exc


async def render(ctx: CommandContext, result: FlowResult) -> None:
    """Send the text and, when present, the chooser of *result*."""
    if result.text:
        await ctx.channel.reply(result.text)
    if result.chooser is not None:
        strategy = await send_chooser(
            ctx.channel,
            result.chooser,
            step_timeout=ctx.state.settings.chooser.step_timeout_seconds,
        )
        ctx.log.debug("chooser_rendered", strategy=strategy)
