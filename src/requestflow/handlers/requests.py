"""Handlers for creating, listing and managing requests.

Each handler receives a CommandContext, delegates to the resolution
machine, and renders the outcome. Authorization for the mutating ones
(vote, cancel, status) has already run in the router.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from requestflow import views
from requestflow.errors import ValidationError
from requestflow.handlers.common import parse_request_id, render, require_args

if TYPE_CHECKING:
    from requestflow.handlers.common import CommandContext

CREATE_USAGE = "request <title> [| season N] [| cap N or N-M] [| high|medium|low] [| notes]"


async def handle_create(ctx: CommandContext) -> None:
    text = ctx.command.text
    if not text:
        raise ValidationError("Tell me what you are looking for.", f"Usage: {ctx.prefix}{CREATE_USAGE}")
    ctx.log.info("handler_called", raw=text)
    result = await ctx.state.machine.create(ctx.actor, text, ctx.channel)
    ctx.log.info(
        "request_flow_started",
        request_id=result.request.id if result.request else None,
        flow_state=result.request.flow_state if result.request else None,
    )
    await render(ctx, result)


async def handle_list(ctx: CommandContext) -> None:
    requests = await ctx.state.machine.list_open()
    if not requests:
        await ctx.channel.reply("There are no open requests.")
        return
    lines = ["Requests:"] + [views.request_line(request) for request in requests]
    await ctx.channel.reply("\n".join(lines))


async def handle_mine(ctx: CommandContext) -> None:
    requests = await ctx.state.machine.list_mine(ctx.actor)
    if not requests:
        await ctx.channel.reply("You have no requests yet.")
        return
    lines = ["Your requests:"] + [views.request_line(request) for request in requests]
    await ctx.channel.reply("\n".join(lines))


async def handle_view(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "viewrequest <id>")
    result = await ctx.state.machine.view(parse_request_id(args[0], "viewrequest <id>"))
    await render(ctx, result)


async def handle_vote(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "voterequest <id>")
    result = await ctx.state.machine.vote(ctx.actor, parse_request_id(args[0]))
    await render(ctx, result)


async def handle_cancel(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "cancelrequest <id>")
    result = await ctx.state.machine.cancel(ctx.actor, parse_request_id(args[0]))
    await render(ctx, result)


async def handle_status(ctx: CommandContext) -> None:
    args = require_args(ctx, 2, "requeststatus <id> <pending|in_progress|completed|cancelled>")
    status = " ".join(args[1:])
    result = await ctx.state.machine.set_status(ctx.actor, parse_request_id(args[0]), status)
    await render(ctx, result)
