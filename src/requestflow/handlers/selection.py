"""Handlers that move a request forward: selection, confirmation, provider binding."""

from __future__ import annotations

from typing import TYPE_CHECKING

from requestflow.handlers.common import parse_request_id, render, require_args

if TYPE_CHECKING:
    from requestflow.handlers.common import CommandContext


async def handle_select(ctx: CommandContext) -> None:
    args = require_args(ctx, 3, "select <id> <library|contribution> <item>")
    request_id = parse_request_id(args[0])
    ctx.log.info("handler_called", request_id=request_id, source=args[1], candidate_id=args[2])
    result = await ctx.state.machine.select(ctx.actor, request_id, args[1], args[2], ctx.channel)
    await render(ctx, result)


async def handle_confirm(ctx: CommandContext) -> None:
    args = require_args(ctx, 2, "confirm <id> <yes|no>")
    request_id = parse_request_id(args[0])
    ctx.log.info("handler_called", request_id=request_id, answer=args[1])
    result = await ctx.state.machine.confirm(ctx.actor, request_id, args[1], ctx.channel)
    await render(ctx, result)


async def handle_use_provider(ctx: CommandContext) -> None:
    args = require_args(ctx, 2, "useprovider <id> <provider>")
    request_id = parse_request_id(args[0])
    result = await ctx.state.machine.bind_provider(ctx.actor, request_id, args[1], ctx.channel)
    await render(ctx, result)
