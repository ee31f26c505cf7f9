"""Handlers for the read-only browsing views of a request."""

from __future__ import annotations

from typing import TYPE_CHECKING

from requestflow.handlers.common import parse_int, parse_request_id, render, require_args

if TYPE_CHECKING:
    from requestflow.handlers.common import CommandContext


async def handle_titles(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "titles <id>")
    result = await ctx.state.machine.titles(ctx.actor, parse_request_id(args[0]))
    await render(ctx, result)


async def handle_seasons(ctx: CommandContext) -> None:
    usage = "seasons <id> <item>"
    args = require_args(ctx, 2, usage)
    result = await ctx.state.machine.seasons(ctx.actor, parse_request_id(args[0]), args[1])
    await render(ctx, result)


async def handle_chapters(ctx: CommandContext) -> None:
    usage = "chapters <id> <item> <season> [page]"
    args = require_args(ctx, 3, usage)
    season = parse_int(args[2], "Season", usage)
    page = parse_int(args[3], "Page", usage) if len(args) > 3 else 1
    result = await ctx.state.machine.chapters(
        ctx.actor, parse_request_id(args[0]), args[1], season, page
    )
    await render(ctx, result)


async def handle_contributions(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "contributions <id>")
    result = await ctx.state.machine.contributions(ctx.actor, parse_request_id(args[0]))
    await render(ctx, result)


async def handle_suggest(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "suggest <id>")
    result = await ctx.state.machine.suggest(ctx.actor, parse_request_id(args[0]))
    await render(ctx, result)


async def handle_providers(ctx: CommandContext) -> None:
    args = require_args(ctx, 1, "providers <id>")
    result = await ctx.state.machine.providers(ctx.actor, parse_request_id(args[0]))
    await render(ctx, result)


async def handle_types(ctx: CommandContext) -> None:
    args = require_args(ctx, 3, "types <id> <item> <type>")
    result = await ctx.state.machine.content(
        ctx.actor, parse_request_id(args[0]), args[1], " ".join(args[2:])
    )
    await render(ctx, result)
