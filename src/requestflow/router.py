"""Command dispatch.

Responsibilities (and nothing more):
- Map command names and aliases to handlers
- Drop redelivered commands through the IdempotencyGuard
- Authorize mutating commands once, before their handler runs
- Turn every error into exactly one reply; the worker never crashes
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

import requestflow.handlers.browse as h_browse
import requestflow.handlers.requests as h_requests
import requestflow.handlers.selection as h_selection
from requestflow.errors import RequestFlowError
from requestflow.handlers.common import CommandContext, parse_request_id
from requestflow.machine import authorize
from requestflow.models.commands import Actor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from requestflow.models.commands import InboundCommand
    from requestflow.protocols import ChannelProtocol
    from requestflow.state import AppState

log = structlog.get_logger()

GENERIC_FAILURE_REPLY = "Something went wrong while handling that command. Please try again."


@dataclass(frozen=True)
class Route:
    name: str
    handler: Callable[[CommandContext], Awaitable[None]]
    mutating: bool = False
    aliases: tuple[str, ...] = ()


DEFAULT_ROUTES: tuple[Route, ...] = (
    Route("request", h_requests.handle_create, aliases=("pedido", "pedir")),
    Route("requests", h_requests.handle_list, aliases=("pedidos",)),
    Route("myrequests", h_requests.handle_mine, aliases=("mispedidos",)),
    Route("viewrequest", h_requests.handle_view, aliases=("verpedido",)),
    Route("voterequest", h_requests.handle_vote, mutating=True, aliases=("votarpedido",)),
    Route("cancelrequest", h_requests.handle_cancel, mutating=True, aliases=("cancelarpedido",)),
    Route("requeststatus", h_requests.handle_status, mutating=True, aliases=("estadopedido",)),
    Route("titles", h_browse.handle_titles, aliases=("pedidotitulo",)),
    Route("seasons", h_browse.handle_seasons, aliases=("pedidotemporadas",)),
    Route("chapters", h_browse.handle_chapters, aliases=("pedidocapslib",)),
    Route("types", h_browse.handle_types, aliases=("pedidoextrastipo",)),
    Route("contributions", h_browse.handle_contributions, aliases=("buscaraporte",)),
    Route("suggest", h_browse.handle_suggest, aliases=("sugerirpedido",)),
    Route("providers", h_browse.handle_providers, aliases=("proveedorespedido",)),
    Route("select", h_selection.handle_select, mutating=True, aliases=("seleccionpedido",)),
    Route("confirm", h_selection.handle_confirm, mutating=True, aliases=("confirmarpedido",)),
    Route(
        "useprovider",
        h_selection.handle_use_provider,
        mutating=True,
        aliases=("elegirproveedorpedido",),
    ),
)


class Router:
    def __init__(self, state: AppState, routes: tuple[Route, ...] = DEFAULT_ROUTES) -> None:
        self._state = state
        self._routes: dict[str, Route] = {}
        for route in routes:
            self.add(route)

    def add(self, route: Route) -> None:
        for name in (route.name, *route.aliases):
            self._routes[name.lower()] = route

    def resolve(self, command_name: str) -> Route | None:
        name = command_name.strip().lower()
        prefix = self._state.settings.router.prefix
        if prefix and name.startswith(prefix):
            name = name[len(prefix) :]
        return self._routes.get(name)

    @property
    def command_names(self) -> list[str]:
        return sorted({route.name for route in self._routes.values()})

    async def dispatch(self, command: InboundCommand, channel: ChannelProtocol) -> bool:
        """Run one inbound command. Returns False when no route matches it."""
        route = self.resolve(command.command_name)
        if route is None:
            return False

        if self._state.guard.should_skip(command):
            return True

        actor = Actor.from_command(command, self._state.settings.access.owner_ids)
        bound = log.bind(
            command=route.name,
            requester_id=command.requester_id,
            origin_scope_id=command.origin_scope_id,
            message_id=command.message_id,
        )
        ctx = CommandContext(
            command=command,
            actor=actor,
            channel=channel,
            state=self._state,
            log=bound,
        )
        try:
            if route.mutating:
                await self._authorize(ctx)
            await route.handler(ctx)
        except RequestFlowError as exc:
            bound.warning(
                "command_error",
                code=exc.code,
                message=exc.message,
                recoverable=exc.recoverable,
            )
            await channel.reply(exc.user_text())
        except Exception:
            bound.error("command_unexpected_error", exc_info=True)
            await channel.reply(GENERIC_FAILURE_REPLY)
        return True

    async def _authorize(self, ctx: CommandContext) -> None:
        """Central guard for every mutating route: the first argument names the request."""
        token = ctx.args[0] if ctx.args else None
        request = await self._state.machine.load(parse_request_id(token))
        authorize(request, ctx.actor)
