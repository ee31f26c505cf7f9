"""Process entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the lifespan context manager
- Run the console channel: one command per stdin line, replies on stdout

Messaging transports embed the engine the same way: enter ``lifespan``,
build a Router over the state, and call ``Router.dispatch`` per command.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import sys
from contextlib import asynccontextmanager
from itertools import count
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog

from requestflow import __version__
from requestflow.chooser import render_text
from requestflow.classifier import load_rules
from requestflow.config import Settings
from requestflow.dedup import IdempotencyGuard
from requestflow.delivery import Fulfillment
from requestflow.events import EventEmitter, WebhookSink, build_http_client
from requestflow.machine import ResolutionMachine
from requestflow.models.commands import InboundCommand
from requestflow.router import Router
from requestflow.state import AppState
from requestflow.store import DocumentStore, Repositories

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from requestflow.models.commands import Chooser, ChooserRow

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout carries the console channel's replies
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


async def build_state(
    settings: Settings,
    db: aiosqlite.Connection,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> AppState:
    """Wire every component over an open database connection."""
    store = DocumentStore(db)
    await store.init_db()
    repos = Repositories.over(store)

    events = EventEmitter()
    if http_client is not None and settings.events.webhook_url:
        events.add_sink(WebhookSink(http_client, settings.events.webhook_url))

    rules = load_rules(settings.classifier.rules_file)
    fulfillment = Fulfillment(repos, events, settings.delivery, rules=rules)
    machine = ResolutionMachine(repos, fulfillment, events, settings, rules=rules)

    return AppState(
        settings=settings,
        repos=repos,
        guard=IdempotencyGuard(settings.dedup),
        events=events,
        rules=rules,
        fulfillment=fulfillment,
        machine=machine,
        http_client=http_client,
    )


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the process lifetime."""
    settings = settings or Settings()
    _setup_logging(settings)
    log.info("server_starting", version=__version__)

    db_path = Path(settings.store.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(db_path))
    http_client = build_http_client(settings.events) if settings.events.webhook_url else None

    try:
        state = await build_state(settings, db, http_client=http_client)
        log.info(
            "server_started",
            version=__version__,
            db_path=str(db_path),
            webhook=bool(http_client),
        )
        try:
            yield state
        finally:
            await state.events.drain()
    finally:
        if http_client is not None:
            await http_client.aclose()
        await db.close()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Console channel
# ---------------------------------------------------------------------------


class ConsoleChannel:
    """Plain-text channel over stdout.

    It advertises no widgets, so send_chooser renders choosers as text
    itself. The widget methods still work when called directly: they print
    the same text a terminal user would type commands from.
    """

    capabilities: frozenset[str] = frozenset()

    async def reply(self, text: str) -> None:
        print(text, flush=True)

    async def send_file(self, path: Path, filename: str, caption: str = "") -> None:
        print(f"[file] {filename} <- {path}", flush=True)
        if caption:
            print(caption, flush=True)

    async def send_list(self, chooser: Chooser) -> None:
        print(render_text(chooser), flush=True)

    async def send_buttons(self, text: str, rows: list[ChooserRow], footer: str = "") -> None:
        print(_render_rows(text, rows, footer), flush=True)

    async def send_template(self, text: str, rows: list[ChooserRow], footer: str = "") -> None:
        print(_render_rows(text, rows, footer), flush=True)


def _render_rows(text: str, rows: list[ChooserRow], footer: str) -> str:
    lines = [text] if text else []
    lines.extend(f"- {row.title}: {row.action}" for row in rows)
    if footer:
        lines.append(footer)
    return "\n".join(lines)


def parse_command_line(
    line: str,
    *,
    prefix: str,
    requester_id: str,
    message_id: str | None = None,
) -> InboundCommand | None:
    """Turn ``/request Naruto | cap 5`` into an InboundCommand. None for non-commands."""
    line = line.strip()
    if not line or (prefix and not line.startswith(prefix)):
        return None
    try:
        tokens = shlex.split(line[len(prefix) :])
    except ValueError:
        tokens = line[len(prefix) :].split()
    if not tokens:
        return None
    return InboundCommand(
        command_name=tokens[0],
        argument_tokens=tokens[1:],
        requester_id=requester_id,
        origin_scope_id=f"console:{requester_id}",
        reply_target_id=requester_id,
        message_id=message_id,
    )


async def run_console(settings: Settings, requester_id: str = "console") -> None:
    channel = ConsoleChannel()
    message_ids = count(1)
    async with lifespan(settings) as state:
        router = Router(state)
        loop = asyncio.get_running_loop()
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            command = parse_command_line(
                line,
                prefix=settings.router.prefix,
                requester_id=requester_id,
                message_id=str(next(message_ids)),
            )
            if command is None:
                continue
            if not await router.dispatch(command, channel):
                known = ", ".join(router.command_names)
                await channel.reply(f"Unknown command '{command.command_name}'. Known: {known}")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    asyncio.run(run_console(settings))


if __name__ == "__main__":
    main()
