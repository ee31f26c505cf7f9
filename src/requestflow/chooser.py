"""Choice prompt delivery with capability fallback.

Rich widgets are not available on every channel, and some platforms accept
a widget call and then hang or reject it. send_chooser walks an ordered
chain of strategies (list, buttons, template), skipping the ones the
channel does not advertise or whose row limit the chooser exceeds, and
bounds each attempt by a timeout. Plain text always works and ends the chain.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from requestflow.protocols import CAPABILITY_BUTTONS, CAPABILITY_LIST, CAPABILITY_TEMPLATE

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from requestflow.models.commands import Chooser
    from requestflow.protocols import ChannelProtocol

log = structlog.get_logger()

MAX_BUTTON_ROWS = 10
MAX_TEMPLATE_ROWS = 3


@dataclass(frozen=True)
class ChooserStrategy:
    name: str
    capability: str
    max_rows: int | None
    send: Callable[[ChannelProtocol, Chooser], Awaitable[None]]


async def _send_list(channel: ChannelProtocol, chooser: Chooser) -> None:
    await channel.send_list(chooser)


async def _send_buttons(channel: ChannelProtocol, chooser: Chooser) -> None:
    await channel.send_buttons(_heading(chooser), chooser.rows, chooser.footer)


async def _send_template(channel: ChannelProtocol, chooser: Chooser) -> None:
    await channel.send_template(_heading(chooser), chooser.rows, chooser.footer)


STRATEGIES: tuple[ChooserStrategy, ...] = (
    ChooserStrategy("list", CAPABILITY_LIST, None, _send_list),
    ChooserStrategy("buttons", CAPABILITY_BUTTONS, MAX_BUTTON_ROWS, _send_buttons),
    ChooserStrategy("template", CAPABILITY_TEMPLATE, MAX_TEMPLATE_ROWS, _send_template),
)


def _heading(chooser: Chooser) -> str:
    return f"{chooser.title}\n{chooser.body}".strip()


def render_text(chooser: Chooser) -> str:
    """Plain-text enumeration of every row with the command that selects it."""
    lines = [chooser.title]
    if chooser.body:
        lines.append(chooser.body)
    number = 0
    for section in chooser.sections:
        if not section.rows:
            continue
        lines.append("")
        lines.append(f"[{section.title}]")
        for row in section.rows:
            number += 1
            label = f"{number}. {row.title}"
            if row.description:
                label = f"{label} ({row.description})"
            lines.append(label)
            lines.append(f"   {row.action}")
    if chooser.footer:
        lines.append("")
        lines.append(chooser.footer)
    return "\n".join(lines)


async def send_chooser(
    channel: ChannelProtocol,
    chooser: Chooser,
    *,
    step_timeout: float,
    strategies: tuple[ChooserStrategy, ...] = STRATEGIES,
) -> str:
    """Deliver *chooser* through the first strategy that succeeds.

    Returns the name of the strategy used (``"text"`` for the final fallback).
    """
    row_count = len(chooser.rows)
    for strategy in strategies:
        if strategy.capability not in channel.capabilities:
            continue
        if strategy.max_rows is not None and row_count > strategy.max_rows:
            continue
        try:
            await asyncio.wait_for(strategy.send(channel, chooser), timeout=step_timeout)
        except TimeoutError:
            log.warning("chooser_strategy_timeout", strategy=strategy.name, timeout=step_timeout)
            continue
        except Exception:
            log.warning("chooser_strategy_failed", strategy=strategy.name, exc_info=True)
            continue
        log.debug("chooser_sent", strategy=strategy.name, rows=row_count)
        return strategy.name

    await channel.reply(render_text(chooser))
    return "text"
