"""Unit tests for the chooser fallback chain."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from requestflow.chooser import render_text, send_chooser
from requestflow.models.commands import Chooser, ChooserRow, ChooserSection
from requestflow.protocols import CAPABILITY_BUTTONS, CAPABILITY_LIST, CAPABILITY_TEMPLATE

if TYPE_CHECKING:
    from tests.conftest import RecordingChannel


def _chooser(rows: int) -> Chooser:
    return Chooser(
        title="Pick a title",
        body="Request #1",
        footer="Reply /cancelrequest 1 to stop",
        sections=[
            ChooserSection(
                title="Titles",
                rows=[
                    ChooserRow(
                        action=f"/titles 1 {i}", title=f"Title {i}", description=f"{i} items"
                    )
                    for i in range(1, rows + 1)
                ],
            )
        ],
    )


class TestSendChooser:
    async def test_list_is_preferred(self, channel: RecordingChannel) -> None:
        channel.capabilities = frozenset({CAPABILITY_LIST, CAPABILITY_BUTTONS})
        assert await send_chooser(channel, _chooser(3), step_timeout=1) == "list"
        assert len(channel.lists) == 1
        assert channel.buttons == []

    async def test_failed_list_falls_back_to_buttons(self, channel: RecordingChannel) -> None:
        async def reject(chooser: Chooser) -> None:
            raise RuntimeError("list widget rejected")

        channel.capabilities = frozenset({CAPABILITY_LIST, CAPABILITY_BUTTONS})
        channel.send_list = reject
        assert await send_chooser(channel, _chooser(3), step_timeout=1) == "buttons"
        assert len(channel.buttons[0]) == 3

    async def test_timed_out_strategy_falls_back(self, channel: RecordingChannel) -> None:
        async def hang(text: str, rows: list[ChooserRow], footer: str = "") -> None:
            await asyncio.sleep(10)

        channel.capabilities = frozenset({CAPABILITY_BUTTONS, CAPABILITY_TEMPLATE})
        channel.send_buttons = hang
        assert await send_chooser(channel, _chooser(2), step_timeout=0.01) == "template"

    async def test_row_limits_skip_strategies(self, channel: RecordingChannel) -> None:
        channel.capabilities = frozenset({CAPABILITY_BUTTONS, CAPABILITY_TEMPLATE})
        assert await send_chooser(channel, _chooser(11), step_timeout=1) == "text"
        assert channel.buttons == []
        assert channel.templates == []

    async def test_template_limited_to_three_rows(self, channel: RecordingChannel) -> None:
        channel.capabilities = frozenset({CAPABILITY_TEMPLATE})
        assert await send_chooser(channel, _chooser(4), step_timeout=1) == "text"

    async def test_channel_without_widgets_gets_text(self, channel: RecordingChannel) -> None:
        assert await send_chooser(channel, _chooser(2), step_timeout=1) == "text"
        assert "/titles 1 2" in channel.text


class TestRenderText:
    def test_rows_are_numbered_with_their_command(self) -> None:
        text = render_text(_chooser(2))
        assert text.splitlines() == [
            "Pick a title",
            "Request #1",
            "",
            "[Titles]",
            "1. Title 1 (1 items)",
            "   /titles 1 1",
            "2. Title 2 (2 items)",
            "   /titles 1 2",
            "",
            "Reply /cancelrequest 1 to stop",
        ]

    def test_empty_sections_are_skipped(self) -> None:
        chooser = Chooser(title="Nothing", sections=[ChooserSection(title="Empty")])
        assert render_text(chooser) == "Nothing"
