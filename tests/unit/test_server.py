"""Unit tests for the console entrypoint helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest

from requestflow.models.commands import Chooser, ChooserRow
from requestflow.server import ConsoleChannel, build_state, parse_command_line

if TYPE_CHECKING:
    from requestflow.config import Settings


class TestParseCommandLine:
    def test_command_and_arguments(self) -> None:
        command = parse_command_line(
            "/request Naruto | cap 5", prefix="/", requester_id="me", message_id="1"
        )
        assert command is not None
        assert command.command_name == "request"
        assert command.text == "Naruto | cap 5"
        assert command.origin_scope_id == "console:me"
        assert command.message_id == "1"

    def test_quoted_arguments(self) -> None:
        command = parse_command_line('/request "One Piece"', prefix="/", requester_id="me")
        assert command is not None
        assert command.argument_tokens == ["One Piece"]

    def test_unbalanced_quote_falls_back_to_whitespace_split(self) -> None:
        command = parse_command_line("/request Jojo's", prefix="/", requester_id="me")
        assert command is not None
        assert command.argument_tokens == ["Jojo's"]

    def test_lines_without_prefix_are_ignored(self) -> None:
        assert parse_command_line("hello", prefix="/", requester_id="me") is None
        assert parse_command_line("   ", prefix="/", requester_id="me") is None
        assert parse_command_line("/", prefix="/", requester_id="me") is None


class TestConsoleChannel:
    async def test_reply_prints(self, capsys: pytest.CaptureFixture[str]) -> None:
        await ConsoleChannel().reply("hello")
        assert capsys.readouterr().out == "hello\n"

    async def test_widgets_print_as_text(self, capsys: pytest.CaptureFixture[str]) -> None:
        channel = ConsoleChannel()
        assert channel.capabilities == frozenset()

        await channel.send_list(Chooser(title="Matching titles"))
        assert capsys.readouterr().out == "Matching titles\n"

        rows = [ChooserRow(action="/seasons 1 1", title="One Piece")]
        await channel.send_buttons("Pick one", rows, footer="/cancelrequest 1 to cancel")
        assert capsys.readouterr().out == (
            "Pick one\n- One Piece: /seasons 1 1\n/cancelrequest 1 to cancel\n"
        )

        await channel.send_template("", rows)
        assert capsys.readouterr().out == "- One Piece: /seasons 1 1\n"


class TestBuildState:
    async def test_wires_every_component(self, settings: Settings) -> None:
        async with aiosqlite.connect(":memory:") as db:
            state = await build_state(settings, db)
            assert state.http_client is None
            assert state.machine is not None
            assert await state.repos.requests.next_id() == 1
