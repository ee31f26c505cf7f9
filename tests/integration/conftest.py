"""Integration test fixtures.

Builds on the fully wired ``app_state`` from tests/conftest.py: a Router
over it, a helper that seeds the document store, and a factory for
inbound commands as a messaging transport would deliver them.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from requestflow.models.commands import InboundCommand
from requestflow.models.entities import Contribution, LibraryItem, Provider, Request
from requestflow.router import Router

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    import pydantic

    from requestflow.state import AppState


@pytest.fixture()
def router(app_state: AppState) -> Router:
    return Router(app_state)


@pytest.fixture()
def seed(app_state: AppState) -> Callable[..., Awaitable[None]]:
    """Store library items, contributions, providers and requests."""
    repos = app_state.repos

    async def _seed(*documents: pydantic.BaseModel) -> None:
        for document in documents:
            if isinstance(document, LibraryItem):
                await repos.library.put(document)
            elif isinstance(document, Contribution):
                await repos.contributions.put(document)
            elif isinstance(document, Provider):
                await repos.providers.put(document)
            elif isinstance(document, Request):
                await repos.requests.save(document)
            else:
                raise TypeError(f"cannot seed {type(document).__name__}")

    return _seed


@pytest.fixture()
def make_command() -> Callable[..., InboundCommand]:
    """Build an InboundCommand from ``"select 1 library 4"`` style text."""

    def _make(
        text: str,
        *,
        requester_id: str = "alice",
        scope: str = "dm-alice",
        group: bool = False,
        elevated: bool = False,
        message_id: str | None = None,
    ) -> InboundCommand:
        name, *tokens = text.split()
        return InboundCommand(
            command_name=name,
            argument_tokens=tokens,
            requester_id=requester_id,
            origin_scope_id=scope,
            is_group_scoped=group,
            reply_target_id=requester_id,
            is_requester_elevated=elevated,
            message_id=message_id,
        )

    return _make


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env for running the console entrypoint in a subprocess.

    Points every data path at an isolated tmp directory so a local
    requestflow.yaml or real database is never touched.
    """
    env = os.environ.copy()
    env["REQUESTFLOW__STORE__DB_PATH"] = str(tmp_path / "requestflow.db")
    env["REQUESTFLOW__DELIVERY__SUMMARY_DIR"] = str(tmp_path / "summaries")
    env["REQUESTFLOW__LOGGING__FORMAT"] = "json"
    return env
