"""Shared test fixtures for the requestflow test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import pytest

from requestflow.classifier import DEFAULT_RULES
from requestflow.config import Settings
from requestflow.dedup import IdempotencyGuard
from requestflow.delivery import Fulfillment
from requestflow.events import EventEmitter
from requestflow.machine import ResolutionMachine
from requestflow.models.commands import Actor
from requestflow.models.entities import (
    ApprovalStatus,
    Attachment,
    Contribution,
    LibraryItem,
    Provider,
)
from requestflow.state import AppState
from requestflow.store import DocumentStore, Repositories

if TYPE_CHECKING:
    from pathlib import Path

    from requestflow.models.commands import Chooser, ChooserRow


class RecordingChannel:
    """ChannelProtocol implementation that records everything sent to it."""

    def __init__(self, capabilities: frozenset[str] = frozenset()) -> None:
        self.capabilities = capabilities
        self.replies: list[str] = []
        self.files: list[tuple[Path, str, str]] = []
        self.lists: list[Chooser] = []
        self.buttons: list[list[ChooserRow]] = []
        self.templates: list[list[ChooserRow]] = []
        self.fail_files = False

    async def reply(self, text: str) -> None:
        self.replies.append(text)

    async def send_file(self, path: Path, filename: str, caption: str = "") -> None:
        if self.fail_files:
            raise ConnectionError("upload rejected")
        self.files.append((path, filename, caption))

    async def send_list(self, chooser: Chooser) -> None:
        self.lists.append(chooser)

    async def send_buttons(self, text: str, rows: list[ChooserRow], footer: str = "") -> None:
        self.buttons.append(rows)

    async def send_template(self, text: str, rows: list[ChooserRow], footer: str = "") -> None:
        self.templates.append(rows)

    @property
    def text(self) -> str:
        return "\n".join(self.replies)


class FakeClock:
    """Injectable wall clock for expiry tests."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def publish(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        store={"db_path": str(tmp_path / "requestflow.db")},
        delivery={"summary_dir": str(tmp_path / "summaries")},
        access={"owner_ids": ["owner"]},
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
async def store() -> DocumentStore:
    async with aiosqlite.connect(":memory:") as db:
        document_store = DocumentStore(db)
        await document_store.init_db()
        yield document_store


@pytest.fixture()
def repos(store: DocumentStore) -> Repositories:
    return Repositories.over(store)


@pytest.fixture()
def app_state(
    settings: Settings,
    repos: Repositories,
    clock: FakeClock,
    sink: RecordingSink,
) -> AppState:
    """Fully wired AppState over an in-memory store and a fake clock."""
    events = EventEmitter([sink])
    fulfillment = Fulfillment(repos, events, settings.delivery, clock=clock)
    machine = ResolutionMachine(repos, fulfillment, events, settings, clock=clock)
    return AppState(
        settings=settings,
        repos=repos,
        guard=IdempotencyGuard(settings.dedup),
        events=events,
        rules=DEFAULT_RULES,
        fulfillment=fulfillment,
        machine=machine,
    )


@pytest.fixture()
def alice() -> Actor:
    """A regular user in a private conversation."""
    return Actor(requester_id="alice", origin_scope_id="dm-alice")


@pytest.fixture()
def asset_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "assets"
    directory.mkdir()
    return directory


def make_asset(directory: Path, name: str, size: int = 128) -> str:
    path = directory / name
    path.write_bytes(b"x" * size)
    return str(path)


@pytest.fixture()
def naruto_contribution(asset_dir: Path) -> Contribution:
    return Contribution(
        id="7",
        submitter_id="bob",
        title="Naruto",
        chapter=5,
        approval=ApprovalStatus.APPROVED,
        attachment=Attachment(
            filename="naruto_05.pdf",
            path=make_asset(asset_dir, "naruto_05.pdf"),
        ),
    )


@pytest.fixture()
def one_piece_library(asset_dir: Path) -> list[LibraryItem]:
    """Three distinct title buckets that all contain 'One Piece'."""
    return [
        LibraryItem(
            id="1",
            provider_id="grp-1",
            title="One Piece",
            season=1,
            chapter=1,
            original_name="one_piece_001.pdf",
            location=make_asset(asset_dir, "one_piece_001.pdf"),
        ),
        LibraryItem(
            id="2",
            provider_id="grp-1",
            title="One Piece",
            season=1,
            chapter=2,
            original_name="one_piece_002.pdf",
            location=make_asset(asset_dir, "one_piece_002.pdf"),
        ),
        LibraryItem(
            id="3",
            provider_id="grp-1",
            title="One Piece Film Red",
            chapter=1,
            original_name="film_red.pdf",
            location=make_asset(asset_dir, "film_red.pdf"),
        ),
        LibraryItem(
            id="4",
            provider_id="grp-2",
            title="One Piece Color Walk",
            category="illustration",
            original_name="color_walk.pdf",
            location=make_asset(asset_dir, "color_walk.pdf"),
        ),
    ]


@pytest.fixture()
def provider() -> Provider:
    return Provider(id="grp-1", name="Scan Group One")


@pytest.fixture()
def write_asset(asset_dir: Path):
    """Factory writing a dummy asset file and returning its path."""

    def _write(name: str, size: int = 128) -> str:
        return make_asset(asset_dir, name, size)

    return _write
