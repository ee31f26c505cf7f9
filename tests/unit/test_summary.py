"""Unit tests for the request summary artifact."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from requestflow.models.entities import CandidateSource, ContentType, Priority
from requestflow.summary import RequestSummary, summary_path, write_summary

if TYPE_CHECKING:
    from pathlib import Path


def _summary() -> RequestSummary:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    return RequestSummary(
        request_id=4,
        title="Naruto",
        priority=Priority.HIGH,
        requester_id="alice",
        chapter_from=5,
        chapter_to=5,
        source=CandidateSource.CONTRIBUTION,
        candidate_id="7",
        candidate_title="Naruto",
        content_type=ContentType.MAIN,
        filename="naruto_05.pdf",
        created_at=now,
        resolved_at=now,
    )


class TestWriteSummary:
    def test_path_naming(self, tmp_path: Path) -> None:
        assert summary_path(tmp_path, 4).name == "request_4_summary.json"

    def test_writes_json_document(self, tmp_path: Path) -> None:
        path = write_summary(_summary(), tmp_path / "nested" / "dir")
        assert path == summary_path(tmp_path / "nested" / "dir", 4)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["request_id"] == 4
        assert data["source"] == "contribution"
        assert data["priority"] == "high"

    def test_no_temp_file_left_behind(self, tmp_path: Path) -> None:
        write_summary(_summary(), tmp_path)
        assert [p.name for p in tmp_path.iterdir()] == ["request_4_summary.json"]

    def test_rewrite_replaces_previous_file(self, tmp_path: Path) -> None:
        write_summary(_summary(), tmp_path)
        updated = _summary()
        updated.votes = 3
        path = write_summary(updated, tmp_path)
        assert json.loads(path.read_text(encoding="utf-8"))["votes"] == 3
