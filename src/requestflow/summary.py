"""Request summary artifact sent alongside a delivered asset.

The summary is a JSON document describing the request and what resolved
it. It is written with atomic replace semantics so a reader never sees a
partial file. Its layout is informational, not a compatibility contract.
"""

from __future__ import annotations

import json
import os
import sys
from contextlib import suppress
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel

from requestflow.models.entities import CandidateSource, ContentType, Priority


class RequestSummary(BaseModel):
    request_id: int
    title: str
    description: str = ""
    priority: Priority
    requester_id: str
    season: int | None = None
    chapter_from: int | None = None
    chapter_to: int | None = None
    votes: int = 0
    source: CandidateSource
    candidate_id: str
    candidate_title: str
    content_type: ContentType
    filename: str
    size_bytes: int | None = None
    created_at: datetime
    resolved_at: datetime


def summary_path(directory: str | Path, request_id: int) -> Path:
    return Path(directory).expanduser() / f"request_{request_id}_summary.json"


def write_summary(summary: RequestSummary, directory: str | Path) -> Path:
    """Persist *summary* under *directory* and return its path. Raises OSError."""
    path = summary_path(directory, summary.request_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = json.dumps(summary.model_dump(mode="json"), ensure_ascii=False, indent=2).encode("utf-8")

    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        _write_bytes_fsync(tmp_path, data)
        os.replace(tmp_path, path)
        _fsync_directory(path.parent)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)
    return path


def _write_bytes_fsync(path: Path, data: bytes) -> None:
    with path.open("wb") as file_obj:
        file_obj.write(data)
        file_obj.flush()
        os.fsync(file_obj.fileno())


def _fsync_directory(path: Path) -> None:
    if sys.platform == "win32":
        return  # No fsync on directory handles
    directory_fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(directory_fd)
    finally:
        os.close(directory_fd)
