"""SQLite document store for requests, library items, contributions and providers.

Documents are pydantic models serialised to JSON, one row per
(collection, id). All operations catch ``aiosqlite.Error`` internally:
read failures return ``None`` or an empty list, write failures are logged
and reported as ``False``. Infrastructure errors never cross the
DocumentStore boundary, except for id allocation, which a new request
cannot proceed without.

Request writes carry a version. A write whose version is not newer than
the stored one is refused and logged as ``document_write_stale``, so a
slower concurrent mutation can never overwrite a newer state.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

import aiosqlite
import pydantic
import structlog

from requestflow.errors import ErrorCode, RequestFlowError
from requestflow.models.entities import Contribution, LibraryItem, Provider, Request

log = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

REQUESTS = "requests"
LIBRARY = "library"
CONTRIBUTIONS = "contributions"
PROVIDERS = "providers"

_CREATE_DOCUMENTS_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id         TEXT NOT NULL,
    body       TEXT NOT NULL,
    version    INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (collection, id)
)
"""

_CREATE_COUNTERS_TABLE = """
CREATE TABLE IF NOT EXISTS counters (
    name  TEXT PRIMARY KEY,
    value INTEGER NOT NULL
)
"""

_UPSERT_GUARDED = (
    "INSERT INTO documents (collection, id, body, version, updated_at) "
    "VALUES (?, ?, ?, ?, ?) "
    "ON CONFLICT (collection, id) DO UPDATE SET "
    "body = excluded.body, version = excluded.version, updated_at = excluded.updated_at "
    "WHERE documents.version < excluded.version"
)


class DocumentStore:
    """aiosqlite-backed JSON document store implementing StoreProtocol."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_DOCUMENTS_TABLE)
        await self._db.execute(_CREATE_COUNTERS_TABLE)
        await self._db.commit()

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Read one document. Returns ``None`` when missing or on read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return json.loads(row[0])
        except aiosqlite.Error:
            log.warning("document_read_error", collection=collection, id=doc_id, exc_info=True)
            return None

    async def list(self, collection: str) -> list[dict[str, Any]]:
        """Read every document of a collection. Empty on read failure."""
        try:
            cursor = await self._db.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY id",
                (collection,),
            )
            rows = await cursor.fetchall()
            return [json.loads(row[0]) for row in rows]
        except aiosqlite.Error:
            log.warning("document_list_error", collection=collection, exc_info=True)
            return []

    async def put(
        self,
        collection: str,
        doc_id: str,
        body: dict[str, Any],
        *,
        version: int | None = None,
    ) -> bool:
        """Write one document. Non-fatal on failure.

        With *version*, the write only lands if the stored version is older.
        Returns True when the document was written.
        """
        now = datetime.now(UTC).isoformat()
        payload = json.dumps(body, ensure_ascii=False)
        try:
            if version is None:
                cursor = await self._db.execute(
                    "INSERT OR REPLACE INTO documents (collection, id, body, version, updated_at) "
                    "VALUES (?, ?, ?, 0, ?)",
                    (collection, doc_id, payload, now),
                )
            else:
                cursor = await self._db.execute(
                    _UPSERT_GUARDED, (collection, doc_id, payload, version, now)
                )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("document_write_error", collection=collection, id=doc_id, exc_info=True)
            return False

        if cursor.rowcount == 0:
            log.warning("document_write_stale", collection=collection, id=doc_id, version=version)
            return False
        return True

    async def next_id(self, counter: str) -> int:
        """Allocate the next value of a monotonic counter, starting at 1."""
        try:
            await self._db.execute(
                "INSERT OR IGNORE INTO counters (name, value) VALUES (?, 0)", (counter,)
            )
            await self._db.execute(
                "UPDATE counters SET value = value + 1 WHERE name = ?", (counter,)
            )
            cursor = await self._db.execute("SELECT value FROM counters WHERE name = ?", (counter,))
            row = await cursor.fetchone()
            await self._db.commit()
        except aiosqlite.Error as exc:
            log.warning("counter_allocation_error", counter=counter, exc_info=True)
            raise RequestFlowError(
                "Could not allocate a new request id.",
                "Try again in a moment.",
                code=ErrorCode.STORE_UNAVAILABLE,
                recoverable=True,
            ) from exc
        return int(row[0])


class Repository(Generic[ModelT]):
    """Typed view of one collection."""

    def __init__(self, store: DocumentStore, collection: str, model: type[ModelT]) -> None:
        self._store = store
        self.collection = collection
        self._model = model

    def _load(self, body: dict[str, Any]) -> ModelT | None:
        try:
            return self._model.model_validate(body)
        except pydantic.ValidationError:
            log.warning("document_decode_error", collection=self.collection, exc_info=True)
            return None

    async def get(self, doc_id: str | int) -> ModelT | None:
        body = await self._store.get(self.collection, str(doc_id))
        if body is None:
            return None
        return self._load(body)

    async def list(self) -> list[ModelT]:
        documents = []
        for body in await self._store.list(self.collection):
            document = self._load(body)
            if document is not None:
                documents.append(document)
        return documents

    async def put(self, document: ModelT) -> bool:
        doc_id = str(document.id)  # type: ignore[attr-defined]
        return await self._store.put(self.collection, doc_id, document.model_dump(mode="json"))


class RequestRepository(Repository[Request]):
    def __init__(self, store: DocumentStore) -> None:
        super().__init__(store, REQUESTS, Request)

    async def next_id(self) -> int:
        return await self._store.next_id(REQUESTS)

    async def save(self, request: Request) -> bool:
        """Persist *request* under a bumped version. False when refused or failed."""
        request.version += 1
        saved = await self._store.put(
            self.collection,
            str(request.id),
            request.model_dump(mode="json"),
            version=request.version,
        )
        if not saved:
            request.version -= 1
        return saved


@dataclass
class Repositories:
    requests: RequestRepository
    library: Repository[LibraryItem]
    contributions: Repository[Contribution]
    providers: Repository[Provider]

    @classmethod
    def over(cls, store: DocumentStore) -> Repositories:
        return cls(
            requests=RequestRepository(store),
            library=Repository(store, LIBRARY, LibraryItem),
            contributions=Repository(store, CONTRIBUTIONS, Contribution),
            providers=Repository(store, PROVIDERS, Provider),
        )
