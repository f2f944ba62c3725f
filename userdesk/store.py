"""SQLite-backed document store holding one JSON document per record."""
from __future__ import annotations

import json
import secrets
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

_DOCUMENT_ID_BYTES = 15
_MAX_ID_ATTEMPTS = 5
_UNAVAILABLE_MARKERS = ("unable to open", "database is locked", "disk i/o error")


class StoreError(RuntimeError):
    """Raised when the underlying database cannot complete an operation."""


class StoreUnavailable(StoreError):
    """Raised when the database file cannot be opened or is held by another writer."""


class _ServerTimestamp:
    """Placeholder resolved to the store's clock when a write is applied."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _translate(exc: sqlite3.Error) -> StoreError:
    message = str(exc)
    if isinstance(exc, sqlite3.OperationalError) and message.lower().startswith(_UNAVAILABLE_MARKERS):
        return StoreUnavailable(message)
    return StoreError(message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _generate_document_id() -> str:
    return secrets.token_urlsafe(_DOCUMENT_ID_BYTES)


class StoreClock:
    """Strictly increasing UTC clock used to stamp server timestamps."""

    def __init__(self, source: Callable[[], datetime] = _utcnow) -> None:
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            now = self._source()
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now


@dataclass(frozen=True)
class Document:
    """A snapshot of a stored document."""

    id: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}


class Collection:
    """Named group of documents inside a :class:`DocumentStore`."""

    def __init__(self, store: "DocumentStore", name: str) -> None:
        self._store = store
        self.name = name

    def list(self) -> List[Document]:
        with self._store._connect() as conn:
            rows = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? ORDER BY seq",
                (self.name,),
            ).fetchall()
        return [self._store._row_to_document(row) for row in rows]

    def get(self, doc_id: str) -> Optional[Document]:
        with self._store._connect() as conn:
            row = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (self.name, doc_id),
            ).fetchone()
        if row is None:
            return None
        return self._store._row_to_document(row)

    def add(self, data: Mapping[str, Any]) -> Document:
        """Persist ``data`` under a freshly allocated identifier."""

        resolved = self._store._resolve(data)
        payload = json.dumps(resolved)
        with self._store._connect() as conn:
            for _ in range(_MAX_ID_ATTEMPTS):
                doc_id = _generate_document_id()
                try:
                    conn.execute(
                        "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
                        (self.name, doc_id, payload),
                    )
                except sqlite3.IntegrityError:
                    continue
                return Document(id=doc_id, data=resolved)
        raise StoreError("Unable to allocate a unique document identifier")

    def update(self, doc_id: str, fields: Mapping[str, Any]) -> Optional[Document]:
        """Merge ``fields`` into an existing document, or return ``None``."""

        with self._store._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT id, data FROM documents WHERE collection = ? AND id = ?",
                (self.name, doc_id),
            ).fetchone()
            if row is None:
                return None
            merged = json.loads(row["data"])
            merged.update(self._store._resolve(fields, previous=merged))
            conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
                (json.dumps(merged), self.name, doc_id),
            )
        return Document(id=doc_id, data=merged)

    def delete(self, doc_id: str) -> bool:
        with self._store._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (self.name, doc_id),
            )
        return cursor.rowcount > 0


class DocumentStore:
    """Simple wrapper around SQLite exposing collections of JSON documents."""

    def __init__(self, path: Path, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._clock = clock or StoreClock()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> "_GuardedConnection":
        try:
            conn = sqlite3.connect(self._path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Unable to open document store at {self._path}") from exc
        conn.row_factory = sqlite3.Row
        return _GuardedConnection(conn)

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    UNIQUE (collection, id)
                );

                CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
                """
            )

    def collection(self, name: str) -> Collection:
        cleaned = name.strip()
        if not cleaned:
            raise ValueError("Collection name must not be empty")
        return Collection(self, cleaned)

    def _resolve(
        self,
        data: Mapping[str, Any],
        *,
        previous: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Replace sentinels with one shared instant.

        When ``previous`` holds the stored document, the instant is placed after
        every timestamp it is about to overwrite, so a field stamped on each
        write only moves forward even across processes or clock steps.
        """

        stamped = [key for key, value in data.items() if value is SERVER_TIMESTAMP]
        if not stamped:
            return dict(data)
        instant = self._clock()
        for key in stamped:
            earlier = _parse_timestamp((previous or {}).get(key))
            if earlier is not None and instant <= earlier:
                instant = earlier + timedelta(microseconds=1)
        stamp = _serialize_datetime(instant)
        return {key: stamp if key in stamped else value for key, value in data.items()}

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(id=row["id"], data=json.loads(row["data"]))


class _GuardedConnection:
    """Connection proxy translating ``sqlite3`` failures into :class:`StoreError`."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def execute(self, sql: str, parameters: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, parameters)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise _translate(exc) from exc

    def executescript(self, script: str) -> sqlite3.Cursor:
        try:
            return self._conn.executescript(script)
        except sqlite3.Error as exc:
            raise _translate(exc) from exc

    def __enter__(self) -> "_GuardedConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                self._conn.commit()
            else:
                self._conn.rollback()
        except sqlite3.Error as error:
            if exc_type is None:
                raise _translate(error) from error
        finally:
            self._conn.close()


__all__ = [
    "SERVER_TIMESTAMP",
    "Collection",
    "Document",
    "DocumentStore",
    "StoreClock",
    "StoreError",
    "StoreUnavailable",
]
