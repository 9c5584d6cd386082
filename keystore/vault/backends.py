"""
Persistence backends: where sealed rows live.

Backends store JSON-safe row dicts in named collections ("secrets", "api_keys",
"settings") and know nothing about encryption. Rows are copied on the way in
and out, so callers can never mutate backend state by reference.

    MemoryBackend     process memory; lost on exit
    JsonFileBackend   memory + atomic JSON snapshot on flush/close
    PostgresBackend   keystore_rows table via psycopg2
"""

from __future__ import annotations

import copy
import json
import logging
import os
import stat
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from keystore.config import Config, DatabaseConfig

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class RecordBackend(ABC):
    """Collection-scoped row storage."""

    @abstractmethod
    def get(self, collection: str, key: str) -> Row | None: ...

    @abstractmethod
    def put(self, collection: str, key: str, row: Row) -> None: ...

    @abstractmethod
    def delete(self, collection: str, key: str) -> bool: ...

    @abstractmethod
    def rows(self, collection: str) -> list[Row]:
        """All rows in a collection, in insertion order."""

    def flush(self) -> None:
        """Persist pending state. No-op for backends that write through."""

    def close(self) -> None:
        self.flush()


class MemoryBackend(RecordBackend):
    def __init__(self) -> None:
        self._data: dict[str, dict[str, Row]] = {}
        self._lock = threading.Lock()

    def get(self, collection: str, key: str) -> Row | None:
        with self._lock:
            row = self._data.get(collection, {}).get(key)
            return copy.deepcopy(row) if row is not None else None

    def put(self, collection: str, key: str, row: Row) -> None:
        row = copy.deepcopy(row)
        with self._lock:
            self._data.setdefault(collection, {})[key] = row

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            return self._data.get(collection, {}).pop(key, None) is not None

    def rows(self, collection: str) -> list[Row]:
        with self._lock:
            snapshot = list(self._data.get(collection, {}).values())
        return copy.deepcopy(snapshot)

    def _snapshot(self) -> dict[str, dict[str, Row]]:
        with self._lock:
            return copy.deepcopy(self._data)


class JsonFileBackend(MemoryBackend):
    """Memory backend persisted as a single JSON document.

    The file is read once on open and rewritten atomically (temp file + rename)
    on flush(). The snapshot is copied under the lock; disk I/O happens outside it.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with open(self.path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Keystore data file {self.path} is not a JSON object")
        self._data = {name: dict(rows) for name, rows in data.items()}
        logger.info(
            "Loaded keystore data from %s (%d collections)", self.path, len(self._data)
        )

    def flush(self) -> None:
        data = self._snapshot()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            os.chmod(tmp_path, stat.S_IRUSR | stat.S_IWUSR)
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        logger.debug("Flushed keystore data to %s", self.path)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS keystore_rows (
    collection TEXT NOT NULL,
    key TEXT NOT NULL,
    row JSONB NOT NULL,
    position BIGSERIAL,
    PRIMARY KEY (collection, key)
)
"""


class PostgresBackend(RecordBackend):
    """Rows in a single PostgreSQL table, one connection per call.

    Every call commits before returning, so flush() has nothing to do.
    """

    def __init__(self, conn_factory: Callable[[], Any]) -> None:
        self._conn_factory = conn_factory

    def _get_conn(self):
        return self._conn_factory()

    def ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()

    def get(self, collection: str, key: str) -> Row | None:
        conn = self._get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT row FROM keystore_rows WHERE collection = %s AND key = %s",
                    (collection, key),
                )
                result = cur.fetchone()
                if not result:
                    return None
                return _as_row(result[0])
        finally:
            conn.close()

    def put(self, collection: str, key: str, row: Row) -> None:
        conn = self._get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO keystore_rows (collection, key, row)
                    VALUES (%s, %s, %s::jsonb)
                    ON CONFLICT (collection, key)
                    DO UPDATE SET row = EXCLUDED.row
                    """,
                    (collection, key, json.dumps(row)),
                )
            conn.commit()
        finally:
            conn.close()

    def delete(self, collection: str, key: str) -> bool:
        conn = self._get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM keystore_rows WHERE collection = %s AND key = %s",
                    (collection, key),
                )
                deleted = cur.rowcount > 0
            conn.commit()
            return deleted
        finally:
            conn.close()

    def rows(self, collection: str) -> list[Row]:
        conn = self._get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT row FROM keystore_rows WHERE collection = %s ORDER BY position",
                    (collection,),
                )
                return [_as_row(r[0]) for r in cur.fetchall()]
        finally:
            conn.close()


def _as_row(value: Any) -> Row:
    # psycopg2 decodes JSONB to dicts; plain drivers and mocks may hand back text
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return dict(value)


def connection_factory(db: DatabaseConfig) -> Callable[[], Any]:
    """Return a zero-arg callable opening a fresh psycopg2 connection to db."""
    import psycopg2

    return lambda: psycopg2.connect(**db.dict, connect_timeout=5)


def create_backend(config: Config) -> RecordBackend:
    """Build the backend named by config.backend."""
    if config.backend == "memory":
        return MemoryBackend()
    if config.backend == "file":
        return JsonFileBackend(config.data_path)
    if config.backend == "postgres":
        backend = PostgresBackend(connection_factory(config.db))
        backend.ensure_schema()
        return backend
    raise ValueError(f"Unknown keystore backend: {config.backend!r}")
