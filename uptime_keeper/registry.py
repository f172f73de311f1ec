from __future__ import annotations

import abc
import asyncio
import sqlite3
import time
from pathlib import Path
from typing import AsyncIterator

import structlog

from uptime_keeper.errors import RegistryError


logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1
ENDPOINT_MARKER = "1"


class EndpointRegistry(abc.ABC):
    """Durable mapping from endpoint URL to an opaque marker value."""

    @abc.abstractmethod
    def iter_endpoints(self) -> AsyncIterator[str]:
        """Yield every registered URL in a stable scan order."""

    @abc.abstractmethod
    async def put(self, url: str, value: str = ENDPOINT_MARKER) -> None:
        """Insert or overwrite ``url``."""

    @abc.abstractmethod
    async def delete(self, url: str) -> None:
        """Remove ``url``; removing an unknown URL is not an error."""


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db_path")
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    # WAL lets the scheduler read while a command writes.
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.DatabaseError:
        pass
    return conn


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return
    if cur == 0:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS endpoints (
              url TEXT PRIMARY KEY,
              value TEXT NOT NULL,
              created_at_ts REAL NOT NULL,
              updated_at_ts REAL NOT NULL
            );
            """
        )
        conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))
        return
    raise RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}")


class SQLiteEndpointRegistry(EndpointRegistry):
    """Registry stored in a single SQLite table.

    Listing is keyset-paginated by URL so a large registry is never loaded
    into memory at once. All blocking calls run in a worker thread.
    """

    def __init__(self, db_path: str, *, page_size: int = 500) -> None:
        self.db_path = db_path
        self.page_size = max(1, int(page_size))
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = _connect(self.db_path)
            _ensure_schema_conn(conn)
            self._conn = conn
        return self._conn

    async def _run(self, operation: str, fn, *args):
        async with self._lock:
            try:
                return await asyncio.to_thread(fn, *args)
            except sqlite3.Error as exc:
                logger.error("Registry operation failed", operation=operation, error=str(exc))
                raise RegistryError(operation, str(exc)) from exc

    async def ensure_schema(self) -> None:
        await self._run("ensure_schema", self._connection)

    def _fetch_page(self, after: str | None) -> list[str]:
        conn = self._connection()
        if after is None:
            rows = conn.execute("SELECT url FROM endpoints ORDER BY url LIMIT ?", (self.page_size,)).fetchall()
        else:
            rows = conn.execute(
                "SELECT url FROM endpoints WHERE url > ? ORDER BY url LIMIT ?",
                (after, self.page_size),
            ).fetchall()
        return [str(r["url"]) for r in rows]

    async def iter_endpoints(self) -> AsyncIterator[str]:
        after: str | None = None
        while True:
            page = await self._run("list", self._fetch_page, after)
            for url in page:
                yield url
            if len(page) < self.page_size:
                return
            after = page[-1]

    def _put_sync(self, url: str, value: str) -> None:
        now = time.time()
        self._connection().execute(
            """
            INSERT INTO endpoints (url, value, created_at_ts, updated_at_ts) VALUES (?, ?, ?, ?)
            ON CONFLICT(url) DO UPDATE SET value=excluded.value, updated_at_ts=excluded.updated_at_ts
            """,
            (url, value, now, now),
        )

    async def put(self, url: str, value: str = ENDPOINT_MARKER) -> None:
        await self._run("put", self._put_sync, url, value)
        logger.info("Endpoint stored", url=url)

    def _delete_sync(self, url: str) -> None:
        self._connection().execute("DELETE FROM endpoints WHERE url = ?", (url,))

    async def delete(self, url: str) -> None:
        await self._run("delete", self._delete_sync, url)
        logger.info("Endpoint deleted", url=url)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
