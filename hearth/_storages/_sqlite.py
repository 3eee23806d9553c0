from __future__ import annotations

import sqlite3
import time
import typing as tp
from pathlib import Path

from hearth._config import get_default_settings
from hearth._core._packing import pack, unpack
from hearth._core.models import Entry, EntryMeta, Request, Response
from hearth._exceptions import StoreError
from hearth._storages._base import AsyncBaseRegistry, AsyncBaseStore
from hearth._synchronization import AsyncLock
from hearth._utils import ensure_cache_dir

try:
    import anysqlite
except ImportError:  # pragma: no cover
    anysqlite = None  # type: ignore

__all__ = ("AsyncSqliteRegistry", "AsyncSqliteStore")


class AsyncSqliteStore(AsyncBaseStore):
    def __init__(self, name: str, registry: "AsyncSqliteRegistry") -> None:
        super().__init__(name)
        self._registry = registry

    async def match(self, key: str) -> tp.Optional[Entry]:
        row = await self._registry._fetchone(
            "SELECT data FROM entries WHERE store = ? AND key = ?",
            (self.name, key),
        )
        if row is None:
            return None
        return unpack(row[0])

    async def put(self, key: str, request: Request, response: Response) -> Entry:
        entry = Entry(
            key=key,
            request=request,
            status_code=response.status_code,
            headers=response.headers,
            body=await response.aread(),
            meta=EntryMeta(),
        )
        await self._registry._put(self.name, entry)
        return entry

    async def delete(self, key: str) -> bool:
        if await self.match(key) is None:
            return False
        await self._registry._execute(
            "DELETE FROM entries WHERE store = ? AND key = ?",
            (self.name, key),
        )
        return True

    async def keys(self) -> tp.List[str]:
        rows = await self._registry._fetchall(
            "SELECT key FROM entries WHERE store = ? ORDER BY created_at, key",
            (self.name,),
        )
        return [row[0] for row in rows]

    async def count(self) -> int:
        row = await self._registry._fetchone("SELECT COUNT(*) FROM entries WHERE store = ?", (self.name,))
        return int(row[0]) if row is not None else 0


class AsyncSqliteRegistry(AsyncBaseRegistry):
    """
    A registry persisted in a single SQLite database.

    :param connection: An anysqlite connection, defaults to None
    :type connection: tp.Optional[anysqlite.Connection], optional
    :param database_path: Where to create the database when no connection is given,
        defaults to the ``database_path`` setting
    :type database_path: tp.Optional[tp.Union[str, Path]], optional
    """

    def __init__(
        self,
        *,
        connection: tp.Optional["anysqlite.Connection"] = None,
        database_path: tp.Optional[tp.Union[str, Path]] = None,
    ) -> None:
        if anysqlite is None:  # pragma: no cover
            raise RuntimeError(
                f"The `{type(self).__name__}` was used, but the required packages were not found. "
                "Check that you have `Hearth` installed with the `sqlite` extension as shown.\n"
                "```pip install hearth[sqlite]```"
            )
        self._connection = connection
        self.database_path = Path(database_path or get_default_settings()["database_path"])
        self._setup_lock = AsyncLock()
        self._setup_completed = False
        self._lock = AsyncLock()

    async def _setup(self) -> "anysqlite.Connection":
        async with self._setup_lock:
            if self._connection is None:
                parent = self.database_path.parent if self.database_path.parent != Path(".") else None
                full_path = ensure_cache_dir(parent) / self.database_path.name
                self._connection = await anysqlite.connect(str(full_path), check_same_thread=False)
            if not self._setup_completed:
                await self._connection.execute("""
                    CREATE TABLE IF NOT EXISTS stores (
                        name TEXT PRIMARY KEY,
                        created_at REAL NOT NULL
                    )
                """)
                await self._connection.execute("""
                    CREATE TABLE IF NOT EXISTS entries (
                        store TEXT NOT NULL,
                        key TEXT NOT NULL,
                        data BLOB NOT NULL,
                        created_at REAL NOT NULL,
                        PRIMARY KEY (store, key)
                    )
                """)
                await self._connection.commit()
                self._setup_completed = True
        return self._connection

    async def _fetchone(self, query: str, parameters: tp.Sequence[tp.Any]) -> tp.Optional[tp.Tuple[tp.Any, ...]]:
        connection = await self._setup()
        try:
            async with self._lock:
                cursor = await connection.execute(query, parameters)
                return tp.cast(tp.Optional[tp.Tuple[tp.Any, ...]], await cursor.fetchone())
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    async def _fetchall(self, query: str, parameters: tp.Sequence[tp.Any]) -> tp.List[tp.Tuple[tp.Any, ...]]:
        connection = await self._setup()
        try:
            async with self._lock:
                cursor = await connection.execute(query, parameters)
                return list(await cursor.fetchall())
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    async def _execute(self, query: str, parameters: tp.Sequence[tp.Any]) -> None:
        connection = await self._setup()
        try:
            async with self._lock:
                await connection.execute(query, parameters)
                await connection.commit()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    async def _put(self, store: str, entry: Entry) -> None:
        connection = await self._setup()
        try:
            async with self._lock:
                cursor = await connection.execute("SELECT 1 FROM stores WHERE name = ?", (store,))
                if await cursor.fetchone() is None:
                    raise StoreError(f"Store {store!r} was deleted")
                await connection.execute(
                    "INSERT OR REPLACE INTO entries (store, key, data, created_at) VALUES (?, ?, ?, ?)",
                    (store, entry.key, pack(entry), entry.meta.created_at),
                )
                await connection.commit()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    async def open(self, name: str) -> AsyncSqliteStore:
        await self._execute(
            "INSERT OR IGNORE INTO stores (name, created_at) VALUES (?, ?)",
            (name, time.time()),
        )
        return AsyncSqliteStore(name, self)

    async def has(self, name: str) -> bool:
        return await self._fetchone("SELECT 1 FROM stores WHERE name = ?", (name,)) is not None

    async def delete(self, name: str) -> bool:
        existed = await self.has(name)
        await self._execute("DELETE FROM entries WHERE store = ?", (name,))
        await self._execute("DELETE FROM stores WHERE name = ?", (name,))
        return existed

    async def keys(self) -> tp.List[str]:
        rows = await self._fetchall("SELECT name FROM stores ORDER BY created_at, name", ())
        return [row[0] for row in rows]

    async def entry_count(self, name: str) -> int:
        return await AsyncSqliteStore(name, self).count()

    async def aclose(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._setup_completed = False
