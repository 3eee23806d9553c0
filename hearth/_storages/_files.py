from __future__ import annotations

import hashlib
import logging
import shutil
import typing as tp
from pathlib import Path

import anyio

from hearth._config import get_default_settings
from hearth._core._packing import pack, unpack
from hearth._core.models import Entry, EntryMeta, Request, Response
from hearth._exceptions import StoreError
from hearth._files import AsyncFileManager
from hearth._storages._base import AsyncBaseRegistry, AsyncBaseStore
from hearth._synchronization import AsyncLock
from hearth._utils import ensure_cache_dir

logger = logging.getLogger("hearth.storages")

__all__ = ("AsyncFileRegistry", "AsyncFileStore")

ENTRY_SUFFIX = ".entry"


def entry_filename(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest() + ENTRY_SUFFIX


class AsyncFileStore(AsyncBaseStore):
    def __init__(self, name: str, registry: "AsyncFileRegistry") -> None:
        super().__init__(name)
        self._registry = registry
        self._path = registry._store_path(name)

    async def match(self, key: str) -> tp.Optional[Entry]:
        entry_path = self._path / entry_filename(key)
        try:
            async with self._registry._lock:
                if not entry_path.is_file():
                    return None
                data = await self._registry._file_manager.read_from(str(entry_path))
        except OSError as exc:
            raise StoreError(f"Could not read {entry_path}: {exc}") from exc
        return unpack(data)

    async def put(self, key: str, request: Request, response: Response) -> Entry:
        entry = Entry(
            key=key,
            request=request,
            status_code=response.status_code,
            headers=response.headers,
            body=await response.aread(),
            meta=EntryMeta(),
        )
        entry_path = self._path / entry_filename(key)
        try:
            async with self._registry._lock:
                if not self._path.is_dir():
                    raise StoreError(f"Store {self.name!r} was deleted")
                await self._registry._file_manager.write_to(str(entry_path), pack(entry))
        except OSError as exc:
            raise StoreError(f"Could not write {entry_path}: {exc}") from exc
        return entry

    async def delete(self, key: str) -> bool:
        entry_path = self._path / entry_filename(key)
        async with self._registry._lock:
            if not entry_path.is_file():
                return False
            entry_path.unlink()
        return True

    async def keys(self) -> tp.List[str]:
        keys: tp.List[str] = []
        async with self._registry._lock:
            if not self._path.is_dir():
                return keys
            for entry_path in sorted(self._path.glob(f"*{ENTRY_SUFFIX}")):
                entry = unpack(await self._registry._file_manager.read_from(str(entry_path)))
                if entry is not None:
                    keys.append(entry.key)
        return keys

    async def count(self) -> int:
        async with self._registry._lock:
            if not self._path.is_dir():
                return 0
            return sum(1 for _ in self._path.glob(f"*{ENTRY_SUFFIX}"))


class AsyncFileRegistry(AsyncBaseRegistry):
    """
    A registry that keeps one directory per store and one file per entry.

    :param base_path: Directory holding the stores, defaults to the ``cache_dir`` setting
    :type base_path: tp.Optional[Path], optional
    """

    def __init__(self, base_path: tp.Optional[tp.Union[str, Path]] = None) -> None:
        self._base_path = ensure_cache_dir(Path(base_path or get_default_settings()["cache_dir"]))
        self._file_manager = AsyncFileManager()
        self._lock = AsyncLock()

    def _store_path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ValueError(f"Invalid store name: {name!r}")
        return self._base_path / name

    async def open(self, name: str) -> AsyncFileStore:
        path = self._store_path(name)
        async with self._lock:
            path.mkdir(exist_ok=True)
        return AsyncFileStore(name, self)

    async def has(self, name: str) -> bool:
        return self._store_path(name).is_dir()

    async def delete(self, name: str) -> bool:
        path = self._store_path(name)
        async with self._lock:
            if not path.is_dir():
                return False
            await anyio.to_thread.run_sync(shutil.rmtree, path)
        logger.debug(f"Removed store directory {path}")
        return True

    async def keys(self) -> tp.List[str]:
        return sorted(path.name for path in self._base_path.iterdir() if path.is_dir())

    async def entry_count(self, name: str) -> int:
        return await AsyncFileStore(name, self).count()
