from __future__ import annotations

import typing as tp

from hearth._core._packing import pack, unpack
from hearth._core.models import Entry, EntryMeta, Request, Response
from hearth._exceptions import StoreError
from hearth._storages._base import AsyncBaseRegistry, AsyncBaseStore

__all__ = ("AsyncInMemoryRegistry", "AsyncInMemoryStore")


class AsyncInMemoryStore(AsyncBaseStore):
    def __init__(self, name: str, registry: "AsyncInMemoryRegistry") -> None:
        super().__init__(name)
        self._registry = registry

    def _table(self) -> tp.Dict[str, bytes]:
        try:
            return self._registry._stores[self.name]
        except KeyError:
            raise StoreError(f"Store {self.name!r} was deleted") from None

    async def match(self, key: str) -> tp.Optional[Entry]:
        table = self._registry._stores.get(self.name)
        if table is None:
            return None
        return unpack(table.get(key))

    async def put(self, key: str, request: Request, response: Response) -> Entry:
        table = self._table()
        entry = Entry(
            key=key,
            request=request,
            status_code=response.status_code,
            headers=response.headers,
            body=await response.aread(),
            meta=EntryMeta(),
        )
        # stored packed: readers never share objects with the writer
        table[key] = pack(entry)
        return entry

    async def delete(self, key: str) -> bool:
        table = self._registry._stores.get(self.name, {})
        return table.pop(key, None) is not None

    async def keys(self) -> tp.List[str]:
        return list(self._registry._stores.get(self.name, {}))


class AsyncInMemoryRegistry(AsyncBaseRegistry):
    """
    A registry that keeps every store in process memory.

    Nothing survives the process; useful for tests and short-lived agents.
    """

    def __init__(self) -> None:
        self._stores: tp.Dict[str, tp.Dict[str, bytes]] = {}

    async def open(self, name: str) -> AsyncInMemoryStore:
        self._stores.setdefault(name, {})
        return AsyncInMemoryStore(name, self)

    async def has(self, name: str) -> bool:
        return name in self._stores

    async def delete(self, name: str) -> bool:
        return self._stores.pop(name, None) is not None

    async def keys(self) -> tp.List[str]:
        return list(self._stores)

    async def entry_count(self, name: str) -> int:
        return len(self._stores.get(name, {}))
