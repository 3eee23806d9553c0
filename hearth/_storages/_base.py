from __future__ import annotations

import abc
import typing as tp

from hearth._core.models import Entry, Request, Response


class AsyncBaseStore(abc.ABC):
    """
    One named key to response table.

    Keys are normalized request identities (see `hearth._core._keys.request_key`).
    """

    def __init__(self, name: str) -> None:
        self.name = name

    @abc.abstractmethod
    async def match(self, key: str) -> tp.Optional[Entry]:
        """
        Return the entry stored under `key`, or None.

        Raises:
            StoreError: The store could not be read.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def put(self, key: str, request: Request, response: Response) -> Entry:
        """
        Store a snapshot of `response`, replacing any entry under the same key.

        The response body is read in full; the response stays readable afterwards.

        Raises:
            StoreError: The store was deleted or could not be written.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        raise NotImplementedError()

    @abc.abstractmethod
    async def keys(self) -> tp.List[str]:
        raise NotImplementedError()

    async def count(self) -> int:
        return len(await self.keys())

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class AsyncBaseRegistry(abc.ABC):
    """
    The set of named stores shared by every engine version and every request handler.
    """

    @abc.abstractmethod
    async def open(self, name: str) -> AsyncBaseStore:
        """Return the store called `name`, creating it when missing."""
        raise NotImplementedError()

    @abc.abstractmethod
    async def has(self, name: str) -> bool:
        raise NotImplementedError()

    @abc.abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete the store and all its entries. Returns False when it did not exist."""
        raise NotImplementedError()

    @abc.abstractmethod
    async def keys(self) -> tp.List[str]:
        """Names of all live stores."""
        raise NotImplementedError()

    @abc.abstractmethod
    async def entry_count(self, name: str) -> int:
        """Number of entries in the store called `name`, without creating it."""
        raise NotImplementedError()

    async def aclose(self) -> None:
        pass
