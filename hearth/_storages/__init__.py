from hearth._storages._base import AsyncBaseRegistry as AsyncBaseRegistry, AsyncBaseStore as AsyncBaseStore
from hearth._storages._files import AsyncFileRegistry as AsyncFileRegistry, AsyncFileStore as AsyncFileStore
from hearth._storages._memory import AsyncInMemoryRegistry as AsyncInMemoryRegistry, AsyncInMemoryStore as AsyncInMemoryStore
from hearth._storages._sqlite import AsyncSqliteRegistry as AsyncSqliteRegistry, AsyncSqliteStore as AsyncSqliteStore

__all__ = (
    "AsyncBaseRegistry",
    "AsyncBaseStore",
    "AsyncFileRegistry",
    "AsyncFileStore",
    "AsyncInMemoryRegistry",
    "AsyncInMemoryStore",
    "AsyncSqliteRegistry",
    "AsyncSqliteStore",
)
