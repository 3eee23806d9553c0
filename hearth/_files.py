from __future__ import annotations

import os
import typing as tp
import uuid

import anyio


class AsyncFileManager:
    async def write_to(self, path: str, data: bytes) -> None:
        """
        Write `data` to `path` through a temporary file, so readers see either the old
        content or the new content.
        """
        tmp_path = f"{path}.{uuid.uuid4().hex}.tmp"
        async with await anyio.open_file(tmp_path, "wb") as f:
            await f.write(data)
        os.replace(tmp_path, path)

    async def read_from(self, path: str) -> bytes:
        async with await anyio.open_file(path, "rb") as f:
            return tp.cast(bytes, await f.read())
