from __future__ import annotations

from typing import Any, Mapping, Optional, cast

import msgpack

from hearth._core._headers import Headers
from hearth._core.models import Entry, EntryMeta, Request


def filter_out_hearth_metadata(data: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if not k.startswith("hearth_")}


def pack(value: Entry, /) -> bytes:
    return cast(
        bytes,
        msgpack.packb(
            {
                "key": value.key,
                "request": {
                    "method": value.request.method,
                    "url": value.request.url,
                    "headers": value.request.headers._headers,
                    "extra": filter_out_hearth_metadata(value.request.metadata),
                },
                "response": {
                    "status_code": value.status_code,
                    "headers": value.headers._headers,
                    "body": value.body,
                },
                "meta": {
                    "created_at": value.meta.created_at,
                },
            },
            use_bin_type=True,
        ),
    )


def unpack(value: Optional[bytes], /) -> Optional[Entry]:
    if value is None:
        return None
    data = msgpack.unpackb(value, raw=False)
    return Entry(
        key=data["key"],
        request=Request(
            method=data["request"]["method"],
            url=data["request"]["url"],
            headers=Headers(data["request"]["headers"]),
            metadata=data["request"]["extra"],
        ),
        status_code=data["response"]["status_code"],
        headers=Headers(data["response"]["headers"]),
        body=data["response"]["body"],
        meta=EntryMeta(created_at=data["meta"]["created_at"]),
    )
