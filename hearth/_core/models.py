from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Mapping,
    TypedDict,
    cast,
)

from hearth._core._headers import Headers
from hearth._utils import is_truthy, make_async_iterator

NAVIGATE_MODE = "navigate"


class RequestMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "hearth_" to avoid collisions with user data
    hearth_mode: str | None
    """
    The request mode as a browser would report it. `"navigate"` marks a top-level page load.
    """

    hearth_bypass: bool | None
    """
    When True, the request skips the engine entirely and goes straight to the network.
    """


def extract_metadata_from_headers(
    headers: Mapping[str, str],
) -> RequestMetadata:
    metadata: RequestMetadata = {}
    if "Sec-Fetch-Mode" in headers:
        metadata["hearth_mode"] = headers["Sec-Fetch-Mode"].strip().lower()
    if "X-Hearth-Mode" in headers:
        metadata["hearth_mode"] = headers["X-Hearth-Mode"].strip().lower()
    if "X-Hearth-Bypass" in headers:
        value = is_truthy(headers["X-Hearth-Bypass"])
        if value is not None:
            metadata["hearth_bypass"] = value
    return metadata


@dataclass
class Request:
    method: str
    url: str
    headers: Headers = field(default_factory=lambda: Headers({}))
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: RequestMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_navigation(self) -> bool:
        return self.metadata.get("hearth_mode") == NAVIGATE_MODE

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
            return
        else:
            raise TypeError("Request stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire request body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            raise TypeError("Request stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


class ResponseMetadata(TypedDict, total=False):
    # All the names here should be prefixed with "hearth_" to avoid collisions with user data
    hearth_category: str
    """The category the request was classified into."""

    hearth_strategy: str
    """The caching strategy that produced the response."""

    hearth_from_cache: bool
    """Indicates whether the response was served from a cache store."""

    hearth_stored: bool
    """Indicates whether the response was written into a cache store."""

    hearth_synthesized: bool
    """Indicates whether the response is a generated offline page."""

    hearth_created_at: float
    """Timestamp when the served response was captured into the cache."""


@dataclass
class Response:
    status_code: int
    headers: Headers = field(default_factory=lambda: Headers({}))
    stream: AsyncIterator[bytes] = field(default_factory=lambda: make_async_iterator([]))
    metadata: ResponseMetadata | Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    async def _aiter_stream(self) -> AsyncIterator[bytes]:
        if hasattr(self, "collected_body"):
            yield getattr(self, "collected_body")
            return
        if isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            async for chunk in self.stream:
                yield chunk
        else:
            raise TypeError("Response stream is not an AsyncIterator")

    async def aread(self) -> bytes:
        """
        Asynchronously reads the entire response body without consuming the stream.
        """
        if hasattr(self, "collected_body"):
            return cast(bytes, getattr(self, "collected_body"))

        if not isinstance(self.stream, (AsyncIterator, AsyncIterable)):
            raise TypeError("Response stream is not an AsyncIterator")

        collected = b"".join([chunk async for chunk in self.stream])
        setattr(self, "collected_body", collected)
        self.stream = make_async_iterator([collected])
        return collected


@dataclass
class EntryMeta:
    created_at: float = field(default_factory=time.time)


@dataclass
class Entry:
    """
    A response snapshot kept in a cache store.

    `body` holds the full response content; `response` is rebuilt from it on every read,
    so each caller gets its own stream.
    """

    key: str
    request: Request
    status_code: int
    headers: Headers
    body: bytes
    meta: EntryMeta = field(default_factory=EntryMeta)

    @property
    def response(self) -> Response:
        response = Response(
            status_code=self.status_code,
            headers=Headers(self.headers._headers),
            stream=make_async_iterator([self.body]),
            metadata={},
        )
        setattr(response, "collected_body", self.body)
        return response
