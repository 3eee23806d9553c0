from __future__ import annotations

import logging
import ssl
import typing as t
from types import TracebackType
from typing import (
    AsyncIterable,
    AsyncIterator,
    Union,
    cast,
    overload,
)

from hearth._config import EngineConfig
from hearth._core._headers import Headers
from hearth._core.models import Request, RequestMetadata, Response, extract_metadata_from_headers
from hearth._exceptions import NetworkError
from hearth._host import AsyncOfflineHost
from hearth._proxy import AsyncOfflineProxy
from hearth._storages._base import AsyncBaseRegistry
from hearth._synchronization import AsyncLock
from hearth._utils import filter_mapping, make_async_iterator

try:
    import httpx
    from httpx import RequestNotRead
except ImportError as e:
    raise ImportError(
        "httpx is required to use hearth.httpx module. "
        "Please install hearth with the 'httpx' extra, "
        "e.g., 'pip install hearth[httpx]'."
    ) from e

logger = logging.getLogger("hearth.integrations.httpx")

__all__ = ("AsyncOfflineClient", "AsyncOfflineTransport")

# 128 KB
CHUNK_SIZE = 131072


@overload
def _internal_to_httpx(
    value: Request,
) -> httpx.Request: ...
@overload
def _internal_to_httpx(
    value: Response,
) -> httpx.Response: ...
def _internal_to_httpx(
    value: Union[Request, Response],
) -> Union[httpx.Request, httpx.Response]:
    """
    Convert internal Request/Response to httpx.Request/httpx.Response.
    """
    if isinstance(value, Request):
        return httpx.Request(
            method=value.method,
            url=value.url,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value._aiter_stream()),
            extensions=dict(value.metadata),
        )
    elif isinstance(value, Response):
        return httpx.Response(
            status_code=value.status_code,
            headers=value.headers.multi_items(),
            stream=_IteratorStream(value._aiter_stream()),
            extensions=dict(value.metadata),
        )


@overload
def _httpx_to_internal(
    value: httpx.Request,
) -> Request: ...
@overload
def _httpx_to_internal(
    value: httpx.Response,
) -> Response: ...
def _httpx_to_internal(
    value: Union[httpx.Request, httpx.Response],
) -> Union[Request, Response]:
    """
    Convert httpx.Request/httpx.Response to internal Request/Response.
    """
    collected: t.Dict[str, t.List[str]] = {}
    for key, item in value.headers.multi_items():
        collected.setdefault(key.lower(), []).append(item)
    headers = Headers(filter_mapping(collected, ["Transfer-Encoding"]))
    if isinstance(value, httpx.Request):
        extension_metadata = RequestMetadata(
            hearth_mode=value.extensions.get("hearth_mode"),
            hearth_bypass=value.extensions.get("hearth_bypass"),
        )
        headers_metadata = extract_metadata_from_headers(headers)

        for key, val in extension_metadata.items():
            if key in value.extensions:
                headers_metadata[key] = val  # type: ignore

        try:
            stream = make_async_iterator([value.content])
        except RequestNotRead:
            stream = cast(AsyncIterator[bytes], value.stream)

        return Request(
            method=value.method,
            url=str(value.url),
            headers=headers,
            stream=stream,
            metadata=headers_metadata,
        )
    elif isinstance(value, httpx.Response):
        stream = (
            make_async_iterator([value.content]) if value.is_stream_consumed else value.aiter_raw(chunk_size=CHUNK_SIZE)
        )

        if value.is_stream_consumed and "content-encoding" in value.headers:
            # the decoded body is what we hold, so the encoding and length must describe it
            headers = Headers(
                {
                    **filter_mapping(headers, ["content-encoding"]),
                    "content-length": str(len(value.content)),
                }
            )

        return Response(
            status_code=value.status_code,
            headers=headers,
            stream=stream,
            metadata={},
        )


class _IteratorStream(httpx.AsyncByteStream):
    def __init__(self, iterator: AsyncIterator[bytes]) -> None:
        self.iterator = iterator

    async def __aiter__(self) -> AsyncIterator[bytes]:
        assert isinstance(self.iterator, (AsyncIterator, AsyncIterable))
        async for chunk in self.iterator:
            yield chunk


class AsyncOfflineTransport(httpx.AsyncBaseTransport):
    """
    An httpx transport that answers requests through an offline engine.

    `next_transport` plays the network. When `config` is given, that version is installed
    when the transport is entered (or on the first request otherwise). Responses carry
    the engine's `ResponseMetadata` in their extensions.

    Failures the engine decides to propagate surface as the original httpx exception.
    """

    def __init__(
        self,
        next_transport: httpx.AsyncBaseTransport,
        registry: AsyncBaseRegistry | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.next_transport = next_transport
        self.config = config
        self.host = AsyncOfflineHost(request_sender=self.request_sender, registry=registry)
        self.registry = self.host.registry
        self._install_lock = AsyncLock()
        self._installed = False

    async def __aenter__(self) -> "AsyncOfflineTransport":
        await self.next_transport.__aenter__()
        await self.host.__aenter__()
        await self._ensure_installed()
        return self

    async def __aexit__(
        self,
        exc_type: t.Optional[t.Type[BaseException]] = None,
        exc_value: t.Optional[BaseException] = None,
        traceback: t.Optional[TracebackType] = None,
    ) -> None:
        try:
            await self.host.__aexit__(exc_type, exc_value, traceback)
        finally:
            await self.next_transport.__aexit__(exc_type, exc_value, traceback)
            await self.registry.aclose()

    async def install(self, config: EngineConfig) -> AsyncOfflineProxy | None:
        return await self.host.install(config)

    async def _ensure_installed(self) -> None:
        if self.config is None or self._installed:
            return
        async with self._install_lock:
            if self._installed:
                return
            self._installed = True
            await self.host.install(self.config)

    async def handle_async_request(
        self,
        request: httpx.Request,
    ) -> httpx.Response:
        await self._ensure_installed()
        internal_request = _httpx_to_internal(request)
        try:
            internal_response = await self.host.handle_request(internal_request)
        except NetworkError as exc:
            if isinstance(exc.__cause__, httpx.HTTPError):
                raise exc.__cause__
            raise
        response = _internal_to_httpx(internal_response)
        return response

    async def aclose(self) -> None:
        await self.next_transport.aclose()
        await self.registry.aclose()
        await super().aclose()

    async def request_sender(self, request: Request) -> Response:
        httpx_request = _internal_to_httpx(request)
        try:
            httpx_response = await self.next_transport.handle_async_request(httpx_request)
        except httpx.TransportError as exc:
            logger.debug(f"Network failure for {request.url}: {exc!r}")
            raise NetworkError(str(exc) or type(exc).__name__) from exc
        return _httpx_to_internal(httpx_response)


class AsyncOfflineClient(httpx.AsyncClient):
    """
    An `httpx.AsyncClient` that keeps working offline.

    Accepts the usual client arguments plus `config` (an `EngineConfig`) and `registry`.
    """

    def __init__(self, *args: t.Any, **kwargs: t.Any) -> None:
        self.registry: AsyncBaseRegistry | None = kwargs.pop("registry", None)
        self.config: EngineConfig | None = kwargs.pop("config", None)
        super().__init__(*args, **kwargs)

    def _init_transport(
        self,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
            )

        return AsyncOfflineTransport(
            next_transport=transport,
            registry=self.registry,
            config=self.config,
        )

    def _init_proxy_transport(
        self,
        proxy: httpx.Proxy,
        verify: ssl.SSLContext | str | bool = True,
        cert: t.Union[str, t.Tuple[str, str], t.Tuple[str, str, str], None] = None,
        trust_env: bool = True,
        http1: bool = True,
        http2: bool = False,
        limits: httpx.Limits = httpx.Limits(max_connections=100, max_keepalive_connections=20),
        **kwargs: t.Any,
    ) -> httpx.AsyncBaseTransport:
        return AsyncOfflineTransport(
            next_transport=httpx.AsyncHTTPTransport(
                verify=verify,
                cert=cert,
                trust_env=trust_env,
                http1=http1,
                http2=http2,
                limits=limits,
                proxy=proxy,
            ),
            registry=self.registry,
            config=self.config,
        )
