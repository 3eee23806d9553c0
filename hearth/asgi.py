from __future__ import annotations

import json
import logging
import typing as t
from typing import AsyncIterator
from urllib.parse import urlsplit

from hearth._config import EngineConfig
from hearth._core._headers import Headers
from hearth._core.models import Request, Response, extract_metadata_from_headers
from hearth._exceptions import NetworkError
from hearth._host import AsyncOfflineHost
from hearth._storages._base import AsyncBaseRegistry
from hearth._synchronization import AsyncLock
from hearth._utils import filter_mapping, generate_http_date, make_async_iterator

# Configure logger for this module
logger = logging.getLogger(__name__)


class _ASGIScope(t.TypedDict, total=False):
    """ASGI HTTP scope type."""

    type: str
    asgi: dict[str, str]
    http_version: str
    method: str
    scheme: str
    path: str
    raw_path: bytes
    query_string: bytes
    root_path: str
    headers: list[tuple[bytes, bytes]]
    server: tuple[str, int | None] | None
    client: tuple[str, int] | None
    state: dict[str, t.Any]
    extensions: dict[str, t.Any]


_Scope = _ASGIScope
_Receive = t.Callable[[], t.Awaitable[dict[str, t.Any]]]
_Send = t.Callable[[dict[str, t.Any]], t.Awaitable[None]]
_ASGIApp = t.Callable[[_Scope, _Receive, _Send], t.Awaitable[None]]


def _collect_headers(raw_headers: t.Iterable[tuple[bytes, bytes]]) -> dict[str, list[str]]:
    collected: dict[str, list[str]] = {}
    for key, value in raw_headers:
        collected.setdefault(key.decode("latin1").lower(), []).append(value.decode("latin1"))
    return collected


class ASGIOfflineMiddleware:
    """
    ASGI middleware that keeps an application answering when it is unreachable.

    The wrapped application plays the network: when it raises, the engine answers from
    its stores or with an offline page, just as it would for a dropped connection.
    The configured version is installed on the first HTTP request, with the static
    manifest fetched from the application itself.

    Run the application with lifespan support to get background refreshes of
    stale-while-revalidate entries; the engine host lives for the lifespan's duration.

    Args:
        app: The ASGI application to wrap.
        config: The engine configuration to install. Requests are keyed under its `origin`,
            whatever address the server is bound to.
        registry: The registry holding the stores. Defaults to AsyncInMemoryRegistry.
        control_path: When set, POSTing a JSON control message to this path returns the
            control channel's reply as JSON instead of reaching the application.

    Example:
        ```python
        from hearth import EngineConfig
        from hearth.asgi import ASGIOfflineMiddleware

        app = ASGIOfflineMiddleware(
            app=my_asgi_app,
            config=EngineConfig(origin="https://example.com", version="1", static_assets=["/"]),
            control_path="/_hearth/control",
        )
        ```
    """

    def __init__(
        self,
        app: _ASGIApp,
        config: EngineConfig,
        registry: AsyncBaseRegistry | None = None,
        control_path: str | None = None,
    ) -> None:
        self.app = app
        self.config = config
        self.control_path = control_path
        self.host = AsyncOfflineHost(request_sender=self._send_to_app, registry=registry)
        self.registry = self.host.registry
        self._install_lock = AsyncLock()
        self._installed = False

        logger.info(
            "Initialized ASGIOfflineMiddleware with registry=%s, version=%s",
            type(self.registry).__name__,
            config.version,
        )

    async def __call__(self, scope: _Scope, receive: _Receive, send: _Send) -> None:
        """
        Handle an ASGI request.

        Args:
            scope: The ASGI scope dictionary.
            receive: The ASGI receive callable.
            send: The ASGI send callable.
        """
        if scope["type"] == "lifespan":
            logger.debug("Starting engine host for the application lifespan")
            async with self.host:
                await self.app(scope, receive, send)
            return

        if scope["type"] != "http":
            logger.debug("Skipping non-HTTP request: type=%s", scope["type"])
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        path = scope.get("path", "/")

        if self.control_path is not None and path == self.control_path and method == "POST":
            await self._handle_control(receive, send)
            return

        await self._ensure_installed()
        request = self._asgi_to_internal_request(scope, receive)
        logger.debug("Handling request through the engine: method=%s url=%s", method, request.url)
        response = await self.host.handle_request(request)
        logger.info("Request processed: method=%s path=%s status=%d", method, path, response.status_code)
        await self._send_internal_response(response, send)

    async def _ensure_installed(self) -> None:
        if self._installed:
            return
        async with self._install_lock:
            if self._installed:
                return
            self._installed = True
            await self.host.install(self.config)

    async def _handle_control(self, receive: _Receive, send: _Send) -> None:
        body = b""
        while True:
            message = await receive()
            if message["type"] != "http.request":
                break
            body += message.get("body", b"")
            if not message.get("more_body", False):
                break

        try:
            command = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("Rejected control request body: %s", exc)
            status_code, reply = 400, {"success": False, "error": f"Invalid JSON: {exc}"}
        else:
            reply = await self.host.request(command)
            status_code = 200

        content = json.dumps(reply).encode("utf-8")
        await self._send_internal_response(
            Response(
                status_code=status_code,
                headers=Headers({"Content-Type": "application/json", "Content-Length": str(len(content))}),
                stream=make_async_iterator([content]),
                metadata={},
            ),
            send,
        )

    async def _send_to_app(self, request: Request) -> Response:
        """
        Send a request to the wrapped ASGI application and return the response.

        Any exception raised by the application is reported as a `NetworkError`.
        """
        logger.debug("Sending request to wrapped application: url=%s", request.url)
        scope = self._internal_request_to_scope(request)

        body_iterator = request._aiter_stream()
        body_exhausted = False

        async def inner_receive() -> dict[str, t.Any]:
            nonlocal body_exhausted
            if body_exhausted:
                return {"type": "http.disconnect"}
            try:
                chunk = await body_iterator.__anext__()
                return {"type": "http.request", "body": chunk, "more_body": True}
            except StopAsyncIteration:
                body_exhausted = True
                return {"type": "http.request", "body": b"", "more_body": False}

        response_started = False
        status_code = 200
        response_headers: list[tuple[bytes, bytes]] = []
        response_body_chunks: list[bytes] = []

        async def inner_send(message: dict[str, t.Any]) -> None:
            nonlocal response_started, status_code, response_headers
            if message["type"] == "http.response.start":
                response_started = True
                status_code = message["status"]
                response_headers = list(message.get("headers", []))
                logger.debug("Application response started: status=%d", status_code)
            elif message["type"] == "http.response.body":
                body_chunk = message.get("body", b"")
                if body_chunk:
                    response_body_chunks.append(body_chunk)

        try:
            await self.app(scope, inner_receive, inner_send)
        except Exception as e:
            logger.warning("Wrapped application failed: url=%s error=%s", request.url, str(e))
            raise NetworkError(str(e) or type(e).__name__) from e

        if not response_started:
            raise NetworkError(f"Application sent no response for {request.url}")

        async def response_stream() -> AsyncIterator[bytes]:
            for chunk in response_body_chunks:
                yield chunk

        headers = Headers(filter_mapping(_collect_headers(response_headers), ["Transfer-Encoding"]))
        if "date" not in headers:
            headers["Date"] = generate_http_date()

        return Response(
            status_code=status_code,
            headers=headers,
            stream=response_stream(),
            metadata={},
        )

    def _internal_request_to_scope(self, request: Request) -> _Scope:
        parts = urlsplit(request.url)
        scheme = parts.scheme or "http"
        port = parts.port or (443 if scheme == "https" else 80)
        path = parts.path or "/"
        headers = [(key.encode("latin1"), value.encode("latin1")) for key, value in request.headers.multi_items()]
        if "host" not in request.headers:
            headers.append((b"host", parts.netloc.encode("latin1")))
        return _ASGIScope(
            type="http",
            asgi={"version": "3.0", "spec_version": "2.3"},
            http_version="1.1",
            method=request.method,
            scheme=scheme,
            path=path,
            raw_path=path.encode("latin1"),
            query_string=parts.query.encode("latin1"),
            root_path="",
            headers=headers,
            server=(parts.hostname or "localhost", port),
            client=None,
        )

    def _asgi_to_internal_request(self, scope: _Scope, receive: _Receive) -> Request:
        """
        Convert an ASGI HTTP scope to an internal Request object.

        Args:
            scope: The ASGI scope dictionary.
            receive: The ASGI receive callable.

        Returns:
            The internal Request object.
        """
        # Everything reaching the wrapped app is same-origin. scope["server"] is the bind
        # address, not the public origin the stores are keyed by.
        path = scope.get("path", "/")
        query_string = scope.get("query_string", b"")
        if query_string:
            path = f"{path}?{query_string.decode('latin1')}"

        url = f"{self.config.origin.rstrip('/')}{path}"
        headers = Headers(_collect_headers(scope.get("headers", [])))

        async def request_stream() -> AsyncIterator[bytes]:
            while True:
                message = await receive()
                if message["type"] == "http.request":
                    body = message.get("body", b"")
                    if body:
                        yield body
                    if not message.get("more_body", False):
                        break
                elif message["type"] == "http.disconnect":
                    logger.debug("Client disconnected during request body streaming")
                    break

        return Request(
            method=scope.get("method", "GET"),
            url=url,
            headers=headers,
            stream=request_stream(),
            metadata=extract_metadata_from_headers(headers),
        )

    async def _send_internal_response(self, response: Response, send: _Send) -> None:
        """
        Send an internal Response to the ASGI send callable.

        Args:
            response: The internal Response object.
            send: The ASGI send callable.
        """
        headers: list[tuple[bytes, bytes]] = [
            (key.encode("latin1"), value.encode("latin1")) for key, value in response.headers.multi_items()
        ]

        await send(
            {
                "type": "http.response.start",
                "status": response.status_code,
                "headers": headers,
            }
        )

        bytes_sent = 0
        async for chunk in response._aiter_stream():
            await send(
                {
                    "type": "http.response.body",
                    "body": chunk,
                    "more_body": True,
                }
            )
            bytes_sent += len(chunk)

        # Send final empty chunk to signal end
        await send(
            {
                "type": "http.response.body",
                "body": b"",
                "more_body": False,
            }
        )
        logger.debug("Response fully sent: status=%d total_bytes=%d", response.status_code, bytes_sent)

    async def aclose(self) -> None:
        """Close the registry and release resources."""
        logger.info("Closing ASGIOfflineMiddleware and its registry")
        await self.registry.aclose()
