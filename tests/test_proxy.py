from datetime import datetime
from typing import AsyncIterator, Optional
from zoneinfo import ZoneInfo

import pytest
from inline_snapshot import snapshot
from time_machine import travel

from hearth import (
    AsyncInMemoryRegistry,
    AsyncOfflineProxy,
    EngineConfig,
    Headers,
    NetworkError,
    Request,
    Response,
    StoreError,
)
from hearth._core.models import Entry
from hearth._storages._memory import AsyncInMemoryStore
from tests.conftest import ORIGIN, FakeNetwork


def get(url: str, accept: Optional[str] = None, **metadata) -> Request:
    if url.startswith("/"):
        url = f"{ORIGIN}{url}"
    headers = Headers({"Accept": accept}) if accept else Headers({})
    return Request(method="GET", url=url, headers=headers, metadata=metadata)


async def body_of(response: Response) -> bytes:
    return await response.aread()


@pytest.fixture()
async def proxy(config: EngineConfig, network: FakeNetwork) -> AsyncOfflineProxy:
    proxy = AsyncOfflineProxy(request_sender=network, config=config)
    await proxy.on_install()
    await proxy.on_activate()
    return proxy


class BrokenStore(AsyncInMemoryStore):
    def __init__(self, name: str, registry: "BrokenRegistry") -> None:
        super().__init__(name, registry)
        self.owner = registry

    async def match(self, key: str) -> Optional[Entry]:
        if self.owner.broken:
            raise StoreError("database is locked")
        return await super().match(key)

    async def put(self, key: str, request: Request, response: Response) -> Entry:
        if self.owner.broken:
            raise StoreError("database is locked")
        return await super().put(key, request, response)


class BrokenRegistry(AsyncInMemoryRegistry):
    def __init__(self) -> None:
        super().__init__()
        self.broken = False

    async def open(self, name: str) -> BrokenStore:
        await super().open(name)
        return BrokenStore(name, self)


@pytest.mark.anyio
async def test_inactive_engine_goes_to_network(config: EngineConfig, network: FakeNetwork):
    proxy = AsyncOfflineProxy(request_sender=network, config=config)
    await proxy.on_install()
    network.online = False

    with pytest.raises(NetworkError):
        await proxy.handle_request(get("/app.css"))


@pytest.mark.anyio
async def test_bypass(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.online = False

    with pytest.raises(NetworkError):
        await proxy.handle_request(get("/app.css", hearth_bypass=True))


@pytest.mark.anyio
@travel(datetime(2024, 1, 1, 0, 0, 0, tzinfo=ZoneInfo("UTC")), tick=False)
async def test_static_asset_from_cache(config: EngineConfig, network: FakeNetwork):
    proxy = AsyncOfflineProxy(request_sender=network, config=config)
    await proxy.on_install()
    await proxy.on_activate()
    network.online = False

    response = await proxy.handle_request(get("/app.css"))

    assert response.status_code == 200
    assert await body_of(response) == b"body {}"
    assert response.headers["Content-Type"] == "text/css"
    assert response.metadata == {
        "hearth_category": "static-asset",
        "hearth_strategy": "stale-while-revalidate",
        "hearth_from_cache": True,
        "hearth_stored": False,
        "hearth_synthesized": False,
        "hearth_created_at": 1704067200.0,
    }


@pytest.mark.anyio
async def test_stale_hit_without_background_runner(
    proxy: AsyncOfflineProxy, network: FakeNetwork, caplog: pytest.LogCaptureFixture
):
    calls = len(network.calls)

    with caplog.at_level("DEBUG", logger="hearth.proxy"):
        response = await proxy.handle_request(get("/app.css"))

    assert response.metadata["hearth_from_cache"] is True
    assert len(network.calls) == calls
    assert caplog.messages == snapshot(
        [
            "Handling GET https://example.com/app.css as static-asset",
            "Handling strategy: stale-while-revalidate",
            "Found cached response, refreshing it in the background",
            "No background runner, not refreshing https://example.com/app.css",
        ]
    )


@pytest.mark.anyio
async def test_stale_while_revalidate_miss(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route(f"{ORIGIN}/img/logo.png", b"PNG")

    response = await proxy.handle_request(get("/img/logo.png"))

    assert await body_of(response) == b"PNG"
    assert response.metadata["hearth_from_cache"] is False
    assert response.metadata["hearth_stored"] is True

    network.online = False
    cached = await proxy.handle_request(get("/img/logo.png"))

    assert await body_of(cached) == b"PNG"
    assert cached.metadata["hearth_from_cache"] is True


@pytest.mark.anyio
async def test_stale_while_revalidate_offline_miss(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.online = False

    response = await proxy.handle_request(get("/img/unknown.png"))

    assert response.status_code == 200
    assert b"You're Offline" in await body_of(response)
    assert response.metadata["hearth_synthesized"] is True
    assert response.metadata["hearth_category"] == "static-asset"


@pytest.mark.anyio
async def test_error_responses_are_not_stored(proxy: AsyncOfflineProxy, network: FakeNetwork):
    response = await proxy.handle_request(get("/missing.css"))

    assert response.status_code == 404
    assert response.metadata["hearth_stored"] is False
    assert await proxy.registry.entry_count("app-v1-static") == 3


@pytest.mark.anyio
async def test_content_document_is_cache_first(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route(f"{ORIGIN}/units/unit-7.html", b"<h1>Unit 7, v1</h1>")
    first = await proxy.handle_request(get("/units/unit-7.html", accept="text/html"))
    network.route(f"{ORIGIN}/units/unit-7.html", b"<h1>Unit 7, v2</h1>")
    calls = len(network.calls)

    second = await proxy.handle_request(get("/units/unit-7.html", accept="text/html"))

    assert first.metadata["hearth_stored"] is True
    assert await body_of(second) == b"<h1>Unit 7, v1</h1>"
    assert second.metadata["hearth_from_cache"] is True
    assert len(network.calls) == calls
    assert await proxy.registry.entry_count("app-v1-dynamic") == 1


@pytest.mark.anyio
async def test_content_document_offline_page(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.online = False

    response = await proxy.handle_request(get("/units/unit-7.html", accept="text/html"))

    body = (await body_of(response)).decode("utf-8")
    assert response.status_code == 200
    assert response.headers["Content-Type"] == "text/html"
    assert "Unit 7" in body
    assert 'href="/units/"' in body
    assert response.metadata["hearth_category"] == "content-document"
    assert response.metadata["hearth_synthesized"] is True


@pytest.mark.anyio
async def test_navigation_is_network_first(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route(f"{ORIGIN}/about", b"<h1>about v1</h1>", headers={"Content-Type": "text/html"})
    await proxy.handle_request(get("/about", accept="text/html"))
    network.route(f"{ORIGIN}/about", b"<h1>about v2</h1>", headers={"Content-Type": "text/html"})

    fresh = await proxy.handle_request(get("/about", accept="text/html"))

    assert await body_of(fresh) == b"<h1>about v2</h1>"
    assert fresh.metadata["hearth_from_cache"] is False
    assert await proxy.registry.entry_count("app-v1-static") == 4

    network.online = False
    cached = await proxy.handle_request(get("/about", accept="text/html"))

    assert await body_of(cached) == b"<h1>about v2</h1>"
    assert cached.metadata["hearth_from_cache"] is True


@pytest.mark.anyio
async def test_navigation_error_status_uses_cache(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route(f"{ORIGIN}/about", b"<h1>about</h1>")
    await proxy.handle_request(get("/about", accept="text/html"))
    network.route(f"{ORIGIN}/about", b"maintenance", status_code=503)

    response = await proxy.handle_request(get("/about", accept="text/html"))

    assert response.status_code == 200
    assert await body_of(response) == b"<h1>about</h1>"


@pytest.mark.anyio
async def test_navigation_failure_serves_not_found_document(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route(f"{ORIGIN}/gone", b"boom", status_code=500)

    response = await proxy.handle_request(get("/gone", hearth_mode="navigate"))

    assert await body_of(response) == b"<h1>not here</h1>"
    assert response.metadata["hearth_category"] == "navigation-document"
    assert response.metadata["hearth_from_cache"] is True


@pytest.mark.anyio
async def test_navigation_without_not_found_document(network: FakeNetwork):
    config = EngineConfig(origin=ORIGIN, version="1", static_assets=["/"])
    proxy = AsyncOfflineProxy(request_sender=network, config=config)
    await proxy.on_install()
    await proxy.on_activate()
    network.online = False

    response = await proxy.handle_request(get("/about", accept="text/html"))

    assert b"You're Offline" in await body_of(response)
    assert response.metadata["hearth_synthesized"] is True


@pytest.mark.anyio
async def test_allowed_external_propagates_failure(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.online = False

    with pytest.raises(NetworkError, match="offline"):
        await proxy.handle_request(get("https://cdn.example.net/fonts?family=Inter"))


@pytest.mark.anyio
async def test_allowed_external_is_cache_first(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route("https://cdn.example.net/fonts?family=Inter", b"@font-face {}")
    await proxy.handle_request(get("https://cdn.example.net/fonts?family=Inter"))
    network.online = False

    response = await proxy.handle_request(get("https://cdn.example.net/fonts?family=Inter"))

    assert await body_of(response) == b"@font-face {}"
    assert response.metadata["hearth_category"] == "allowed-external"
    assert response.metadata["hearth_strategy"] == "cache-first"


@pytest.mark.anyio
async def test_dynamic_other_is_network_first(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.route(f"{ORIGIN}/api/progress", b'{"done": 1}')
    await proxy.handle_request(get("/api/progress"))
    network.route(f"{ORIGIN}/api/progress", b"oops", status_code=500)

    error = await proxy.handle_request(get("/api/progress"))

    assert error.status_code == 500
    assert error.metadata["hearth_stored"] is False

    network.online = False
    cached = await proxy.handle_request(get("/api/progress"))

    assert await body_of(cached) == b'{"done": 1}'
    assert cached.metadata["hearth_strategy"] == "network-first"


@pytest.mark.anyio
async def test_dynamic_other_offline_miss(proxy: AsyncOfflineProxy, network: FakeNetwork):
    network.online = False

    response = await proxy.handle_request(get("/api/unknown"))

    assert b"You're Offline" in await body_of(response)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "request_",
    [
        Request(method="POST", url=f"{ORIGIN}/api/progress"),
        Request(method="GET", url="https://tracker.example.org/pixel.gif"),
    ],
)
async def test_ignored_requests_pass_through(proxy: AsyncOfflineProxy, network: FakeNetwork, request_: Request):
    network.route(request_.url, b"ok")

    response = await proxy.handle_request(request_)

    assert await body_of(response) == b"ok"
    assert "hearth_category" not in response.metadata

    network.online = False
    with pytest.raises(NetworkError):
        await proxy.handle_request(request_)


@pytest.mark.anyio
async def test_store_failures_are_soft(config: EngineConfig, network: FakeNetwork, caplog: pytest.LogCaptureFixture):
    registry = BrokenRegistry()
    proxy = AsyncOfflineProxy(request_sender=network, config=config, registry=registry)
    await proxy.on_install()
    await proxy.on_activate()
    registry.broken = True

    with caplog.at_level("WARNING", logger="hearth.proxy"):
        online = await proxy.handle_request(get("/app.css"))
        network.online = False
        offline = await proxy.handle_request(get("/app.css"))

    assert await body_of(online) == b"body {}"
    assert online.metadata["hearth_stored"] is False
    assert offline.metadata["hearth_synthesized"] is True
    assert "Could not read 'GET https://example.com/app.css' from app-v1-static: database is locked" in caplog.messages
    assert "Could not store 'GET https://example.com/app.css' in app-v1-static: database is locked" in caplog.messages


@pytest.mark.anyio
async def test_body_failure_falls_back_to_not_found_document(config: EngineConfig, network: FakeNetwork):
    async def broken_stream() -> AsyncIterator[bytes]:
        yield b"<h1>partial"
        raise NetworkError("connection reset")

    async def sender(request: Request) -> Response:
        if request.url == f"{ORIGIN}/about":
            return Response(status_code=200, stream=broken_stream())
        return await network(request)

    proxy = AsyncOfflineProxy(request_sender=sender, config=config)
    await proxy.on_install()
    await proxy.on_activate()

    response = await proxy.handle_request(get("/about", accept="text/html"))

    assert await body_of(response) == b"<h1>not here</h1>"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "url, accept",
    [
        ("/", "text/html"),
        ("/app.css", None),
        ("/fonts/new.woff2", None),
        ("/units/unit-99.html", "text/html"),
        ("/units/", "text/html"),
        ("/api/anything?x=1", "application/json"),
        ("not a url", None),
    ],
)
async def test_offline_always_resolves(proxy: AsyncOfflineProxy, network: FakeNetwork, url: str, accept: Optional[str]):
    network.online = False

    response = await proxy.handle_request(get(url, accept=accept))

    assert response.status_code == 200
    assert await body_of(response)
