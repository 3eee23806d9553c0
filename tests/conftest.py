from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple

import pytest

from hearth import EngineConfig, Headers, NetworkError, Request, Response
from hearth._utils import make_async_iterator

ORIGIN = "https://example.com"


class FakeNetwork:
    """
    Plays the network for an engine: a route table keyed by absolute URL and an on/off switch.

    Unknown URLs answer 404. While offline every request raises `NetworkError`.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Tuple[int, bytes, Dict[str, str]]] = {}
        self.online = True
        self.calls: List[str] = []

    def route(
        self,
        url: str,
        body: bytes = b"",
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.routes[url] = (status_code, body, headers or {"Content-Type": "text/plain"})

    async def __call__(self, request: Request) -> Response:
        self.calls.append(request.url)
        if not self.online:
            raise NetworkError(f"offline: {request.url}")
        if request.url not in self.routes:
            return Response(status_code=404, stream=make_async_iterator([b"not found"]))
        status_code, body, headers = self.routes[request.url]
        return Response(
            status_code=status_code,
            headers=Headers(headers),
            stream=make_async_iterator([body]),
        )


@pytest.fixture()
def network() -> FakeNetwork:
    network = FakeNetwork()
    network.route(f"{ORIGIN}/", b"<h1>home</h1>", headers={"Content-Type": "text/html"})
    network.route(f"{ORIGIN}/app.css", b"body {}", headers={"Content-Type": "text/css"})
    network.route(f"{ORIGIN}/offline.html", b"<h1>not here</h1>", headers={"Content-Type": "text/html"})
    return network


@pytest.fixture()
def config() -> EngineConfig:
    return EngineConfig(
        origin=ORIGIN,
        version="1",
        app_prefix="app",
        static_assets=["/", "/app.css", "/offline.html"],
        allowed_origins=["cdn.example.net"],
        not_found_path="/offline.html",
    )


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)
