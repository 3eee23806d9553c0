#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.10"
# dependencies = [
#     "hearth[httpx]",
# ]
#
# [tool.uv.sources]
# hearth = { path = "../", editable = true }
# ///

import asyncio
from typing import cast

import httpx

from hearth import EngineConfig, ResponseMetadata
from hearth.httpx import AsyncOfflineClient

ORIGIN = "https://example.com"


async def fetch_and_print(client: AsyncOfflineClient, url: str) -> None:
    print(f"\n➡ Sending request to {url}...")
    response = await client.get(url, headers={"Accept": "text/html"})
    meta = cast(ResponseMetadata, response.extensions)

    print(f"📂 Category: {meta.get('hearth_category')}")
    print(f"🔄 From Cache: {meta.get('hearth_from_cache')}")
    print(f"🚀 Was Stored: {meta.get('hearth_stored')}")
    print(f"📴 Offline Page: {meta.get('hearth_synthesized')}")


async def main() -> None:
    online = True

    def network(request: httpx.Request) -> httpx.Response:
        if not online:
            raise httpx.ConnectError("offline", request=request)
        return httpx.Response(200, html=f"<h1>{request.url.path}</h1>")

    config = EngineConfig(origin=ORIGIN, version="1", static_assets=["/", "/404.html"], not_found_path="/404.html")
    async with AsyncOfflineClient(transport=httpx.MockTransport(network), config=config) as client:
        await fetch_and_print(client, f"{ORIGIN}/")
        online = False
        await fetch_and_print(client, f"{ORIGIN}/")
        await fetch_and_print(client, f"{ORIGIN}/units/unit-7.html")


if __name__ == "__main__":
    asyncio.run(main())
