from __future__ import annotations

import enum
import logging
import typing as t

import anyio

from hearth._config import EngineConfig, Tier
from hearth._core._headers import Headers
from hearth._core._keys import request_key, resolve_url
from hearth._core.models import Request, Response
from hearth._exceptions import InstallError, LifecycleError, NetworkError, StoreError
from hearth._storages._base import AsyncBaseRegistry, AsyncBaseStore

logger = logging.getLogger("hearth.lifecycle")

__all__ = ("LifecycleManager", "LifecycleState")

RequestSender = t.Callable[[Request], t.Awaitable[Response]]


class LifecycleState(str, enum.Enum):
    PARSED = "parsed"
    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVATING = "activating"
    ACTIVE = "active"
    REDUNDANT = "redundant"


class LifecycleManager:
    """
    Drives one versioned engine instance through install and activation.

    ``PARSED -> INSTALLING -> WAITING -> ACTIVATING -> ACTIVE``; a failed install or a
    newer activated version moves the instance to ``REDUNDANT``.

    Install is all-or-nothing for the static manifest: every path is fetched before
    anything is written, and a Static store this install created is removed again if a
    write fails. Activation deletes every store whose full name is not one of the current
    version's tier names; that is the only eviction there is. A store that cannot be
    deleted is logged and left behind rather than blocking activation.
    """

    def __init__(
        self,
        config: EngineConfig,
        registry: AsyncBaseRegistry,
        request_sender: RequestSender,
    ) -> None:
        self.config = config
        self.registry = registry
        self.send_request = request_sender
        self.state = LifecycleState.PARSED
        # opened by install; request handling never opens stores, so it cannot recreate evicted ones
        self.stores: t.Dict[Tier, AsyncBaseStore] = {}

    @property
    def is_active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    @property
    def is_waiting(self) -> bool:
        return self.state is LifecycleState.WAITING

    def _transition(self, state: LifecycleState) -> None:
        logger.debug(f"Lifecycle {self.config.version}: {self.state.value} -> {state.value}")
        self.state = state

    async def on_install(self) -> None:
        if self.state is not LifecycleState.PARSED:
            raise LifecycleError(f"Cannot install from state {self.state.value!r}")

        self._transition(LifecycleState.INSTALLING)
        logger.info(f"Installing version {self.config.version}")
        try:
            await self._populate_static_store()
            await self._populate_dynamic_store()
        except InstallError:
            self._transition(LifecycleState.REDUNDANT)
            raise
        self._transition(LifecycleState.WAITING)
        logger.info(f"Installed version {self.config.version}")

    async def on_activate(self) -> None:
        if self.state is not LifecycleState.WAITING:
            raise LifecycleError(f"Cannot activate from state {self.state.value!r}")

        self._transition(LifecycleState.ACTIVATING)
        current = set(self.config.current_store_names())
        for name in await self.registry.keys():
            if name not in current:
                logger.info(f"Deleting stale store {name}")
                try:
                    await self.registry.delete(name)
                except StoreError as exc:
                    logger.warning(f"Could not delete stale store {name}: {exc}")
        self._transition(LifecycleState.ACTIVE)
        logger.info(f"Activated version {self.config.version}")

    async def activate_now(self) -> bool:
        """Activate immediately if this instance is waiting. Returns whether it did."""
        if not self.is_waiting:
            return False
        await self.on_activate()
        return True

    def retire(self) -> None:
        self._transition(LifecycleState.REDUNDANT)

    async def _fetch_all(self, urls: t.Sequence[str]) -> t.Tuple[t.Dict[str, Response], t.Dict[str, str]]:
        responses: t.Dict[str, Response] = {}
        failures: t.Dict[str, str] = {}

        async def fetch(url: str) -> None:
            request = Request(method="GET", url=url, headers=Headers({}))
            try:
                response = await self.send_request(request)
                await response.aread()
            except NetworkError as exc:
                failures[url] = str(exc) or type(exc).__name__
                return
            if not response.is_success:
                failures[url] = f"HTTP {response.status_code}"
                return
            responses[url] = response

        async with anyio.create_task_group() as tg:
            for url in urls:
                tg.start_soon(fetch, url)
        return responses, failures

    async def _populate_static_store(self) -> None:
        urls = list(dict.fromkeys(resolve_url(self.config.origin, path) for path in self.config.static_assets))
        logger.debug(f"Caching {len(urls)} static assets")
        responses, failures = await self._fetch_all(urls)
        if failures:
            details = ", ".join(f"{url} ({reason})" for url, reason in sorted(failures.items()))
            raise InstallError(f"Could not fetch static assets: {details}")

        name = self.config.store_name(Tier.STATIC)
        existed = True
        try:
            existed = await self.registry.has(name)
            store = await self.registry.open(name)
            for url in urls:
                request = Request(method="GET", url=url, headers=Headers({}))
                await store.put(request_key(request), request, responses[url])
        except StoreError as exc:
            if not existed:
                try:
                    await self.registry.delete(name)
                except StoreError as cleanup_exc:
                    logger.warning(f"Could not remove the partial static store {name}: {cleanup_exc}")
            raise InstallError(f"Could not write the static store {name}: {exc}") from exc
        self.stores[Tier.STATIC] = store

    async def _populate_dynamic_store(self) -> None:
        urls = list(dict.fromkeys(resolve_url(self.config.origin, url) for url in self.config.external_resources))
        logger.debug(f"Caching {len(urls)} external resources")
        responses, failures = await self._fetch_all(urls)
        for url, reason in sorted(failures.items()):
            logger.warning(f"Could not pre-cache external resource {url}: {reason}")

        try:
            store = await self.registry.open(self.config.store_name(Tier.DYNAMIC))
        except StoreError as exc:
            logger.warning(f"Could not open the dynamic store: {exc}")
            return
        self.stores[Tier.DYNAMIC] = store
        for url in urls:
            if url not in responses:
                continue
            request = Request(method="GET", url=url, headers=Headers({}))
            try:
                await store.put(request_key(request), request, responses[url])
            except StoreError as exc:
                logger.warning(f"Could not store external resource {url}: {exc}")
