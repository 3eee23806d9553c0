from __future__ import annotations

import logging
import time
import typing as t

from typing_extensions import assert_never

from hearth._classifier import Category, ClassifiedRequest, Classifier
from hearth._config import EngineConfig, Tier
from hearth._core._headers import Headers, accepts_html
from hearth._core._keys import request_key, resolve_url
from hearth._core.models import Entry, Request, Response, ResponseMetadata
from hearth._exceptions import NetworkError, StoreError
from hearth._lifecycle import LifecycleManager, RequestSender
from hearth._offline import parse_document_identifier, synthesize_offline_response
from hearth._policies import DEFAULT_POLICY, Fallback, PolicyRule, Strategy
from hearth._storages._base import AsyncBaseRegistry, AsyncBaseStore
from hearth._storages._memory import AsyncInMemoryRegistry

logger = logging.getLogger("hearth.proxy")

__all__ = ("AsyncOfflineProxy", "BackgroundSpawner")

BackgroundSpawner = t.Callable[..., None]


class AsyncOfflineProxy:
    """
    The request interception engine for one configuration version.

    This class is independent of any specific HTTP library and works only with internal models.
    The network is whatever `request_sender` does; it must raise `NetworkError` when no response
    could be obtained. Every intercepted request is classified, then answered with the strategy
    the policy assigns to its category, and finally with an offline fallback when neither the
    stores nor the network could answer.

    Args:
        request_sender: Callable that sends requests to the network and returns responses.
        config: The configuration this version was built from.
        registry: Registry holding the named stores. Defaults to AsyncInMemoryRegistry.
        policy: Category to rule table. Defaults to DEFAULT_POLICY.
        spawn: Starts a background coroutine as ``spawn(func, *args)``. Without it,
            stale-while-revalidate serves cached responses without refreshing them.
    """

    def __init__(
        self,
        request_sender: RequestSender,
        config: EngineConfig,
        registry: AsyncBaseRegistry | None = None,
        policy: t.Mapping[Category, PolicyRule] | None = None,
        spawn: BackgroundSpawner | None = None,
    ) -> None:
        self.send_request = request_sender
        self.config = config
        self.registry = registry if registry is not None else AsyncInMemoryRegistry()
        self.policy = policy if policy is not None else DEFAULT_POLICY
        self.spawn = spawn
        self.classifier = Classifier(config)
        self.lifecycle = LifecycleManager(config, self.registry, request_sender)

    @property
    def version(self) -> str:
        return self.config.version

    async def on_install(self) -> None:
        await self.lifecycle.on_install()

    async def on_activate(self) -> None:
        await self.lifecycle.on_activate()

    async def handle_request(self, request: Request) -> Response:
        if request.metadata.get("hearth_bypass"):
            logger.debug("Request bypasses the engine")
            return await self.send_request(request)
        if not self.lifecycle.is_active:
            logger.debug(f"Version {self.version} is not active, sending request to the network")
            return await self.send_request(request)

        classified = self.classifier.classify(request)
        rule = self.policy[classified.category]
        logger.debug(f"Handling {classified.method} {classified.url} as {classified.category.value}")
        logger.debug(f"Handling strategy: {rule.strategy.value}")

        try:
            if rule.strategy is Strategy.PASS_THROUGH:
                return await self.send_request(request)
            elif rule.strategy is Strategy.STALE_WHILE_REVALIDATE:
                return await self._stale_while_revalidate(request, classified, rule)
            elif rule.strategy is Strategy.CACHE_FIRST:
                return await self._cache_first(request, classified, rule)
            elif rule.strategy is Strategy.NETWORK_FIRST:
                return await self._network_first(request, classified, rule)
            else:
                assert_never(rule.strategy)
        except (NetworkError, StoreError) as exc:
            if rule.fallback is Fallback.PROPAGATE:
                raise
            logger.warning(f"Strategy {rule.strategy.value} failed for {classified.url}: {exc}")
            return await self._last_resort(request, classified)

    async def _stale_while_revalidate(
        self, request: Request, classified: ClassifiedRequest, rule: PolicyRule
    ) -> Response:
        key = request_key(request)
        entry = await self._match(rule, key)
        if entry is not None:
            logger.debug("Found cached response, refreshing it in the background")
            self._revalidate_in_background(request, classified, rule)
            return self._from_cache(entry, classified, rule)

        try:
            response = await self.send_request(request)
        except NetworkError as exc:
            entry = await self._match(rule, key)
            if entry is not None:
                return self._from_cache(entry, classified, rule)
            return await self._fallback(request, classified, rule, exc)
        return await self._from_network(request, response, classified, rule)

    async def _cache_first(self, request: Request, classified: ClassifiedRequest, rule: PolicyRule) -> Response:
        key = request_key(request)
        entry = await self._match(rule, key)
        if entry is not None:
            logger.debug("Found cached response for the request")
            return self._from_cache(entry, classified, rule)

        try:
            response = await self.send_request(request)
        except NetworkError as exc:
            return await self._fallback(request, classified, rule, exc)
        return await self._from_network(request, response, classified, rule)

    async def _network_first(self, request: Request, classified: ClassifiedRequest, rule: PolicyRule) -> Response:
        try:
            response = await self.send_request(request)
        except NetworkError as exc:
            failure = exc
        else:
            if response.is_success or not rule.error_status_is_failure:
                return await self._from_network(request, response, classified, rule)
            logger.debug(f"Network answered {response.status_code}, trying the cache")
            failure = NetworkError(f"HTTP {response.status_code} for {classified.url}")

        entry = await self._match(rule, request_key(request))
        if entry is not None:
            return self._from_cache(entry, classified, rule)
        return await self._fallback(request, classified, rule, failure)

    async def _fallback(
        self,
        request: Request,
        classified: ClassifiedRequest,
        rule: PolicyRule,
        error: NetworkError,
    ) -> Response:
        logger.debug(f"Falling back to {rule.fallback.value} for {classified.url}")
        if rule.fallback is Fallback.PROPAGATE:
            raise error
        elif rule.fallback is Fallback.GENERIC_PAGE:
            return self._synthesize(Category.DYNAMIC_OTHER, classified, rule)
        elif rule.fallback is Fallback.CONTENT_DOCUMENT_PAGE:
            return self._synthesize(Category.CONTENT_DOCUMENT, classified, rule)
        elif rule.fallback is Fallback.NOT_FOUND_DOCUMENT:
            document = await self._not_found_document(classified, rule)
            if document is not None:
                return document
            return self._synthesize(Category.DYNAMIC_OTHER, classified, rule)
        else:
            assert_never(rule.fallback)

    async def _last_resort(self, request: Request, classified: ClassifiedRequest) -> Response:
        rule = self.policy[classified.category]
        if classified.is_navigation or accepts_html(request.headers):
            document = await self._not_found_document(classified, rule)
            if document is not None:
                return document
        return self._synthesize(Category.DYNAMIC_OTHER, classified, rule)

    async def _not_found_document(self, classified: ClassifiedRequest, rule: PolicyRule) -> Response | None:
        if self.config.not_found_path is None:
            return None
        url = resolve_url(self.config.origin, self.config.not_found_path)
        key = request_key(Request(method="GET", url=url, headers=Headers({})))
        entry = await self._match_in(Tier.STATIC, key)
        if entry is None:
            return None
        return self._from_cache(entry, classified, rule)

    def _synthesize(self, page: Category, classified: ClassifiedRequest, rule: PolicyRule) -> Response:
        identifier = None
        if page is Category.CONTENT_DOCUMENT:
            identifier = parse_document_identifier(classified.url, self.config)
        response = synthesize_offline_response(page, self.config, identifier)
        response.metadata.update(  # type: ignore
            ResponseMetadata(
                hearth_category=classified.category.value,
                hearth_strategy=rule.strategy.value,
            )
        )
        return response

    def _from_cache(self, entry: Entry, classified: ClassifiedRequest, rule: PolicyRule) -> Response:
        response = entry.response
        response.metadata.update(  # type: ignore
            ResponseMetadata(
                hearth_category=classified.category.value,
                hearth_strategy=rule.strategy.value,
                hearth_from_cache=True,
                hearth_stored=False,
                hearth_synthesized=False,
                hearth_created_at=entry.meta.created_at,
            )
        )
        return response

    async def _from_network(
        self,
        request: Request,
        response: Response,
        classified: ClassifiedRequest,
        rule: PolicyRule,
    ) -> Response:
        stored = False
        if response.is_success:
            stored = await self._put(rule, request, response)
        else:
            logger.debug(f"Not storing response with status {response.status_code}")
        response.metadata.update(  # type: ignore
            ResponseMetadata(
                hearth_category=classified.category.value,
                hearth_strategy=rule.strategy.value,
                hearth_from_cache=False,
                hearth_stored=stored,
                hearth_synthesized=False,
                hearth_created_at=time.time(),
            )
        )
        return response

    def _revalidate_in_background(self, request: Request, classified: ClassifiedRequest, rule: PolicyRule) -> None:
        if self.spawn is None:
            logger.debug(f"No background runner, not refreshing {classified.url}")
            return
        refresh = Request(
            method=request.method,
            url=request.url,
            headers=Headers(request.headers._headers),
            metadata=dict(request.metadata),
        )
        self.spawn(self._revalidate, refresh, rule)

    async def _revalidate(self, request: Request, rule: PolicyRule) -> None:
        try:
            response = await self.send_request(request)
            if not response.is_success:
                logger.debug(f"Background update of {request.url} answered {response.status_code}, keeping cache")
                return
            await self._put(rule, request, response)
        except Exception as exc:
            # the caller already has its response; refresh failures end here
            logger.warning(f"Background update of {request.url} failed: {exc!r}")
        else:
            logger.debug(f"Background update of {request.url} finished")

    def _open(self, tier: Tier) -> AsyncBaseStore | None:
        store = self.lifecycle.stores.get(tier)
        if store is None:
            logger.debug(f"Version {self.version} has no open {tier.value} store")
        return store

    async def _match_in(self, tier: Tier, key: str) -> Entry | None:
        store = self._open(tier)
        if store is None:
            return None
        try:
            return await store.match(key)
        except StoreError as exc:
            logger.warning(f"Could not read {key!r} from {store.name}: {exc}")
            return None

    async def _match(self, rule: PolicyRule, key: str) -> Entry | None:
        if rule.tier is None:
            return None
        return await self._match_in(rule.tier, key)

    async def _put(self, rule: PolicyRule, request: Request, response: Response) -> bool:
        if rule.tier is None:
            return False
        store = self._open(rule.tier)
        if store is None:
            return False
        key = request_key(request)
        try:
            await store.put(key, request, response)
        except StoreError as exc:
            logger.warning(f"Could not store {key!r} in {store.name}: {exc}")
            return False
        logger.debug(f"Stored {key!r} in {store.name}")
        return True
