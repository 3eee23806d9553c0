from __future__ import annotations

import logging
import typing as t
from types import TracebackType

import anyio
from anyio.abc import ObjectSendStream, TaskGroup

from hearth._classifier import Category
from hearth._config import EngineConfig
from hearth._control import AsyncControlChannel, ControlReply
from hearth._core.models import Request, Response
from hearth._exceptions import InstallError
from hearth._lifecycle import RequestSender
from hearth._policies import DEFAULT_POLICY, PolicyRule
from hearth._proxy import AsyncOfflineProxy
from hearth._storages._base import AsyncBaseRegistry
from hearth._storages._memory import AsyncInMemoryRegistry

logger = logging.getLogger("hearth.host")

__all__ = ("AsyncOfflineHost",)


class AsyncOfflineHost:
    """
    Runs engine versions against one registry, the way a browser runs service workers.

    At most one version is active (it answers requests) and at most one is waiting
    (installed, not yet in control). A new version waits until `activate_waiting` is
    called, unless no version is active yet or its config sets ``skip_waiting``.

    Background work (stale-while-revalidate refreshes) runs in a task group owned by the
    host, so use it as an async context manager; leaving the context waits for pending
    refreshes. Outside of it, refreshes are skipped.

    Example:
        ```python
        async with AsyncOfflineHost(send) as host:
            await host.install(EngineConfig(origin="https://example.com", version="1"))
            response = await host.handle_request(Request("GET", "https://example.com/"))
        ```
    """

    def __init__(
        self,
        request_sender: RequestSender,
        registry: AsyncBaseRegistry | None = None,
        policy: t.Mapping[Category, PolicyRule] | None = None,
    ) -> None:
        self.send_request = request_sender
        self.registry = registry if registry is not None else AsyncInMemoryRegistry()
        self.policy = policy if policy is not None else DEFAULT_POLICY
        self.control = AsyncControlChannel(self)
        self._active: AsyncOfflineProxy | None = None
        self._waiting: AsyncOfflineProxy | None = None
        self._task_group: TaskGroup | None = None

    @property
    def active(self) -> AsyncOfflineProxy | None:
        return self._active

    @property
    def waiting(self) -> AsyncOfflineProxy | None:
        return self._waiting

    async def __aenter__(self) -> "AsyncOfflineHost":
        if self._task_group is not None:
            raise RuntimeError("The host is already running")
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: t.Optional[t.Type[BaseException]] = None,
        exc_value: t.Optional[BaseException] = None,
        traceback: t.Optional[TracebackType] = None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        if task_group is not None:
            await task_group.__aexit__(exc_type, exc_value, traceback)

    def start_background(self, func: t.Callable[..., t.Awaitable[t.Any]], *args: t.Any) -> None:
        if self._task_group is None:
            logger.debug("Host is not running, skipping background work")
            return
        self._task_group.start_soon(func, *args)

    async def install(self, config: EngineConfig) -> AsyncOfflineProxy | None:
        """
        Install a new version and activate it when nothing else is in control.

        Returns the installed engine, or None when its install failed; the version that
        was active before keeps serving in that case.
        """
        proxy = AsyncOfflineProxy(
            request_sender=self.send_request,
            config=config,
            registry=self.registry,
            policy=self.policy,
            spawn=self.start_background,
        )
        try:
            await proxy.on_install()
        except InstallError as exc:
            logger.error(f"Install of version {config.version} failed: {exc}")
            return None

        if self._waiting is not None:
            logger.info(f"Version {self._waiting.version} is replaced by {config.version} before activation")
            self._waiting.lifecycle.retire()
        self._waiting = proxy

        if self._active is None or config.skip_waiting:
            await self.activate_waiting()
        return proxy

    async def activate_waiting(self) -> bool:
        """Activate the waiting version, if there is one. Returns whether one was activated."""
        waiting = self._waiting
        if waiting is None:
            logger.debug("No waiting version to activate")
            return False

        self._waiting = None
        await waiting.on_activate()
        previous, self._active = self._active, waiting
        if previous is not None:
            previous.lifecycle.retire()
        return True

    async def handle_request(self, request: Request) -> Response:
        active = self._active
        if active is None:
            logger.debug("No active version, sending request to the network")
            return await self.send_request(request)
        return await active.handle_request(request)

    async def post_message(self, message: t.Any, reply_to: ObjectSendStream[ControlReply]) -> None:
        """Handle a control message and send exactly one reply to `reply_to`."""
        await self.control.handle_message(message, reply_to)

    async def request(self, message: t.Any) -> ControlReply:
        """Send a control message and wait for its reply."""
        send_stream, receive_stream = anyio.create_memory_object_stream(1)
        async with send_stream, receive_stream:
            await self.post_message(message, send_stream)
            return t.cast(ControlReply, await receive_stream.receive())

    async def aclose(self) -> None:
        await self.registry.aclose()
