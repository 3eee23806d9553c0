from __future__ import annotations

import enum
import logging
import typing as t

from anyio.abc import ObjectSendStream
from typing_extensions import assert_never

from hearth._exceptions import ControlChannelError, HearthError

if t.TYPE_CHECKING:  # pragma: no cover
    from hearth._host import AsyncOfflineHost

logger = logging.getLogger("hearth.control")

__all__ = ("AsyncControlChannel", "CommandType", "ControlReply", "parse_command")


class CommandType(str, enum.Enum):
    ACTIVATE_NOW = "ActivateNow"
    DESCRIBE_STORES = "DescribeStores"
    CLEAR_STORES = "ClearStores"


COMMAND_ALIASES: t.Mapping[str, CommandType] = {
    "SKIP_WAITING": CommandType.ACTIVATE_NOW,
    "GET_CACHE_INFO": CommandType.DESCRIBE_STORES,
    "CLEAR_CACHE": CommandType.CLEAR_STORES,
}


ControlReply = t.Dict[str, t.Any]


def parse_command(message: t.Any) -> CommandType:
    if not isinstance(message, t.Mapping):
        raise ControlChannelError(f"Control message must be a mapping, got {type(message).__name__}")
    command = message.get("type")
    if not isinstance(command, str):
        raise ControlChannelError("Control message has no 'type'")
    if command in COMMAND_ALIASES:
        return COMMAND_ALIASES[command]
    try:
        return CommandType(command)
    except ValueError:
        raise ControlChannelError(f"Unknown command {command!r}") from None


class AsyncControlChannel:
    """
    Answers control commands sent to the engine host.

    Every message gets exactly one reply, including malformed and unknown ones, so a
    sender waiting on its reply port never hangs.
    """

    def __init__(self, host: "AsyncOfflineHost") -> None:
        self.host = host

    async def dispatch(self, message: t.Any) -> ControlReply:
        try:
            command = parse_command(message)
        except ControlChannelError as exc:
            logger.warning(f"Rejected control message: {exc}")
            return {"success": False, "error": str(exc)}

        logger.debug(f"Handling command: {command.value}")
        try:
            if command is CommandType.ACTIVATE_NOW:
                await self.host.activate_waiting()
                return {"success": True}
            elif command is CommandType.DESCRIBE_STORES:
                return await self.describe_stores()
            elif command is CommandType.CLEAR_STORES:
                await self.clear_stores()
                return {"success": True}
            else:
                assert_never(command)
        except HearthError as exc:
            logger.error(f"Command {command.value} failed: {exc}")
            return {"success": False, "error": str(exc)}

    async def handle_message(self, message: t.Any, reply_to: ObjectSendStream[ControlReply]) -> None:
        reply = await self.dispatch(message)
        await reply_to.send(reply)

    async def describe_stores(self) -> ControlReply:
        registry = self.host.registry
        names = await registry.keys()
        reply: ControlReply = {"storeCount": len(names)}
        for name in names:
            reply[name] = await registry.entry_count(name)
        return reply

    async def clear_stores(self) -> None:
        registry = self.host.registry
        for name in await registry.keys():
            logger.info(f"Clearing store {name}")
            await registry.delete(name)
