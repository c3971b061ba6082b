"""Chat command classification and dispatch."""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from mc_miner.adapters.game_connection import ChatMessage, SendFailure
from mc_miner.command_runtime import CommandRuntime
from mc_miner.mining import MiningStateMachine, SendAction

FAREWELL_MESSAGE = "Goodbye!"
MINE_ACK_MESSAGE = "Starting mining simulation!"
ME_ACK_MESSAGE = "Moving to you!"


class CommandType(str, Enum):
    STOP = "stop"
    MINE = "mine"
    ME = "me"


@dataclass(slots=True, frozen=True)
class ChatCommand:
    type: CommandType
    text: str


@functools.lru_cache(maxsize=8)
def _command_pattern(marker: str) -> re.Pattern[str]:
    names = "|".join(sorted((command.value for command in CommandType), key=len, reverse=True))
    return re.compile(rf"(?<!\S){re.escape(marker)}({names})(?=$|\s|[.,;:!?])", re.IGNORECASE)


def classify(text: str, marker: str = "!") -> ChatCommand | None:
    """Return the first whole-word command in ``text``; later ones are ignored."""
    match = _command_pattern(marker).search(text)
    if match is None:
        return None
    return ChatCommand(type=CommandType(match.group(1).lower()), text=text)


class CommandDispatcher:
    """Turns chat text into jobs on the command runtime without blocking the reader."""

    def __init__(
        self,
        *,
        mining: MiningStateMachine,
        runtime: CommandRuntime,
        send: SendAction,
        request_shutdown: Callable[[str], None],
        marker: str = "!",
        stop_grace_seconds: float = 1.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._mining = mining
        self._runtime = runtime
        self._send = send
        self._request_shutdown = request_shutdown
        self._marker = marker
        self._stop_grace_seconds = stop_grace_seconds
        self._logger = logger or logging.getLogger("mc_miner.commands")
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def dispatch(self, text: str) -> ChatCommand | None:
        command = classify(text, self._marker)
        if command is None:
            return None
        if self._closed:
            self._logger.info("command_ignored", extra={"command": command.type.value, "reason": "stopping"})
            return None

        self._logger.info("command_received", extra={"command": command.type.value})
        if command.type is CommandType.STOP:
            self._closed = True
            self._mining.begin_shutdown()
            self._runtime.submit("stop", self._stop)
        elif command.type is CommandType.MINE:
            self._runtime.submit("mine", self._mine)
        else:
            self._runtime.submit("me", functools.partial(self._me, command.text))
        return command

    async def _stop(self) -> None:
        await self._say(FAREWELL_MESSAGE)
        await asyncio.sleep(self._stop_grace_seconds)
        self._logger.info("bot_stopped_gracefully")
        self._request_shutdown("stop_command")

    async def _mine(self) -> None:
        await self._say(MINE_ACK_MESSAGE)
        await self._mining.activate()

    async def _me(self, text: str) -> None:
        await self._say(ME_ACK_MESSAGE)
        # TODO: follow the sender once player positions and pathfinding exist.
        self._logger.info("me_command_acknowledged", extra={"chat_text": text})

    async def _say(self, text: str) -> None:
        try:
            await self._send(ChatMessage(text))
        except SendFailure as exc:
            self._logger.warning("chat_send_failed", extra={"chat_text": text, "error": str(exc)})
        else:
            self._logger.info("chat_sent", extra={"chat_text": text})
