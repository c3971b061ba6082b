"""Script-driven game connection.

Replays inbound events from a JSON Lines script and records every outbound
action. Used for dry runs of a session and in tests; a live play-state
connection plugs in through the same ``GameConnection`` protocol.

Script lines look like::

    {"type": "join"}
    {"type": "teleport", "x": 10.5, "y": 64, "z": -3.2, "yaw": 0, "pitch": 0, "teleport_id": 1}
    {"type": "wait", "seconds": 2.5}
    {"type": "chat", "text": "<Steve> !mine"}
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator

from mc_miner.adapters.game_connection import (
    ChatEvent,
    DeathEvent,
    DisconnectEvent,
    GameConnection,
    GameEvent,
    HealthEvent,
    JoinEvent,
    OutboundAction,
    PlayerDigging,
    SendFailure,
    TeleportEvent,
)
from mc_miner.adapters.wire import pack_position


def parse_event(entry: dict[str, Any]) -> GameEvent:
    kind = entry.get("type")
    if kind == "join":
        return JoinEvent()
    if kind == "teleport":
        return TeleportEvent(
            x=float(entry["x"]),
            y=float(entry["y"]),
            z=float(entry["z"]),
            yaw=float(entry.get("yaw", 0.0)),
            pitch=float(entry.get("pitch", 0.0)),
            teleport_id=int(entry.get("teleport_id", 0)),
        )
    if kind == "chat":
        return ChatEvent(text=str(entry["text"]))
    if kind == "health":
        return HealthEvent(
            health=float(entry["health"]),
            food=int(entry.get("food", 20)),
            saturation=float(entry.get("saturation", 0.0)),
        )
    if kind == "death":
        return DeathEvent()
    if kind == "disconnect":
        return DisconnectEvent(reason=str(entry.get("reason", "")))
    raise ValueError(f"Unknown event type in replay script: {kind!r}")


class ReplayGameConnection(GameConnection):
    """Game connection fed by a list of scripted event entries."""

    def __init__(
        self,
        script: list[dict[str, Any]],
        *,
        hold_open: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        self._script = script
        self._hold_open = hold_open
        self._logger = logger or logging.getLogger("mc_miner.adapters.replay")
        self._closed = asyncio.Event()
        self.sent: list[OutboundAction] = []

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> "ReplayGameConnection":
        script: list[dict[str, Any]] = []
        with Path(path).open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                script.append(json.loads(line))
        return cls(script, **kwargs)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def events(self) -> AsyncIterator[GameEvent]:
        for entry in self._script:
            if self._closed.is_set():
                return
            if entry.get("type") == "wait":
                await self._wait(float(entry["seconds"]))
                continue
            yield parse_event(entry)

        if self._hold_open:
            await self._closed.wait()

    async def send(self, action: OutboundAction) -> None:
        if self._closed.is_set():
            raise SendFailure(f"Connection is closed; dropped {type(action).__name__}")

        self.sent.append(action)
        extra: dict[str, Any] = {"action": type(action).__name__}
        if isinstance(action, PlayerDigging):
            extra["packed_position"] = pack_position(action.position)
        self._logger.debug("action_sent", extra=extra)

    async def close(self) -> None:
        self._closed.set()

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
