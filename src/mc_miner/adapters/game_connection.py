"""Boundary between the bot logic and the server transport."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Protocol, Union

from mc_miner.adapters.status import ServerStatus
from mc_miner.models import BlockPosition


class ServerUnreachableError(ConnectionError):
    """Raised when a status ping gets no usable answer from the server."""


class IncompatibleVersionError(RuntimeError):
    """Raised when the server rejects the protocol version we announced."""


class JoinRejectedError(RuntimeError):
    """Raised when the server ends the login for a reason we do not classify."""


class SendFailure(RuntimeError):
    """Raised when an outbound action could not be written to the connection."""


@dataclass(slots=True)
class JoinResult:
    protocol_version: int
    username: str
    compression_threshold: int | None = None


class StatusPinger(Protocol):
    async def ping(self, address: str) -> ServerStatus:
        """Return the server status or raise ``ServerUnreachableError``."""


class JoinConnector(Protocol):
    async def join(self, address: str, protocol_version: int) -> JoinResult:
        """Log in with ``protocol_version`` and return once the server accepted the client."""


# Inbound game events.


@dataclass(slots=True, frozen=True)
class JoinEvent:
    pass


@dataclass(slots=True, frozen=True)
class TeleportEvent:
    x: float
    y: float
    z: float
    yaw: float
    pitch: float
    teleport_id: int


@dataclass(slots=True, frozen=True)
class ChatEvent:
    text: str


@dataclass(slots=True, frozen=True)
class HealthEvent:
    health: float
    food: int
    saturation: float


@dataclass(slots=True, frozen=True)
class DeathEvent:
    pass


@dataclass(slots=True, frozen=True)
class DisconnectEvent:
    reason: str


GameEvent = Union[JoinEvent, TeleportEvent, ChatEvent, HealthEvent, DeathEvent, DisconnectEvent]


# Outbound actions.


class DiggingStatus(int, Enum):
    START = 0
    CANCEL = 1
    FINISH = 2


class BlockFace(int, Enum):
    BOTTOM = 0
    TOP = 1


@dataclass(slots=True, frozen=True)
class ChatMessage:
    text: str


@dataclass(slots=True, frozen=True)
class SwingArm:
    hand: int = 0


@dataclass(slots=True, frozen=True)
class PlayerDigging:
    status: DiggingStatus
    position: BlockPosition
    face: BlockFace = BlockFace.TOP
    sequence: int = 0


@dataclass(slots=True, frozen=True)
class ConfirmTeleport:
    teleport_id: int


@dataclass(slots=True, frozen=True)
class Respawn:
    pass


OutboundAction = Union[ChatMessage, SwingArm, PlayerDigging, ConfirmTeleport, Respawn]


class GameConnection(Protocol):
    """A joined play-state connection."""

    def events(self) -> AsyncIterator[GameEvent]:
        """Yield inbound events in arrival order until the connection ends."""

    async def send(self, action: OutboundAction) -> None:
        """Write one outbound action; raise ``SendFailure`` if it cannot be written."""

    async def close(self) -> None:
        """Close the connection; further sends fail."""
