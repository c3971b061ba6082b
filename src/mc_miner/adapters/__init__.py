"""Transport adapters: status ping, login probe, and game connections."""

from .game_connection import (
    ChatEvent,
    ChatMessage,
    ConfirmTeleport,
    DeathEvent,
    DisconnectEvent,
    GameConnection,
    GameEvent,
    HealthEvent,
    IncompatibleVersionError,
    JoinConnector,
    JoinEvent,
    JoinRejectedError,
    JoinResult,
    OutboundAction,
    PlayerDigging,
    Respawn,
    SendFailure,
    ServerUnreachableError,
    StatusPinger,
    SwingArm,
    TeleportEvent,
)
from .live_minecraft import MinecraftStatusPinger, OfflineLoginConnector
from .replay import ReplayGameConnection
from .status import ServerStatus
from .wire import ProtocolError

__all__ = [
    "ChatEvent",
    "ChatMessage",
    "ConfirmTeleport",
    "DeathEvent",
    "DisconnectEvent",
    "GameConnection",
    "GameEvent",
    "HealthEvent",
    "IncompatibleVersionError",
    "JoinConnector",
    "JoinEvent",
    "JoinRejectedError",
    "JoinResult",
    "MinecraftStatusPinger",
    "OfflineLoginConnector",
    "OutboundAction",
    "PlayerDigging",
    "ProtocolError",
    "ReplayGameConnection",
    "Respawn",
    "SendFailure",
    "ServerStatus",
    "ServerUnreachableError",
    "StatusPinger",
    "SwingArm",
    "TeleportEvent",
]
