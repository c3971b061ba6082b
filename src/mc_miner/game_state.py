"""Last-known player signals collected from the inbound event stream."""

from __future__ import annotations

from mc_miner.adapters.game_connection import HealthEvent, TeleportEvent
from mc_miner.models import HealthStatus, PlayerPose


class GameStateTracker:
    """Holds the latest pose and health.

    Each update replaces an immutable value in one assignment, so readers on
    other tasks see either the old or the new value, never a mix.
    """

    def __init__(self) -> None:
        self._pose = PlayerPose()
        self._health: HealthStatus | None = None

    @property
    def pose(self) -> PlayerPose:
        return self._pose

    @property
    def health(self) -> HealthStatus | None:
        return self._health

    def apply_teleport(self, event: TeleportEvent) -> PlayerPose:
        self._pose = PlayerPose(x=event.x, y=event.y, z=event.z, yaw=event.yaw, pitch=event.pitch)
        return self._pose

    def apply_health(self, event: HealthEvent) -> HealthStatus:
        self._health = HealthStatus(health=event.health, food=event.food, saturation=event.saturation)
        return self._health
