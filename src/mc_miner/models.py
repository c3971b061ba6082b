from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class TrialOutcome(str, Enum):
    success = "success"
    incompatible_client = "incompatible_client"
    connection_error = "connection_error"
    unknown = "unknown"

    @property
    def failed(self) -> bool:
        return self is not TrialOutcome.success


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NegotiationRecord(BaseModel):
    """Confirmed protocol version for a server."""

    protocol_version: int = Field(gt=0)
    server: str
    discovered_at: datetime = Field(default_factory=_utcnow)


class AttemptEntry(BaseModel):
    """One ledger line: the classified outcome of trying a candidate."""

    server: str
    candidate: int = Field(gt=0)
    outcome: TrialOutcome
    detail: str | None = None
    attempted_at: datetime = Field(default_factory=_utcnow)


@dataclass(slots=True, frozen=True)
class BlockPosition:
    x: int
    y: int
    z: int


@dataclass(slots=True, frozen=True)
class PlayerPose:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    yaw: float = 0.0
    pitch: float = 0.0

    def block_in_front(self) -> BlockPosition:
        # Always one block along +Z; facing is not taken into account.
        return BlockPosition(x=math.floor(self.x), y=math.floor(self.y), z=math.floor(self.z) + 1)


@dataclass(slots=True, frozen=True)
class HealthStatus:
    health: float
    food: int
    saturation: float
