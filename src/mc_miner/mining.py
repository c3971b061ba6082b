"""Tick-driven mining simulation with durability tracking."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable

from mc_miner.adapters.game_connection import (
    ChatMessage,
    DiggingStatus,
    OutboundAction,
    PlayerDigging,
    SendFailure,
    SwingArm,
)
from mc_miner.clock import SessionClock
from mc_miner.config import Settings
from mc_miner.models import BlockPosition, PlayerPose
from mc_miner.telemetry.logging import LoggingTelemetry, Telemetry

MAX_DURABILITY = 100
BREAK_MESSAGE = "IT BROKEEEEE"

SendAction = Callable[[OutboundAction], Awaitable[None]]
ClockFactory = Callable[[], SessionClock]


class StateCorruptionError(AssertionError):
    """Raised when the mining session breaks its own invariants."""


class MiningState(str, Enum):
    IDLE = "idle"
    ACTIVATING = "activating"
    RUNNING = "running"
    EXHAUSTED = "exhausted"
    STOPPED = "stopped"


@dataclass(slots=True)
class MiningSession:
    tick_count: int = 0
    durability: int = MAX_DURABILITY
    mining_item_slot: int | None = None
    stop_requested: bool = False


@dataclass(slots=True)
class MiningConfig:
    arm_swing_interval: int = 10
    durability_interval: int = 40
    durability_step: int = 5
    item_mining_seconds: float = 0.5
    basic_mining_seconds: float = 1.0
    break_message: str = BREAK_MESSAGE

    @classmethod
    def from_settings(cls, settings: Settings) -> "MiningConfig":
        return cls(
            arm_swing_interval=settings.arm_swing_interval,
            durability_interval=settings.durability_interval,
            durability_step=settings.durability_step,
            item_mining_seconds=settings.item_mining_seconds,
            basic_mining_seconds=settings.basic_mining_seconds,
        )


@dataclass(slots=True, frozen=True)
class TickPlan:
    """Side effects decided for one tick inside the critical section."""

    tick: int
    swing: bool
    durability: int | None
    broke: bool
    target: BlockPosition


class MiningStateMachine:
    """Owns the mining session and turns clock ticks into outbound actions.

    All session reads and writes go through ``self._lock``. Critical sections
    only mutate state; sends and sleeps happen after the lock is released.
    """

    def __init__(
        self,
        send: SendAction,
        *,
        pose_source: Callable[[], PlayerPose],
        clock_factory: ClockFactory,
        config: MiningConfig | None = None,
        telemetry: Telemetry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._send = send
        self._pose_source = pose_source
        self._clock_factory = clock_factory
        self._config = config or MiningConfig()
        self._telemetry = telemetry or LoggingTelemetry()
        self._logger = logger or logging.getLogger("mc_miner.mining")

        self._lock = threading.Lock()
        self._session = MiningSession()
        self._state = MiningState.IDLE
        self._target = self._pose_source().block_in_front()
        self._ticking = False
        self._closed = False
        self._clock: SessionClock | None = None

    @property
    def state(self) -> MiningState:
        with self._lock:
            return self._state

    def snapshot(self) -> MiningSession:
        with self._lock:
            return replace(self._session)

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self._session.stop_requested

    def reset(self) -> bool | None:
        """Start a fresh activation; return True when a new clock has to be started.

        Returns ``None`` without touching the session once shutdown has begun.
        """
        target = self._pose_source().block_in_front()
        with self._lock:
            if self._closed:
                return None
            self._session.tick_count = 0
            self._session.durability = MAX_DURABILITY
            self._session.stop_requested = False
            self._target = target
            self._state = MiningState.ACTIVATING
            start_clock = not self._ticking
            self._ticking = True
        return start_clock

    def advance(self) -> TickPlan | None:
        """Run one tick's state transition; ``None`` means the activation has ended."""
        config = self._config
        with self._lock:
            session = self._session
            if self._state not in (MiningState.ACTIVATING, MiningState.RUNNING):
                self._ticking = False
                return None
            if session.stop_requested:
                self._state = MiningState.STOPPED
                self._ticking = False
                return None

            previous_tick = session.tick_count
            session.tick_count += 1
            tick = session.tick_count
            self._state = MiningState.RUNNING

            durability: int | None = None
            broke = False
            if tick % config.durability_interval == 0:
                session.durability -= config.durability_step
                if session.durability <= 0:
                    session.durability = 0
                    broke = True
                    self._state = MiningState.EXHAUSTED
                    self._ticking = False
                durability = session.durability

            self._check_invariants(previous_tick)
            return TickPlan(
                tick=tick,
                swing=tick % config.arm_swing_interval == 0,
                durability=durability,
                broke=broke,
                target=self._target,
            )

    def request_stop(self) -> None:
        with self._lock:
            self._session.stop_requested = True

    def begin_shutdown(self) -> None:
        """Latch the stop flag and refuse any later activation."""
        with self._lock:
            self._closed = True
            self._session.stop_requested = True

    async def activate(self) -> None:
        start_clock = self.reset()
        if start_clock is None:
            self._logger.info("mining_activation_ignored", extra={"reason": "shutting down"})
            return

        if start_clock:
            self._clock = self._clock_factory()
            self._clock.start(self._on_tick)
        with self._lock:
            if self._state is MiningState.ACTIVATING:
                self._state = MiningState.RUNNING
            target = self._target
        self._logger.info(
            "mining_activated",
            extra={"target": (target.x, target.y, target.z), "new_clock": start_clock},
        )

    async def shutdown(self) -> None:
        """Stop for good: set the stop flag, stop the clock, refuse new activations."""
        self.begin_shutdown()
        if self._clock is not None:
            await self._clock.stop()
        with self._lock:
            if self._state in (MiningState.ACTIVATING, MiningState.RUNNING):
                self._state = MiningState.STOPPED
            self._ticking = False

    async def wait(self) -> None:
        """Wait for the current activation's clock to finish."""
        if self._clock is not None:
            await self._clock.wait()

    async def mine_block_in_front(self) -> None:
        """One-shot dig of the block in front, with bare-hand timing."""
        if self._closed:
            return
        target = self._pose_source().block_in_front()
        self._logger.info("mining_block_in_front", extra={"target": (target.x, target.y, target.z)})
        await self._dig(target, self._config.basic_mining_seconds)

    async def _on_tick(self, clock_tick: int) -> bool:
        plan = self.advance()
        if plan is None:
            self._logger.info("mining_simulation_ended", extra={"state": self.state.value})
            return False

        await self._apply(plan)
        if plan.broke:
            self._logger.info("mining_simulation_ended", extra={"state": MiningState.EXHAUSTED.value})
        return not plan.broke

    async def _apply(self, plan: TickPlan) -> None:
        if plan.swing:
            await self._safe_send(SwingArm())

        if plan.durability is None:
            return

        self._logger.info("mining_progress", extra={"tick": plan.tick, "durability": plan.durability})
        self._telemetry.emit("mining_durability", {"tick": plan.tick, "durability": plan.durability})
        if plan.broke:
            self._logger.warning("tool_broke", extra={"tick": plan.tick})
            await self._safe_send(ChatMessage(self._config.break_message))
        else:
            await self._dig(plan.target, self._config.item_mining_seconds)

    async def _dig(self, target: BlockPosition, hold_seconds: float) -> None:
        if not await self._safe_send(PlayerDigging(DiggingStatus.START, target)):
            return
        await asyncio.sleep(hold_seconds)
        if self.stop_requested:
            return
        if await self._safe_send(PlayerDigging(DiggingStatus.FINISH, target)):
            self._logger.debug("dig_completed", extra={"target": (target.x, target.y, target.z)})

    async def _safe_send(self, action: OutboundAction) -> bool:
        try:
            await self._send(action)
        except SendFailure as exc:
            self._logger.warning("send_failed", extra={"action": type(action).__name__, "error": str(exc)})
            return False
        return True

    def _check_invariants(self, previous_tick: int) -> None:
        session = self._session
        if not 0 <= session.durability <= MAX_DURABILITY:
            raise StateCorruptionError(f"durability out of range: {session.durability}")
        if session.tick_count < 0 or session.tick_count < previous_tick:
            raise StateCorruptionError(f"tick count went from {previous_tick} to {session.tick_count}")
