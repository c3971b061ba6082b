"""Session orchestration: inbound events, mining, commands, and shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from enum import Enum

from mc_miner.adapters.game_connection import (
    ChatEvent,
    ConfirmTeleport,
    DeathEvent,
    DisconnectEvent,
    GameConnection,
    GameEvent,
    HealthEvent,
    JoinEvent,
    OutboundAction,
    Respawn,
    SendFailure,
    TeleportEvent,
)
from mc_miner.clock import SessionClock
from mc_miner.command_runtime import CommandRuntime
from mc_miner.commands import CommandDispatcher
from mc_miner.config import Settings
from mc_miner.game_state import GameStateTracker
from mc_miner.mining import ClockFactory, MiningConfig, MiningStateMachine
from mc_miner.telemetry.logging import Telemetry

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SessionExit(str, Enum):
    STOP_COMMAND = "stop_command"
    SIGNAL = "signal"
    CONNECTION_LOST = "connection_lost"


class SessionController:
    """Owns one joined session from the first inbound event to orderly shutdown."""

    def __init__(
        self,
        *,
        connection: GameConnection,
        settings: Settings,
        protocol_version: int,
        game_state: GameStateTracker | None = None,
        runtime: CommandRuntime | None = None,
        clock_factory: ClockFactory | None = None,
        telemetry: Telemetry | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._connection = connection
        self._settings = settings
        self._protocol_version = protocol_version
        self._game_state = game_state or GameStateTracker()
        self._runtime = runtime or CommandRuntime()
        self._logger = logger or logging.getLogger("mc_miner.session")

        self._mining = MiningStateMachine(
            connection.send,
            pose_source=lambda: self._game_state.pose,
            clock_factory=clock_factory or (lambda: SessionClock(settings.tick_seconds, name="mining-clock")),
            config=MiningConfig.from_settings(settings),
            telemetry=telemetry,
        )
        self._dispatcher = CommandDispatcher(
            mining=self._mining,
            runtime=self._runtime,
            send=connection.send,
            request_shutdown=self.request_shutdown,
            marker=settings.command_marker,
            stop_grace_seconds=settings.stop_grace_seconds,
        )
        self._shutdown = asyncio.Event()
        self._exit_reason: SessionExit | None = None
        self._auto_mined = False

    @property
    def mining(self) -> MiningStateMachine:
        return self._mining

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def runtime(self) -> CommandRuntime:
        return self._runtime

    @property
    def game_state(self) -> GameStateTracker:
        return self._game_state

    def request_shutdown(self, reason: SessionExit | str) -> None:
        """Single shutdown path for signals and the stop command."""
        if self._exit_reason is None:
            self._exit_reason = SessionExit(reason)
            self._logger.info("shutdown_requested", extra={"reason": self._exit_reason.value})
        self._mining.begin_shutdown()
        self._shutdown.set()

    async def run(self, *, install_signal_handlers: bool = True) -> SessionExit:
        loop = asyncio.get_running_loop()
        if install_signal_handlers:
            self._install_signal_handlers(loop)

        self._logger.info("session_started", extra={"protocol_version": self._protocol_version})
        reader = asyncio.create_task(self._read_events(), name="session-reader")
        shutdown_wait = asyncio.create_task(self._shutdown.wait(), name="session-shutdown")
        try:
            await asyncio.wait({reader, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED)
            if reader.done() and not self._shutdown.is_set():
                error = None if reader.cancelled() else reader.exception()
                self._logger.warning(
                    "connection_lost",
                    extra={"error": f"{type(error).__name__}: {error}" if error else None},
                )
                self._exit_reason = SessionExit.CONNECTION_LOST
        finally:
            await self._close(reader, shutdown_wait)
            if install_signal_handlers:
                self._remove_signal_handlers(loop)

        exit_reason = self._exit_reason or SessionExit.CONNECTION_LOST
        self._logger.info("session_ended", extra={"reason": exit_reason.value})
        return exit_reason

    async def _close(self, reader: asyncio.Task[None], shutdown_wait: asyncio.Task[bool]) -> None:
        self._dispatcher.close()
        await self._mining.shutdown()
        for task in (reader, shutdown_wait):
            task.cancel()
        await asyncio.gather(reader, shutdown_wait, return_exceptions=True)
        await self._runtime.drain(timeout=self._settings.stop_grace_seconds)
        await self._connection.close()

    async def _read_events(self) -> None:
        async for event in self._connection.events():
            self.handle_event(event)
            if isinstance(event, DisconnectEvent):
                return

    def handle_event(self, event: GameEvent) -> None:
        """Handle one inbound event; anything slow is handed to the runtime."""
        if isinstance(event, ChatEvent):
            self._logger.info("chat_received", extra={"chat_text": event.text})
            self._dispatcher.dispatch(event.text)
        elif isinstance(event, TeleportEvent):
            pose = self._game_state.apply_teleport(event)
            self._logger.info(
                "teleported",
                extra={"x": pose.x, "y": pose.y, "z": pose.z, "yaw": pose.yaw, "pitch": pose.pitch},
            )
            self._runtime.submit("confirm_teleport", lambda: self._send(ConfirmTeleport(event.teleport_id)))
        elif isinstance(event, JoinEvent):
            self._logger.info("game_started")
            if self._settings.auto_mine_on_join and not self._auto_mined:
                self._auto_mined = True
                self._runtime.submit("auto_mine", self._auto_mine)
        elif isinstance(event, HealthEvent):
            health = self._game_state.apply_health(event)
            self._logger.info(
                "health_changed",
                extra={"health": health.health, "food": health.food, "saturation": health.saturation},
            )
        elif isinstance(event, DeathEvent):
            self._logger.info("player_died")
            self._runtime.submit("respawn", lambda: self._send(Respawn()))
        elif isinstance(event, DisconnectEvent):
            self._logger.warning("disconnected", extra={"reason": event.reason})

    async def _auto_mine(self) -> None:
        await asyncio.sleep(self._settings.world_load_delay_seconds)
        await self._mining.mine_block_in_front()

    async def _send(self, action: OutboundAction) -> None:
        try:
            await self._connection.send(action)
        except SendFailure as exc:
            self._logger.warning("send_failed", extra={"action": type(action).__name__, "error": str(exc)})

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, self.request_shutdown, SessionExit.SIGNAL)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(sig)
