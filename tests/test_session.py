from __future__ import annotations

import asyncio
from pathlib import Path

from mc_miner.adapters.game_connection import (
    ChatMessage,
    ConfirmTeleport,
    DiggingStatus,
    PlayerDigging,
    Respawn,
)
from mc_miner.adapters.replay import ReplayGameConnection
from mc_miner.config import Settings
from mc_miner.mining import MiningState
from mc_miner.models import BlockPosition
from mc_miner.session import SessionController, SessionExit


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        state_dir=tmp_path,
        tick_seconds=0.001,
        item_mining_seconds=0,
        basic_mining_seconds=0,
        world_load_delay_seconds=0,
        stop_grace_seconds=0,
    )
    values.update(overrides)
    return Settings(**values)


def _run_session(script: list[dict], settings: Settings, hold_open: bool = True) -> tuple[SessionExit, SessionController, ReplayGameConnection]:
    async def _run() -> tuple[SessionExit, SessionController, ReplayGameConnection]:
        connection = ReplayGameConnection(script, hold_open=hold_open)
        controller = SessionController(connection=connection, settings=settings, protocol_version=767)
        exit_reason = await asyncio.wait_for(controller.run(install_signal_handlers=False), timeout=5)
        return exit_reason, controller, connection

    return asyncio.run(_run())


def test_stop_command_ends_session_gracefully(tmp_path: Path) -> None:
    script = [
        {"type": "teleport", "x": 10.5, "y": 64, "z": -3.2, "teleport_id": 7},
        {"type": "chat", "text": "<Steve> !mine"},
        {"type": "wait", "seconds": 0.05},
        {"type": "chat", "text": "<Steve> !stop"},
        {"type": "chat", "text": "<Steve> !mine"},
    ]

    exit_reason, controller, connection = _run_session(script, _settings(tmp_path, auto_mine_on_join=False))

    chats = [action.text for action in connection.sent if isinstance(action, ChatMessage)]
    assert exit_reason is SessionExit.STOP_COMMAND
    assert ConfirmTeleport(7) in connection.sent
    assert chats.count("Starting mining simulation!") == 1
    assert chats[-1] == "Goodbye!"
    assert controller.mining.state is MiningState.STOPPED
    assert controller.dispatcher.closed is True
    assert controller.runtime.in_flight == 0
    assert connection.closed is True


def test_join_auto_mines_block_in_front(tmp_path: Path) -> None:
    script = [
        {"type": "teleport", "x": 10.5, "y": 64, "z": -3.2, "teleport_id": 1},
        {"type": "join"},
        {"type": "join"},
        {"type": "wait", "seconds": 0.05},
        {"type": "chat", "text": "!stop"},
    ]

    exit_reason, _, connection = _run_session(script, _settings(tmp_path))

    target = BlockPosition(x=10, y=64, z=-3)
    digs = [action for action in connection.sent if isinstance(action, PlayerDigging)]
    assert exit_reason is SessionExit.STOP_COMMAND
    assert digs == [PlayerDigging(DiggingStatus.START, target), PlayerDigging(DiggingStatus.FINISH, target)]


def test_health_and_death_events_are_tracked(tmp_path: Path) -> None:
    script = [
        {"type": "health", "health": 0.0, "food": 17, "saturation": 1.5},
        {"type": "death"},
        {"type": "wait", "seconds": 0.02},
        {"type": "chat", "text": "!stop"},
    ]

    _, controller, connection = _run_session(script, _settings(tmp_path, auto_mine_on_join=False))

    assert controller.game_state.health is not None
    assert controller.game_state.health.food == 17
    assert Respawn() in connection.sent


def test_script_end_without_stop_is_connection_loss(tmp_path: Path) -> None:
    script = [{"type": "chat", "text": "<Steve> hello"}]

    exit_reason, controller, connection = _run_session(script, _settings(tmp_path), hold_open=False)

    assert exit_reason is SessionExit.CONNECTION_LOST
    assert connection.closed is True
    assert controller.runtime.closed is True


def test_disconnect_event_is_connection_loss(tmp_path: Path) -> None:
    script = [{"type": "disconnect", "reason": "Server closed"}, {"type": "chat", "text": "!stop"}]

    exit_reason, _, connection = _run_session(script, _settings(tmp_path))

    assert exit_reason is SessionExit.CONNECTION_LOST
    assert connection.sent == []


def test_signal_shuts_down_through_same_path(tmp_path: Path) -> None:
    async def _run() -> tuple[SessionExit, MiningState, bool]:
        connection = ReplayGameConnection([{"type": "chat", "text": "!mine"}], hold_open=True)
        controller = SessionController(connection=connection, settings=_settings(tmp_path), protocol_version=767)
        session = asyncio.create_task(controller.run(install_signal_handlers=False))
        await asyncio.sleep(0.05)
        controller.request_shutdown(SessionExit.SIGNAL)
        exit_reason = await asyncio.wait_for(session, timeout=5)
        return exit_reason, controller.mining.state, controller.mining.stop_requested

    exit_reason, state, stop_requested = asyncio.run(_run())
    assert exit_reason is SessionExit.SIGNAL
    assert state is MiningState.STOPPED
    assert stop_requested is True


def test_replay_script_file_parsing(tmp_path: Path) -> None:
    script_path = tmp_path / "session.jsonl"
    script_path.write_text(
        '# comment\n\n{"type": "join"}\n{"type": "chat", "text": "!stop"}\n',
        encoding="utf-8",
    )

    settings = _settings(tmp_path, auto_mine_on_join=False)

    async def _run() -> tuple[SessionExit, ReplayGameConnection]:
        connection = ReplayGameConnection.from_file(script_path)
        controller = SessionController(connection=connection, settings=settings, protocol_version=767)
        return await controller.run(install_signal_handlers=False), connection

    exit_reason, connection = asyncio.run(_run())

    assert exit_reason is SessionExit.STOP_COMMAND
    assert connection.sent == [ChatMessage("Goodbye!")]
