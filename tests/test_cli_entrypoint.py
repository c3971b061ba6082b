from __future__ import annotations

import importlib
from pathlib import Path

import pytest

from mc_miner.adapters.game_connection import IncompatibleVersionError, JoinResult
from mc_miner.adapters.status import ServerStatus, StatusVersion
from mc_miner.cli import build_negotiation_controller, remediation_lines, resolve_session_protocol
from mc_miner.config import ActiveProtocol, Settings
from mc_miner.models import NegotiationRecord
from mc_miner.negotiation import NegotiationExhaustedError, NegotiationStore

typer_testing = pytest.importorskip("typer.testing")


class StubPinger:
    async def ping(self, address: str) -> ServerStatus:
        return ServerStatus(version=StatusVersion(name="1.21.4", protocol=769))


class StubConnector:
    def __init__(self, accepted: set[int]) -> None:
        self.accepted = accepted

    async def join(self, address: str, protocol_version: int) -> JoinResult:
        if protocol_version not in self.accepted:
            raise IncompatibleVersionError("Outdated client!")
        return JoinResult(protocol_version=protocol_version, username="MINER")


@pytest.fixture
def cli(monkeypatch, tmp_path: Path):
    module = importlib.import_module("mc_miner.main")
    test_settings = Settings(
        state_dir=tmp_path,
        server_address="mc.test:25565",
        tick_seconds=0.001,
        item_mining_seconds=0,
        basic_mining_seconds=0,
        world_load_delay_seconds=0,
        stop_grace_seconds=0,
    )
    monkeypatch.setattr(module, "settings", test_settings)
    monkeypatch.setattr(module, "active_protocol", ActiveProtocol(test_settings.protocol_version))
    return module, test_settings


def _use_stub_negotiation(monkeypatch, module, accepted: set[int]) -> None:
    def _build(settings, active_protocol, *, address=None):
        return build_negotiation_controller(
            settings,
            active_protocol,
            address=address,
            pinger=StubPinger(),
            connector=StubConnector(accepted),
        )

    monkeypatch.setattr(module, "build_negotiation_controller", _build)


def test_console_entrypoint_exposes_app() -> None:
    module = importlib.import_module("mc_miner.main")

    assert hasattr(module, "app")
    assert module.app is not None


def test_negotiate_saves_confirmed_protocol(cli, monkeypatch) -> None:
    module, settings = cli
    _use_stub_negotiation(monkeypatch, module, accepted={768})

    result = typer_testing.CliRunner().invoke(module.app, ["negotiate"], catch_exceptions=False)

    assert result.exit_code == 0
    assert "768" in result.stdout
    assert NegotiationStore(settings.state_dir).load_record().protocol_version == 768
    assert module.active_protocol.version == 768


def test_negotiate_exhausted_prints_remediation(cli, monkeypatch) -> None:
    module, _ = cli
    _use_stub_negotiation(monkeypatch, module, accepted=set())

    result = typer_testing.CliRunner().invoke(module.app, ["negotiate"], catch_exceptions=False)

    assert result.exit_code == 1
    assert "Could not find a protocol version" in result.stdout
    assert module.active_protocol.version == 767


def test_negotiate_clean_discards_state(cli) -> None:
    module, settings = cli
    store = NegotiationStore(settings.state_dir)
    store.save_record(NegotiationRecord(protocol_version=770, server="mc.test:25565"))
    module.active_protocol.set(770)

    result = typer_testing.CliRunner().invoke(module.app, ["negotiate", "--clean"], catch_exceptions=False)

    assert result.exit_code == 0
    assert store.load_record() is None
    assert module.active_protocol.version == 767


def test_run_requires_negotiated_protocol(cli, tmp_path: Path) -> None:
    module, _ = cli
    script = tmp_path / "script.jsonl"
    script.write_text('{"type": "chat", "text": "!stop"}\n', encoding="utf-8")

    result = typer_testing.CliRunner().invoke(module.app, ["run", "--replay", str(script)], catch_exceptions=False)

    assert result.exit_code == 1
    assert "No negotiated protocol" in result.stdout


def test_run_replay_until_stop_command(cli, tmp_path: Path) -> None:
    module, settings = cli
    NegotiationStore(settings.state_dir).save_record(NegotiationRecord(protocol_version=769, server="mc.test:25565"))
    script = tmp_path / "script.jsonl"
    script.write_text(
        '{"type": "teleport", "x": 0.5, "y": 64, "z": 0.5, "teleport_id": 1}\n'
        '{"type": "join"}\n'
        '{"type": "wait", "seconds": 0.02}\n'
        '{"type": "chat", "text": "<Steve> !stop"}\n',
        encoding="utf-8",
    )

    result = typer_testing.CliRunner().invoke(module.app, ["run", "--replay", str(script)], catch_exceptions=False)

    assert result.exit_code == 0
    assert "stop_command" in result.stdout
    assert module.active_protocol.version == 769


def test_run_replay_ending_early_exits_nonzero(cli, tmp_path: Path) -> None:
    module, _ = cli
    script = tmp_path / "script.jsonl"
    script.write_text('{"type": "chat", "text": "hello"}\n', encoding="utf-8")

    result = typer_testing.CliRunner().invoke(
        module.app,
        ["run", "--replay", str(script), "--protocol", "767", "--no-hold-open"],
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "connection_lost" in result.stdout


def test_remediation_mentions_window_when_server_reported() -> None:
    settings = Settings(candidate_window=2)
    error = NegotiationExhaustedError("mc.test:25565", [769, 768, 770], reported=769, version_name="1.21.4")

    lines = remediation_lines(error, settings)

    assert lines[0] == "Could not find a protocol version accepted by mc.test:25565."
    assert "Tried: 769, 768, 770" in lines
    assert any("MC_MINER_CANDIDATE_WINDOW=5" in line for line in lines)


def test_remediation_without_status_suggests_candidates() -> None:
    error = NegotiationExhaustedError("mc.test:25565", [768], reported=None)

    lines = remediation_lines(error, Settings())

    assert any("MC_MINER_PROTOCOL_CANDIDATES" in line for line in lines)


def test_resolve_session_protocol(tmp_path: Path) -> None:
    settings = Settings(state_dir=tmp_path)
    assert resolve_session_protocol(settings, "mc.test:25565") is None
    assert resolve_session_protocol(settings, "mc.test:25565", override=760) == 760

    NegotiationStore(tmp_path).save_record(NegotiationRecord(protocol_version=769, server="mc.test:25565"))

    assert resolve_session_protocol(settings, "mc.test:25565") == 769
    assert resolve_session_protocol(settings, "other:25565") is None


def test_run_with_unreadable_record_asks_for_negotiation(cli, tmp_path: Path) -> None:
    module, settings = cli
    NegotiationStore(settings.state_dir).record_path.write_text("", encoding="utf-8")
    script = tmp_path / "script.jsonl"
    script.write_text('{"type": "chat", "text": "!stop"}\n', encoding="utf-8")

    result = typer_testing.CliRunner().invoke(module.app, ["run", "--replay", str(script)], catch_exceptions=False)

    assert result.exit_code == 1
    assert "No negotiated protocol" in result.stdout
