from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from mc_miner.adapters import live_minecraft
from mc_miner.adapters.game_connection import IncompatibleVersionError, JoinRejectedError, JoinResult
from mc_miner.adapters.live_minecraft import OfflineLoginConnector
from mc_miner.adapters.wire import ProtocolError
from mc_miner.config import ActiveProtocol, Settings
from mc_miner.models import TrialOutcome
from mc_miner.negotiation.trial import HandshakeTrialRunner


class StubConnector:
    def __init__(self, error: BaseException | None = None, delay: float = 0.0) -> None:
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, int]] = []

    async def join(self, address: str, protocol_version: int) -> JoinResult:
        self.calls.append((address, protocol_version))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return JoinResult(protocol_version=protocol_version, username="MINER")


def _attempt(connector: StubConnector, candidate: int, timeout: float = 1.0) -> tuple[TrialOutcome, str | None, int]:
    active = ActiveProtocol(767)
    runner = HandshakeTrialRunner(connector, active, address="mc.test:25565", join_timeout_seconds=timeout)
    result = asyncio.run(runner.attempt(candidate))
    assert result.candidate == candidate
    return result.outcome, result.detail, active.version


def test_successful_join_sets_active_protocol() -> None:
    connector = StubConnector()

    outcome, detail, active = _attempt(connector, 770)

    assert outcome is TrialOutcome.success
    assert detail is None
    assert active == 770
    assert connector.calls == [("mc.test:25565", 770)]


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (IncompatibleVersionError("Outdated client! Please use 1.21.4"), TrialOutcome.incompatible_client),
        (ConnectionRefusedError("refused"), TrialOutcome.connection_error),
        (ConnectionResetError("reset"), TrialOutcome.connection_error),
        (JoinRejectedError("You are banned"), TrialOutcome.unknown),
        (ProtocolError("Unexpected login packet 0x7f"), TrialOutcome.unknown),
    ],
)
def test_failures_are_classified_not_raised(error: BaseException, expected: TrialOutcome) -> None:
    outcome, detail, _ = _attempt(StubConnector(error=error), 769)

    assert outcome is expected
    assert detail


def test_silent_server_times_out_as_unknown() -> None:
    outcome, detail, _ = _attempt(StubConnector(delay=1.0), 768, timeout=0.01)

    assert outcome is TrialOutcome.unknown
    assert "0.01" in (detail or "")


def test_unexpected_errors_propagate() -> None:
    with pytest.raises(KeyError):
        _attempt(StubConnector(error=KeyError("bug")), 767)


def _hang_on_connect(monkeypatch) -> None:
    async def _open_connection(*args, **kwargs):
        await asyncio.sleep(10)

    monkeypatch.setattr(live_minecraft.asyncio, "open_connection", _open_connection)


def test_default_settings_leave_room_for_connect_timeout() -> None:
    defaults = Settings()

    assert defaults.join_timeout_seconds > defaults.connect_timeout_seconds


def test_join_budget_not_above_connect_budget_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(connect_timeout_seconds=5.0, join_timeout_seconds=5.0)


def test_tcp_connect_timeout_is_connection_error(monkeypatch) -> None:
    _hang_on_connect(monkeypatch)
    defaults = Settings()
    # Same connect/join ratio as the defaults, scaled down.
    scale = 0.02
    connector = OfflineLoginConnector(
        username="MINER",
        connect_timeout_seconds=defaults.connect_timeout_seconds * scale,
    )
    runner = HandshakeTrialRunner(
        connector,
        ActiveProtocol(767),
        address="10.255.255.1:25565",
        join_timeout_seconds=defaults.join_timeout_seconds * scale,
    )

    result = asyncio.run(runner.attempt(767))

    assert result.outcome is TrialOutcome.connection_error
    assert "Timed out" in (result.detail or "")
