"""CLI-side builders and report formatting."""

from __future__ import annotations

from mc_miner.adapters import JoinConnector, MinecraftStatusPinger, OfflineLoginConnector, StatusPinger
from mc_miner.config import ActiveProtocol, Settings
from mc_miner.negotiation import (
    HandshakeTrialRunner,
    NegotiationController,
    NegotiationExhaustedError,
    NegotiationStore,
    VersionProbe,
)


def build_negotiation_controller(
    settings: Settings,
    active_protocol: ActiveProtocol,
    *,
    address: str | None = None,
    pinger: StatusPinger | None = None,
    connector: JoinConnector | None = None,
) -> NegotiationController:
    target = address or settings.server_address
    probe = VersionProbe(
        pinger or MinecraftStatusPinger(timeout_seconds=settings.connect_timeout_seconds),
        defaults=settings.protocol_candidates,
        window_radius=settings.candidate_window,
    )
    trial_runner = HandshakeTrialRunner(
        connector
        or OfflineLoginConnector(username=settings.username, connect_timeout_seconds=settings.connect_timeout_seconds),
        active_protocol,
        address=target,
        join_timeout_seconds=settings.join_timeout_seconds,
    )
    return NegotiationController(
        address=target,
        probe=probe,
        trial_runner=trial_runner,
        store=NegotiationStore(settings.state_dir),
        active_protocol=active_protocol,
    )


def remediation_lines(error: NegotiationExhaustedError, settings: Settings) -> list[str]:
    lines = [f"Could not find a protocol version accepted by {error.server}."]
    if error.tried:
        lines.append(f"Tried: {', '.join(str(candidate) for candidate in error.tried)}")
    if error.reported is not None:
        name = f" ({error.version_name})" if error.version_name else ""
        lines.append(f"The server reports protocol {error.reported}{name}.")
        lines.append(
            f"Widen the window around it, e.g. MC_MINER_CANDIDATE_WINDOW={settings.candidate_window + 3}, "
            "then rerun with --force."
        )
    else:
        lines.append("The server did not answer the status ping; check that it is running and reachable.")
        lines.append(
            "Add candidates with MC_MINER_PROTOCOL_CANDIDATES='[...]' (JSON list), then rerun with --force."
        )
    return lines


def resolve_session_protocol(settings: Settings, address: str, override: int | None = None) -> int | None:
    """Protocol for a session: explicit override, else the negotiated record for ``address``."""
    if override is not None:
        return override
    record = NegotiationStore(settings.state_dir).load_record()
    if record is not None and record.server == address:
        return record.protocol_version
    return None
