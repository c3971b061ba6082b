"""CLI entrypoint for mc-miner."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich import print

from mc_miner.adapters import MinecraftStatusPinger, ReplayGameConnection, ServerUnreachableError
from mc_miner.cli import build_negotiation_controller, remediation_lines, resolve_session_protocol
from mc_miner.config import active_protocol, settings
from mc_miner.negotiation import NegotiationExhaustedError, NegotiationStore
from mc_miner.session import SessionController, SessionExit
from mc_miner.telemetry.logging import configure_logging

app = typer.Typer(help="Scripted Minecraft mining client")


@app.callback()
def main(log_level: str = typer.Option(None, help="Override MC_MINER_LOG_LEVEL")) -> None:
    configure_logging(log_level or settings.log_level)


@app.command("show-config")
def show_config() -> None:
    """Show runtime configuration and the negotiated protocol, if any."""
    record = NegotiationStore(settings.state_dir).load_record()
    print(
        {
            "app_name": settings.app_name,
            "server_address": settings.server_address,
            "username": settings.username,
            "active_protocol": active_protocol.version,
            "protocol_candidates": settings.protocol_candidates,
            "candidate_window": settings.candidate_window,
            "state_dir": str(settings.state_dir),
            "negotiated": record.model_dump(mode="json") if record else None,
        }
    )


@app.command()
def ping(address: str = typer.Argument(None, help="host[:port]; defaults to MC_MINER_SERVER_ADDRESS")) -> None:
    """Ping a server and report its version, protocol and flavour."""
    target = address or settings.server_address
    pinger = MinecraftStatusPinger(timeout_seconds=settings.connect_timeout_seconds)
    try:
        status = asyncio.run(pinger.ping(target))
    except ServerUnreachableError as exc:
        print({"error": f"Failed to ping server: {exc}"})
        raise typer.Exit(code=1)

    print(status.summary_line())
    print(
        {
            "version": status.version.name,
            "protocol": status.version.protocol,
            "motd": status.motd,
            "players": f"{status.players.online}/{status.players.max}",
            "sample_players": [player.name for player in status.players.sample],
            "latency_ms": round(status.latency_ms or 0.0, 1),
            "flavour": status.flavour,
        }
    )


@app.command()
def negotiate(
    force: bool = typer.Option(False, help="Ignore the saved version, clear the ledger and retry every candidate"),
    clean: bool = typer.Option(False, help="Discard saved version and ledger and restore the default protocol"),
    address: str = typer.Option(None, help="host[:port]; defaults to MC_MINER_SERVER_ADDRESS"),
) -> None:
    """Find the protocol version the server accepts and save it."""
    controller = build_negotiation_controller(settings, active_protocol, address=address)
    if clean:
        controller.clean()
        print({"cleaned": str(settings.state_dir), "active_protocol": active_protocol.version})
        return

    try:
        result = asyncio.run(controller.negotiate(force=force))
    except NegotiationExhaustedError as exc:
        for line in remediation_lines(exc, settings):
            print(f"[red]{line}[/red]")
        raise typer.Exit(code=1)

    print(
        {
            "protocol_version": result.protocol_version,
            "short_circuited": result.short_circuited,
            "attempts": [f"{entry.candidate}: {entry.outcome.value}" for entry in result.attempts],
        }
    )


@app.command()
def run(
    replay: Path = typer.Option(..., exists=True, dir_okay=False, help="JSON Lines script of inbound game events"),
    protocol: int = typer.Option(None, help="Protocol version; defaults to the negotiated one"),
    address: str = typer.Option(None, help="host[:port]; defaults to MC_MINER_SERVER_ADDRESS"),
    hold_open: bool = typer.Option(True, help="Keep the session open after the script ends"),
) -> None:
    """Run a mining session against a scripted event stream."""
    target = address or settings.server_address
    protocol_version = resolve_session_protocol(settings, target, protocol)
    if protocol_version is None:
        print({"error": f"No negotiated protocol for {target}. Run `mc-miner negotiate` or pass --protocol."})
        raise typer.Exit(code=1)
    active_protocol.set(protocol_version)

    async def _run() -> SessionExit:
        connection = ReplayGameConnection.from_file(replay, hold_open=hold_open)
        controller = SessionController(connection=connection, settings=settings, protocol_version=protocol_version)
        return await controller.run()

    exit_reason = asyncio.run(_run())
    print({"session_exit": exit_reason.value})
    if exit_reason is SessionExit.CONNECTION_LOST:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
