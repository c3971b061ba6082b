"""Protocol-version negotiation: probe, trial each candidate, persist the winner."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mc_miner.config import ActiveProtocol
from mc_miner.models import AttemptEntry, NegotiationRecord, TrialOutcome
from mc_miner.negotiation.candidates import VersionProbe
from mc_miner.negotiation.store import NegotiationStore
from mc_miner.negotiation.trial import HandshakeTrialRunner


# One negotiation per process, shared by every controller instance.
_run_in_progress = False


class NegotiationInProgressError(RuntimeError):
    """Raised when a second negotiation run starts while one is active."""


class NegotiationExhaustedError(RuntimeError):
    """Raised when no candidate protocol version was accepted by the server."""

    def __init__(self, server: str, tried: list[int], reported: int | None, version_name: str | None = None) -> None:
        self.server = server
        self.tried = tried
        self.reported = reported
        self.version_name = version_name
        super().__init__(f"No protocol version accepted by {server} (tried {tried or 'nothing'})")


@dataclass(slots=True)
class NegotiationResult:
    protocol_version: int
    short_circuited: bool
    attempts: list[AttemptEntry] = field(default_factory=list)


class NegotiationController:
    """Runs one negotiation at a time against a single server address."""

    def __init__(
        self,
        *,
        address: str,
        probe: VersionProbe,
        trial_runner: HandshakeTrialRunner,
        store: NegotiationStore,
        active_protocol: ActiveProtocol,
        logger: logging.Logger | None = None,
    ) -> None:
        self._address = address
        self._probe = probe
        self._trial_runner = trial_runner
        self._store = store
        self._active_protocol = active_protocol
        self._logger = logger or logging.getLogger("mc_miner.negotiation.controller")

    async def negotiate(self, *, force: bool = False) -> NegotiationResult:
        global _run_in_progress
        if _run_in_progress:
            raise NegotiationInProgressError("A negotiation run is already in progress")

        _run_in_progress = True
        try:
            return await self._negotiate(force=force)
        finally:
            _run_in_progress = False

    def clean(self) -> None:
        """Return to the pre-negotiation condition."""
        self._store.clean()
        self._active_protocol.reset()
        self._logger.info("negotiation_state_cleaned", extra={"state_dir": str(self._store.record_path.parent)})

    async def _negotiate(self, *, force: bool) -> NegotiationResult:
        if force:
            self._store.clear_ledger()
            self._logger.info("negotiation_forced", extra={"server": self._address})
        else:
            record = self._store.load_record()
            if record is not None and record.server == self._address:
                self._active_protocol.set(record.protocol_version)
                self._logger.info(
                    "negotiation_short_circuited",
                    extra={"server": self._address, "protocol_version": record.protocol_version},
                )
                return NegotiationResult(protocol_version=record.protocol_version, short_circuited=True)

        if any(entry.server != self._address for entry in self._store.load_attempts()):
            self._store.clear_ledger()
        failed = self._store.failed_candidates(self._address)
        if failed:
            self._logger.info("negotiation_resumed", extra={"server": self._address, "skipping": sorted(failed)})

        probe = await self._probe.probe(self._address)
        pre_negotiation_version = self._active_protocol.version
        result: NegotiationResult | None = None
        tried: list[int] = []
        try:
            result = await self._run_trials(probe.candidates, failed, tried)
        finally:
            if result is None:
                self._active_protocol.set(pre_negotiation_version)

        if result is not None:
            return result

        self._store.clear_ledger()
        self._logger.error(
            "negotiation_exhausted",
            extra={"server": self._address, "tried": tried, "reported_protocol": probe.reported_protocol},
        )
        raise NegotiationExhaustedError(
            server=self._address,
            tried=tried,
            reported=probe.reported_protocol,
            version_name=probe.status.version.name if probe.status else None,
        )

    async def _run_trials(self, candidates: list[int], failed: set[int], tried: list[int]) -> NegotiationResult | None:
        attempts: list[AttemptEntry] = []
        for candidate in candidates:
            if candidate in failed:
                self._logger.info("candidate_skipped", extra={"server": self._address, "candidate": candidate})
                continue

            trial = await self._trial_runner.attempt(candidate)
            tried.append(candidate)
            entry = AttemptEntry(server=self._address, candidate=candidate, outcome=trial.outcome, detail=trial.detail)
            self._store.append_attempt(entry)
            attempts.append(entry)

            if trial.outcome is TrialOutcome.success:
                self._store.save_record(NegotiationRecord(protocol_version=candidate, server=self._address))
                self._store.clear_ledger()
                self._active_protocol.set(candidate)
                self._logger.info(
                    "negotiation_confirmed",
                    extra={"server": self._address, "protocol_version": candidate, "attempts": len(attempts)},
                )
                return NegotiationResult(protocol_version=candidate, short_circuited=False, attempts=attempts)
        return None
