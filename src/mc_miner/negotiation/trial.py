"""Single-candidate handshake trial and outcome classification."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from mc_miner.adapters.game_connection import IncompatibleVersionError, JoinConnector, JoinRejectedError
from mc_miner.adapters.wire import ProtocolError
from mc_miner.config import ActiveProtocol
from mc_miner.models import TrialOutcome


@dataclass(slots=True)
class TrialResult:
    candidate: int
    outcome: TrialOutcome
    detail: str | None = None


class HandshakeTrialRunner:
    """Tries one protocol version against the server and classifies what happened.

    Expected failures are returned as outcomes, never raised. The runner sets the
    shared ``ActiveProtocol``, so two trials must not run at the same time.
    """

    def __init__(
        self,
        connector: JoinConnector,
        active_protocol: ActiveProtocol,
        *,
        address: str,
        join_timeout_seconds: float = 5.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._connector = connector
        self._active_protocol = active_protocol
        self._address = address
        self._join_timeout_seconds = join_timeout_seconds
        self._logger = logger or logging.getLogger("mc_miner.negotiation.trial")

    async def attempt(self, candidate: int) -> TrialResult:
        self._active_protocol.set(candidate)
        self._logger.info("trial_started", extra={"server": self._address, "candidate": candidate})

        try:
            await asyncio.wait_for(
                self._connector.join(self._address, self._active_protocol.version),
                timeout=self._join_timeout_seconds,
            )
        except IncompatibleVersionError as exc:
            result = TrialResult(candidate, TrialOutcome.incompatible_client, str(exc))
        except asyncio.TimeoutError:
            result = TrialResult(
                candidate,
                TrialOutcome.unknown,
                f"No classifiable response within {self._join_timeout_seconds}s",
            )
        except (JoinRejectedError, ProtocolError) as exc:
            result = TrialResult(candidate, TrialOutcome.unknown, f"{type(exc).__name__}: {exc}")
        except OSError as exc:
            result = TrialResult(candidate, TrialOutcome.connection_error, f"{type(exc).__name__}: {exc}")
        else:
            result = TrialResult(candidate, TrialOutcome.success)

        self._log_result(result)
        return result

    def _log_result(self, result: TrialResult) -> None:
        extra = {"server": self._address, "candidate": result.candidate, "detail": result.detail}
        if result.outcome is TrialOutcome.success:
            self._logger.info("trial_succeeded", extra=extra)
        elif result.outcome is TrialOutcome.incompatible_client:
            self._logger.warning("trial_incompatible_client", extra=extra)
        elif result.outcome is TrialOutcome.connection_error:
            self._logger.warning("trial_connection_error", extra=extra)
        else:
            self._logger.warning("trial_classification_ambiguous", extra=extra)
