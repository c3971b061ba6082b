"""Protocol-version candidate ordering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from mc_miner.adapters.game_connection import ServerUnreachableError, StatusPinger
from mc_miner.adapters.status import ServerStatus


def build_candidates(reported: int | None, defaults: Iterable[int], window_radius: int) -> list[int]:
    """Order candidates: reported version, its +/- window by increasing offset, then defaults.

    Duplicates are dropped keeping the first occurrence; non-positive values are skipped.
    """
    if window_radius < 0:
        raise ValueError("window_radius must be >= 0")

    ordered: list[int] = []
    if reported is not None and reported > 0:
        ordered.append(reported)
        for offset in range(1, window_radius + 1):
            ordered.extend((reported - offset, reported + offset))
    ordered.extend(defaults)

    seen: set[int] = set()
    candidates: list[int] = []
    for value in ordered:
        if value <= 0 or value in seen:
            continue
        seen.add(value)
        candidates.append(value)
    return candidates


@dataclass(slots=True)
class ProbeResult:
    status: ServerStatus | None
    candidates: list[int]

    @property
    def reported_protocol(self) -> int | None:
        return self.status.reported_protocol if self.status else None


class VersionProbe:
    """Pings the server and turns its reported protocol into an ordered candidate list."""

    def __init__(
        self,
        pinger: StatusPinger,
        *,
        defaults: Iterable[int],
        window_radius: int,
        logger: logging.Logger | None = None,
    ) -> None:
        self._pinger = pinger
        self._defaults = list(defaults)
        self._window_radius = window_radius
        self._logger = logger or logging.getLogger("mc_miner.negotiation.probe")

    async def probe(self, address: str) -> ProbeResult:
        try:
            status = await self._pinger.ping(address)
        except ServerUnreachableError as exc:
            self._logger.warning("status_ping_failed", extra={"server": address, "error": str(exc)})
            status = None
        else:
            self._logger.info(
                "status_ping_succeeded",
                extra={
                    "server": address,
                    "reported_protocol": status.version.protocol,
                    "version_name": status.version.name,
                    "flavour": status.flavour,
                },
            )

        reported = status.reported_protocol if status else None
        return ProbeResult(
            status=status,
            candidates=build_candidates(reported, self._defaults, self._window_radius),
        )
