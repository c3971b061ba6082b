"""Protocol-version negotiation."""

from .candidates import ProbeResult, VersionProbe, build_candidates
from .controller import (
    NegotiationController,
    NegotiationExhaustedError,
    NegotiationInProgressError,
    NegotiationResult,
)
from .store import NegotiationStore
from .trial import HandshakeTrialRunner, TrialResult

__all__ = [
    "HandshakeTrialRunner",
    "NegotiationController",
    "NegotiationExhaustedError",
    "NegotiationInProgressError",
    "NegotiationResult",
    "NegotiationStore",
    "ProbeResult",
    "TrialResult",
    "VersionProbe",
    "build_candidates",
]
