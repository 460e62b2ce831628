"""Pay-per-call metering."""

from snowrail.metering.gate import (
    Allow,
    Challenge,
    GateDecision,
    MeteringChallenge,
    MeteringGate,
)

__all__ = [
    "Allow",
    "Challenge",
    "GateDecision",
    "MeteringChallenge",
    "MeteringGate",
]
