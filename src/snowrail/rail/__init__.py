"""Fiat payout rail clients."""

from snowrail.rail.base import (
    FiatRailClient,
    RailPaymentInput,
    RailPaymentResult,
    RailPaymentStatus,
)
from snowrail.rail.mock_client import MOCK_FAILURE_REASON, MockRailClient

__all__ = [
    "FiatRailClient",
    "RailPaymentInput",
    "RailPaymentResult",
    "RailPaymentStatus",
    "MOCK_FAILURE_REASON",
    "MockRailClient",
]
