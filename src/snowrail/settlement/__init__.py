"""On-chain settlement adapters."""

from snowrail.settlement.base import (
    PaymentRequest,
    SettlementService,
    TransactionReceipt,
)
from snowrail.settlement.treasury_stub import InMemoryTreasury

__all__ = [
    "PaymentRequest",
    "SettlementService",
    "TransactionReceipt",
    "InMemoryTreasury",
]
