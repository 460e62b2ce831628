"""Base protocol and types for fiat payout rails."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol


class RailPaymentStatus(str, Enum):
    """Payout status reported by a fiat rail."""

    PROCESSING = "PROCESSING"
    PAID = "PAID"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RailPaymentInput:
    """Payout request sent to the rail."""

    payroll_id: str
    amount: int  # minor units
    currency: str


@dataclass(frozen=True)
class RailPaymentResult:
    """Payout as created by the rail.

    FAILED is a normal outcome, not an exception; failure_reason says why.
    """

    id: str
    status: RailPaymentStatus
    created_at: datetime.datetime
    failure_reason: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == RailPaymentStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }
        if self.failure_reason:
            data["failureReason"] = self.failure_reason
        return data


class FiatRailClient(Protocol):
    """Protocol for fiat payout rail clients.

    Calls are long-running. Transport problems raise RailError; business
    failures come back as a FAILED result.
    """

    rail_name: str

    async def create_payment(self, payment: RailPaymentInput) -> RailPaymentResult:
        """Create a payout for a payroll."""
        ...
