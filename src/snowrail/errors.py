"""Error taxonomy for SnowRail.

Validation and configuration errors abort a flow before any side effect.
Collaborator errors (settlement or fiat rail) are caught per orchestration
step and recorded; they never escape the orchestrator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from snowrail.metering.gate import MeteringChallenge


class SnowRailError(Exception):
    """Base class for all SnowRail errors."""

    code = "SNOWRAIL_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured error payload."""
        return {"message": str(self), "code": self.code}


class ValidationError(SnowRailError):
    """Raised when a request is missing or has malformed fields."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, fields: list[dict[str, str]] | None = None):
        self.fields = fields or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["fields"] = list(self.fields)
        return data


class PaymentRequiredError(SnowRailError):
    """Raised when a metered resource is called without valid proof of payment.

    Not a failure: the caller is expected to retry with a payment token.
    """

    code = "PAYMENT_REQUIRED"

    def __init__(self, challenge: MeteringChallenge):
        self.challenge = challenge
        super().__init__(f"Payment required for resource '{challenge.meter_id}'")

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "metering": self.challenge.to_dict(),
            "meterId": self.challenge.meter_id,
        }


class CollaboratorError(SnowRailError):
    """A settlement or fiat rail call failed."""

    code = "COLLABORATOR_ERROR"


class SettlementError(CollaboratorError):
    """The on-chain settlement service rejected or failed an operation."""

    code = "SETTLEMENT_ERROR"


class RailError(CollaboratorError):
    """The fiat rail could not be reached or returned garbage."""

    code = "RAIL_ERROR"


class CollaboratorTimeoutError(CollaboratorError):
    """A collaborator call exceeded its deadline."""

    code = "COLLABORATOR_TIMEOUT"

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds:g}s")


class AuthorizationError(SnowRailError):
    """An owner-gated operation was attempted by a non-owner."""

    code = "NOT_AUTHORIZED"


class ConfigurationError(SnowRailError):
    """Unknown resource id or missing price table entry. Not user-recoverable."""

    code = "CONFIGURATION_ERROR"


class StorageUnavailableError(SnowRailError):
    """Payroll records could not be persisted."""

    code = "STORAGE_UNAVAILABLE"


class PayrollNotFoundError(SnowRailError):
    """No payroll exists with the requested id."""

    code = "PAYROLL_NOT_FOUND"

    def __init__(self, payroll_id: str):
        self.payroll_id = payroll_id
        super().__init__(f"Payroll {payroll_id} not found")
