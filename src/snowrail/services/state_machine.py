"""Payroll and payment state machines with transition validation.

Also defines the ordered orchestration steps and the immutable StepResult
records the orchestrator appends to a payroll's step log.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class PayrollStatus(str, Enum):
    """Payroll status values."""

    CREATED = "CREATED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentStatus(str, Enum):
    """Payment line item status values."""

    PENDING = "PENDING"
    ONCHAIN_REQUESTED = "ONCHAIN_REQUESTED"
    ONCHAIN_EXECUTED = "ONCHAIN_EXECUTED"
    RAIL_PROCESSING = "RAIL_PROCESSING"
    PAID = "PAID"
    FAILED = "FAILED"


class OrchestrationStep(str, Enum):
    """Orchestration steps, in execution order."""

    PAYROLL_CREATED = "payroll_created"
    PAYMENTS_CREATED = "payments_created"
    TREASURY_CHECKED = "treasury_checked"
    ONCHAIN_REQUESTED = "onchain_requested"
    ONCHAIN_EXECUTED = "onchain_executed"
    RAIL_PROCESSED = "rail_processed"

    @classmethod
    def ordered(cls) -> list[OrchestrationStep]:
        return list(cls)


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class _StateMachine:
    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)


class PayrollStateMachine(_StateMachine):
    """State machine for payroll status transitions.

    Allowed transitions:
    - CREATED → PROCESSING
    - CREATED → FAILED (request rejected by validation)
    - PROCESSING → COMPLETED
    - PROCESSING → FAILED
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollStatus.CREATED: [PayrollStatus.PROCESSING, PayrollStatus.FAILED],
        PayrollStatus.PROCESSING: [PayrollStatus.COMPLETED, PayrollStatus.FAILED],
        PayrollStatus.COMPLETED: [],  # Terminal state
        PayrollStatus.FAILED: [],  # Terminal state
    }


class PaymentStateMachine(_StateMachine):
    """State machine for payment status transitions.

    Allowed transitions:
    - PENDING → ONCHAIN_REQUESTED
    - ONCHAIN_REQUESTED → ONCHAIN_EXECUTED
    - ONCHAIN_EXECUTED → RAIL_PROCESSING
    - ONCHAIN_EXECUTED → PAID
    - RAIL_PROCESSING → PAID
    - any non-terminal → FAILED
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PaymentStatus.PENDING: [PaymentStatus.ONCHAIN_REQUESTED, PaymentStatus.FAILED],
        PaymentStatus.ONCHAIN_REQUESTED: [PaymentStatus.ONCHAIN_EXECUTED, PaymentStatus.FAILED],
        PaymentStatus.ONCHAIN_EXECUTED: [
            PaymentStatus.RAIL_PROCESSING,
            PaymentStatus.PAID,
            PaymentStatus.FAILED,
        ],
        PaymentStatus.RAIL_PROCESSING: [PaymentStatus.PAID, PaymentStatus.FAILED],
        PaymentStatus.PAID: [],  # Terminal state
        PaymentStatus.FAILED: [],  # Terminal state
    }


@dataclass(frozen=True)
class StepResult:
    """Outcome of one orchestration step. Never mutated after it is logged."""

    step: OrchestrationStep
    success: bool
    transaction_hash: str | None = None
    block_number: int | None = None
    gas_used: str | None = None
    error: str | None = None
    skipped: bool = False
    detail: str | None = None

    @classmethod
    def ok(cls, step: OrchestrationStep, **kwargs: Any) -> StepResult:
        return cls(step=step, success=True, **kwargs)

    @classmethod
    def failed(cls, step: OrchestrationStep, error: str, **kwargs: Any) -> StepResult:
        return cls(step=step, success=False, error=error, **kwargs)

    @classmethod
    def skip(cls, step: OrchestrationStep, reason: str) -> StepResult:
        return cls(step=step, success=False, skipped=True, error=f"skipped: {reason}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"step": self.step.value, "success": self.success}
        if self.transaction_hash is not None:
            data["transactionHash"] = self.transaction_hash
        if self.block_number is not None:
            data["blockNumber"] = self.block_number
        if self.gas_used is not None:
            data["gasUsed"] = self.gas_used
        if self.error is not None:
            data["error"] = self.error
        if self.skipped:
            data["skipped"] = True
        if self.detail is not None:
            data["detail"] = self.detail
        return data
