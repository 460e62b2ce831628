"""Business logic services."""

from snowrail.services.payroll_orchestrator import (
    Customer,
    PaymentLine,
    PayrollOrchestrator,
    PayrollOutcome,
    PayrollRequest,
    validate_payroll_request,
)
from snowrail.services.payroll_store import PaymentRecord, PayrollAudit, PayrollStore
from snowrail.services.state_machine import (
    InvalidTransitionError,
    OrchestrationStep,
    PaymentStateMachine,
    PaymentStatus,
    PayrollStateMachine,
    PayrollStatus,
    StepResult,
)
from snowrail.services.treasury_probe import ProbeReport, ProbeResult, TreasuryProbe

__all__ = [
    "Customer",
    "PaymentLine",
    "PayrollOrchestrator",
    "PayrollOutcome",
    "PayrollRequest",
    "validate_payroll_request",
    "PaymentRecord",
    "PayrollAudit",
    "PayrollStore",
    "InvalidTransitionError",
    "OrchestrationStep",
    "PaymentStateMachine",
    "PaymentStatus",
    "PayrollStateMachine",
    "PayrollStatus",
    "StepResult",
    "ProbeReport",
    "ProbeResult",
    "TreasuryProbe",
]
