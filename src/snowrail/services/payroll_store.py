"""Payroll store - persistence for payroll records and the step log.

Each write runs in its own short transaction so that the step log reflects
progress even while a later collaborator call is still in flight. The step
log is append-only: there is no update or delete for steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from snowrail.database import get_session
from snowrail.errors import PayrollNotFoundError, StorageUnavailableError
from snowrail.models import Payroll, PayrollPayment, PayrollStep
from snowrail.services.state_machine import (
    OrchestrationStep,
    PaymentStateMachine,
    PaymentStatus,
    PayrollStateMachine,
    PayrollStatus,
    StepResult,
)


@dataclass(frozen=True)
class PaymentRecord:
    """Read model of a payment line item."""

    id: str
    payroll_id: str
    recipient: str
    amount: int
    currency: str
    token_address: str
    status: str
    rail_payment_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payrollId": self.payroll_id,
            "recipient": self.recipient,
            "amount": self.amount,
            "currency": self.currency,
            "tokenAddress": self.token_address,
            "status": self.status,
            "railPaymentId": self.rail_payment_id,
        }


@dataclass(frozen=True)
class PayrollAudit:
    """Everything recorded for one payroll, for after-the-fact audit."""

    payroll_id: str
    status: str
    created_at: datetime
    completed_at: datetime | None
    meter_id: str | None
    payments: list[PaymentRecord] = field(default_factory=list)
    steps: list[StepResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "payrollId": self.payroll_id,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "meterId": self.meter_id,
            "payments": [p.to_dict() for p in self.payments],
            "steps": [s.to_dict() for s in self.steps],
        }


class PayrollStore:
    """Persistence for payrolls, payments and the append-only step log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_payroll(
        self,
        *,
        payroll_id: str,
        meter_id: str | None = None,
        customer_email: str | None = None,
        description: str | None = None,
    ) -> datetime:
        """Insert a payroll in CREATED status. Returns its creation time."""
        try:
            async with get_session(self._session_factory) as session:
                payroll = Payroll(
                    id=payroll_id,
                    status=PayrollStatus.CREATED.value,
                    meter_id=meter_id,
                    customer_email=customer_email,
                    description=description,
                )
                session.add(payroll)
                await session.flush()
                return payroll.created_at
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not create payroll: {exc}") from exc

    async def create_payment(
        self,
        *,
        payment_id: str,
        payroll_id: str,
        recipient: str,
        amount: int,
        currency: str,
        token_address: str,
    ) -> PaymentRecord:
        """Insert a payment line item in PENDING status."""
        try:
            async with get_session(self._session_factory) as session:
                payment = PayrollPayment(
                    id=payment_id,
                    payroll_id=payroll_id,
                    recipient=recipient,
                    amount=amount,
                    currency=currency,
                    token_address=token_address,
                    status=PaymentStatus.PENDING.value,
                )
                session.add(payment)
                await session.flush()
                return _payment_record(payment)
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not create payment: {exc}") from exc

    async def transition_payroll(self, payroll_id: str, to_status: PayrollStatus) -> None:
        """Move a payroll to a new status, validating the transition."""
        try:
            async with get_session(self._session_factory) as session:
                payroll = await session.get(Payroll, payroll_id)
                if payroll is None:
                    raise PayrollNotFoundError(payroll_id)
                PayrollStateMachine.validate_transition(payroll.status, to_status)
                payroll.status = to_status.value
                if PayrollStateMachine.is_terminal(to_status):
                    payroll.completed_at = datetime.now(timezone.utc)
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not update payroll: {exc}") from exc

    async def transition_payment(
        self,
        payment_id: str,
        to_status: PaymentStatus,
        *,
        rail_payment_id: str | None = None,
    ) -> None:
        """Move a payment to a new status, validating the transition."""
        try:
            async with get_session(self._session_factory) as session:
                payment = await session.get(PayrollPayment, payment_id)
                if payment is None:
                    raise ValueError(f"Payment {payment_id} not found")
                PaymentStateMachine.validate_transition(payment.status, to_status)
                payment.status = to_status.value
                if rail_payment_id is not None:
                    payment.rail_payment_id = rail_payment_id
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not update payment: {exc}") from exc

    async def set_rail_payment_id(self, payment_id: str, rail_payment_id: str) -> None:
        """Record the rail payout id without changing payment status."""
        try:
            async with get_session(self._session_factory) as session:
                payment = await session.get(PayrollPayment, payment_id)
                if payment is None:
                    raise ValueError(f"Payment {payment_id} not found")
                payment.rail_payment_id = rail_payment_id
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not update payment: {exc}") from exc

    async def append_step(self, payroll_id: str, sequence: int, result: StepResult) -> None:
        """Append a step result to the payroll's log."""
        try:
            async with get_session(self._session_factory) as session:
                session.add(
                    PayrollStep(
                        payroll_id=payroll_id,
                        sequence=sequence,
                        step=result.step.value,
                        success=result.success,
                        skipped=result.skipped,
                        transaction_hash=result.transaction_hash,
                        block_number=result.block_number,
                        gas_used=result.gas_used,
                        error=result.error,
                        detail=result.detail,
                    )
                )
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not append step: {exc}") from exc

    async def get_audit(self, payroll_id: str) -> PayrollAudit:
        """Load a payroll with its payments and ordered step log.

        Raises:
            PayrollNotFoundError: If no payroll has this id.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Payroll)
                    .where(Payroll.id == payroll_id)
                    .options(selectinload(Payroll.payments), selectinload(Payroll.steps))
                )
                payroll = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageUnavailableError(f"Could not load payroll: {exc}") from exc

        if payroll is None:
            raise PayrollNotFoundError(payroll_id)

        return PayrollAudit(
            payroll_id=payroll.id,
            status=payroll.status,
            created_at=payroll.created_at,
            completed_at=payroll.completed_at,
            meter_id=payroll.meter_id,
            payments=[_payment_record(p) for p in payroll.payments],
            steps=[_step_result(s) for s in payroll.steps],
        )


def _payment_record(payment: PayrollPayment) -> PaymentRecord:
    return PaymentRecord(
        id=payment.id,
        payroll_id=payment.payroll_id,
        recipient=payment.recipient,
        amount=payment.amount,
        currency=payment.currency,
        token_address=payment.token_address,
        status=payment.status,
        rail_payment_id=payment.rail_payment_id,
    )


def _step_result(row: PayrollStep) -> StepResult:
    return StepResult(
        step=OrchestrationStep(row.step),
        success=row.success,
        transaction_hash=row.transaction_hash,
        block_number=row.block_number,
        gas_used=row.gas_used,
        error=row.error,
        skipped=row.skipped,
        detail=row.detail,
    )
