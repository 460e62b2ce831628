"""Payroll Orchestrator - dual-rail payroll execution.

Drives one payroll through six sequential steps:

1. payroll_created   - persist the payroll record
2. payments_created  - validate the request and persist the payment line item
3. treasury_checked  - best-effort treasury balance read
4. onchain_requested - log the payment intent on the treasury contract
5. onchain_executed  - move the funds on-chain (only after step 4)
6. rail_processed    - fiat payout through the rail (independent of 4 and 5)

Collaborator failures are recorded on their step and never raised. There is
no compensation: a rail failure does not undo on-chain steps, the outcome
simply reports the mix. Each invocation mints new identities; callers that
retry must dedupe themselves.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from snowrail.config import OrchestratorConfig, SettlementConfig
from snowrail.errors import (
    AuthorizationError,
    CollaboratorError,
    CollaboratorTimeoutError,
    ValidationError,
)
from snowrail.events import (
    AsyncEventEmitter,
    DomainEvent,
    EventMetadata,
    PayrollFinished,
    PayrollStarted,
    PayrollStepRecorded,
)
from snowrail.rail.base import FiatRailClient, RailPaymentInput, RailPaymentStatus
from snowrail.services.payroll_store import PayrollAudit, PayrollStore
from snowrail.services.state_machine import (
    OrchestrationStep,
    PaymentStatus,
    PayrollStatus,
    StepResult,
)
from snowrail.settlement.base import SettlementService

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

# Largest amount the payment table can hold (signed 64-bit column)
MAX_AMOUNT = 2**63 - 1

Step = OrchestrationStep


# =============================================================================
# Request / outcome types
# =============================================================================


@dataclass(frozen=True)
class Customer:
    """Customer the payroll is executed for."""

    first_name: str | None = None
    last_name: str | None = None
    email_address: str | None = None
    telephone_number: str | None = None
    mailing_address: dict[str, str] | None = None


@dataclass(frozen=True)
class PaymentLine:
    """Requested payment. Amount is integer minor units."""

    amount: int | None = None
    currency: str | None = None
    recipient: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class PayrollRequest:
    """A payroll payment request as received from a caller."""

    customer: Customer = field(default_factory=Customer)
    payment: PaymentLine = field(default_factory=PaymentLine)


@dataclass(frozen=True)
class PayrollOutcome:
    """Consolidated result of one orchestration run.

    Also a tagged saga result: completed_steps, failed_step and the residual
    step log let callers reconcile a mixed outcome by hand.
    """

    payroll_id: str
    status: PayrollStatus
    steps: dict[str, bool]
    request_tx_hashes: tuple[str, ...]
    execute_tx_hashes: tuple[str, ...]
    rail_withdrawal_id: str | None
    rail_status: str | None
    errors: tuple[dict[str, str], ...]
    log: tuple[StepResult, ...]

    @property
    def success(self) -> bool:
        return self.status == PayrollStatus.COMPLETED

    @property
    def completed_steps(self) -> list[str]:
        return [name for name, done in self.steps.items() if done]

    @property
    def failed_step(self) -> str | None:
        """First step that did not succeed, if any."""
        for name, done in self.steps.items():
            if not done:
                return name
        return None

    def to_dict(self) -> dict[str, Any]:
        """Wire format."""
        rail: dict[str, Any] = {}
        if self.rail_withdrawal_id is not None:
            rail["withdrawal_id"] = self.rail_withdrawal_id
        if self.rail_status is not None:
            rail["status"] = self.rail_status

        return {
            "success": self.success,
            "payrollId": self.payroll_id,
            "status": self.status.value,
            "steps": dict(self.steps),
            "transactions": {
                "request_tx_hashes": list(self.request_tx_hashes),
                "execute_tx_hashes": list(self.execute_tx_hashes),
            },
            "rail": rail,
            "errors": [dict(e) for e in self.errors],
        }


@dataclass
class _PayrollRun:
    """Mutable bookkeeping for a single run. Never shared between runs."""

    payroll_id: str
    payment_id: str | None = None
    payment_status: PaymentStatus | None = None
    steps: dict[str, bool] = field(
        default_factory=lambda: {s.value: False for s in OrchestrationStep.ordered()}
    )
    log: list[StepResult] = field(default_factory=list)
    request_tx_hashes: list[str] = field(default_factory=list)
    execute_tx_hashes: list[str] = field(default_factory=list)
    rail_withdrawal_id: str | None = None
    rail_status: str | None = None

    def passed(self, step: OrchestrationStep) -> bool:
        return self.steps[step.value]

    def outcome(self, status: PayrollStatus) -> PayrollOutcome:
        errors = tuple(
            {"step": r.step.value, "error": r.error or "unknown error"}
            for r in self.log
            if not r.success
        )
        return PayrollOutcome(
            payroll_id=self.payroll_id,
            status=status,
            steps=dict(self.steps),
            request_tx_hashes=tuple(self.request_tx_hashes),
            execute_tx_hashes=tuple(self.execute_tx_hashes),
            rail_withdrawal_id=self.rail_withdrawal_id,
            rail_status=self.rail_status,
            errors=errors,
            log=tuple(self.log),
        )


# =============================================================================
# Validation and identities
# =============================================================================


def validate_payroll_request(request: PayrollRequest) -> list[dict[str, str]]:
    """Return field errors for a request (empty list = valid)."""
    errors: list[dict[str, str]] = []
    customer = request.customer
    payment = request.payment

    def missing(value: str | None) -> bool:
        return value is None or not value.strip()

    if missing(customer.first_name):
        errors.append({"field": "customer.first_name", "message": "First name is required"})
    if missing(customer.last_name):
        errors.append({"field": "customer.last_name", "message": "Last name is required"})
    if missing(customer.email_address):
        errors.append({"field": "customer.email_address", "message": "Email address is required"})
    elif not _EMAIL_RE.match(customer.email_address.strip()):  # type: ignore[union-attr]
        errors.append({"field": "customer.email_address", "message": "Email address is invalid"})

    if payment.amount is None:
        errors.append({"field": "payment.amount", "message": "Payment amount is required"})
    elif isinstance(payment.amount, bool) or not isinstance(payment.amount, int):
        errors.append({"field": "payment.amount", "message": "Payment amount must be integer minor units"})
    elif payment.amount <= 0:
        errors.append({"field": "payment.amount", "message": "Payment amount must be greater than 0"})
    elif payment.amount > MAX_AMOUNT:
        errors.append({"field": "payment.amount", "message": "Payment amount is too large"})

    if missing(payment.currency):
        errors.append({"field": "payment.currency", "message": "Currency is required"})
    elif not _CURRENCY_RE.match(payment.currency):  # type: ignore[arg-type]
        errors.append({"field": "payment.currency", "message": "Currency must be a 3-letter ISO code"})

    if payment.recipient and not _ADDRESS_RE.match(payment.recipient):
        errors.append({"field": "payment.recipient", "message": "Recipient must be a 0x address"})

    return errors


def new_payroll_id() -> str:
    """Timestamp plus random suffix; unique under concurrent creation."""
    return f"payroll_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def new_payment_id() -> str:
    return f"payment_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


async def call_with_deadline(
    operation: str, awaitable: Awaitable[T], timeout_seconds: float
) -> T:
    """Await a settlement or rail call under a deadline.

    Collaborator and authorization errors pass through unchanged. Anything
    else an adapter raises (transport errors, decoding errors) becomes a
    CollaboratorError so the calling step can record it.

    Raises:
        CollaboratorTimeoutError: If the deadline passed.
        CollaboratorError: If the adapter failed any other way.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise CollaboratorTimeoutError(operation, timeout_seconds) from exc
    except (CollaboratorError, AuthorizationError):
        raise
    except Exception as exc:
        raise CollaboratorError(f"{operation} raised {type(exc).__name__}: {exc}") from exc


# =============================================================================
# Orchestrator
# =============================================================================


class PayrollOrchestrator:
    """Payroll orchestration service.

    Usage:
        orchestrator = PayrollOrchestrator(
            store=PayrollStore(session_factory),
            settlement=InMemoryTreasury(owner=operator),
            rail=MockRailClient(config.rail),
            config=config.orchestrator,
            settlement_config=config.settlement,
        )
        outcome = await orchestrator.execute(request, meter_id="payroll_execute")
    """

    def __init__(
        self,
        *,
        store: PayrollStore,
        settlement: SettlementService,
        rail: FiatRailClient,
        config: OrchestratorConfig,
        settlement_config: SettlementConfig,
        emitter: AsyncEventEmitter | None = None,
    ):
        self.store = store
        self.settlement = settlement
        self.rail = rail
        self.config = config
        self.settlement_config = settlement_config
        self.emitter = emitter

    async def execute(
        self,
        request: PayrollRequest,
        *,
        meter_id: str | None = None,
    ) -> PayrollOutcome:
        """Run a payroll end to end.

        Args:
            request: Validated-at-step-2 payroll request.
            meter_id: Metered resource the call was admitted through.

        Returns:
            PayrollOutcome, also when steps failed.

        Raises:
            StorageUnavailableError: If the payroll could not be persisted.
            ValidationError: If required fields are missing. No collaborator
                is called in that case.
        """
        run = _PayrollRun(payroll_id=new_payroll_id())
        payment = request.payment

        # Step 1: payroll record
        await self.store.create_payroll(
            payroll_id=run.payroll_id,
            meter_id=meter_id,
            customer_email=request.customer.email_address,
            description=payment.description,
        )
        await self._record(run, StepResult.ok(Step.PAYROLL_CREATED))
        logger.info("Payroll %s created (meter=%s)", run.payroll_id, meter_id)

        # Step 2: validate and materialize the payment line item
        field_errors = validate_payroll_request(request)
        if field_errors:
            message = "; ".join(e["message"] for e in field_errors)
            await self._record(run, StepResult.failed(Step.PAYMENTS_CREATED, message))
            await self.store.transition_payroll(run.payroll_id, PayrollStatus.FAILED)
            await self._finish_event(run, PayrollStatus.FAILED)
            logger.info("Payroll %s rejected: %s", run.payroll_id, message)
            raise ValidationError(message, fields=field_errors)

        amount: int = payment.amount  # type: ignore[assignment]
        currency: str = payment.currency  # type: ignore[assignment]
        token = self.settlement_config.token_address
        payee = payment.recipient or self.settlement_config.default_payee_address

        record = await self.store.create_payment(
            payment_id=new_payment_id(),
            payroll_id=run.payroll_id,
            recipient=payee,
            amount=amount,
            currency=currency,
            token_address=token,
        )
        run.payment_id = record.id
        run.payment_status = PaymentStatus.PENDING
        await self.store.transition_payroll(run.payroll_id, PayrollStatus.PROCESSING)
        await self._record(run, StepResult.ok(Step.PAYMENTS_CREATED, detail=record.id))
        await self._emit(
            PayrollStarted(
                metadata=EventMetadata.create(correlation_id=run.payroll_id),
                payroll_id=run.payroll_id,
                meter_id=meter_id,
                amount=amount,
                currency=currency,
            )
        )

        # Step 3: treasury balance (best effort)
        await self._check_treasury(run, token, amount)

        # Step 4 and 5: on-chain settlement
        await self._request_onchain(run, payee, amount, token)
        await self._execute_onchain(run, payee, amount, token)

        # Step 6: fiat payout
        await self._process_rail(run, amount, currency)

        status = (
            PayrollStatus.COMPLETED
            if all(run.steps.values())
            else PayrollStatus.FAILED
        )
        await self.store.transition_payroll(run.payroll_id, status)
        await self._finish_event(run, status)

        outcome = run.outcome(status)
        if outcome.success:
            logger.info("Payroll %s completed", run.payroll_id)
        else:
            logger.warning(
                "Payroll %s finished %s; failed steps: %s",
                run.payroll_id,
                status.value,
                ", ".join(e["step"] for e in outcome.errors),
            )
        return outcome

    async def get_audit(self, payroll_id: str) -> PayrollAudit:
        """Recorded payroll, payments and step log for a payroll id."""
        return await self.store.get_audit(payroll_id)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _check_treasury(self, run: _PayrollRun, token: str, amount: int) -> None:
        try:
            balance = await self._call(
                "getTokenBalance", self.settlement.get_token_balance(token)
            )
        except (CollaboratorError, AuthorizationError) as exc:
            await self._record(run, StepResult.failed(Step.TREASURY_CHECKED, str(exc)))
            return

        if balance < amount:
            # Balance may be stale by the time the transfer runs; proceed anyway.
            logger.warning(
                "Payroll %s: treasury balance %s below amount %s",
                run.payroll_id,
                balance,
                amount,
            )
        await self._record(
            run, StepResult.ok(Step.TREASURY_CHECKED, detail=f"balance={balance}")
        )

    async def _request_onchain(
        self, run: _PayrollRun, payee: str, amount: int, token: str
    ) -> None:
        try:
            receipt = await self._call(
                "requestPayment",
                self.settlement.request_payment(payee, amount, token),
            )
        except (CollaboratorError, AuthorizationError) as exc:
            await self._record(
                run,
                StepResult.failed(Step.ONCHAIN_REQUESTED, f"requestPayment failed: {exc}"),
            )
            await self._move_payment(run, PaymentStatus.FAILED)
            return

        run.request_tx_hashes.append(receipt.tx_hash)
        await self._move_payment(run, PaymentStatus.ONCHAIN_REQUESTED)
        await self._record(
            run,
            StepResult.ok(
                Step.ONCHAIN_REQUESTED,
                transaction_hash=receipt.tx_hash,
                block_number=receipt.block_number,
                gas_used=receipt.gas_used,
            ),
        )

    async def _execute_onchain(
        self, run: _PayrollRun, payee: str, amount: int, token: str
    ) -> None:
        if not run.passed(Step.ONCHAIN_REQUESTED):
            await self._record(
                run, StepResult.skip(Step.ONCHAIN_EXECUTED, "onchain_requested failed")
            )
            return

        try:
            receipt = await self._call(
                "executePayment",
                self.settlement.execute_payment(
                    self.settlement_config.operator_address, payee, amount, token
                ),
            )
        except (CollaboratorError, AuthorizationError) as exc:
            await self._record(
                run,
                StepResult.failed(
                    Step.ONCHAIN_EXECUTED,
                    f"executePayment failed, funds requested but not moved: {exc}",
                ),
            )
            await self._move_payment(run, PaymentStatus.FAILED)
            return

        run.execute_tx_hashes.append(receipt.tx_hash)
        await self._move_payment(run, PaymentStatus.ONCHAIN_EXECUTED)
        await self._record(
            run,
            StepResult.ok(
                Step.ONCHAIN_EXECUTED,
                transaction_hash=receipt.tx_hash,
                block_number=receipt.block_number,
                gas_used=receipt.gas_used,
            ),
        )

    async def _process_rail(self, run: _PayrollRun, amount: int, currency: str) -> None:
        onchain_ok = run.passed(Step.ONCHAIN_REQUESTED) and run.passed(Step.ONCHAIN_EXECUTED)
        if self.config.rail_requires_onchain and not onchain_ok:
            await self._record(
                run, StepResult.skip(Step.RAIL_PROCESSED, "on-chain settlement failed")
            )
            return

        try:
            result = await self._call(
                "createRailPayment",
                self.rail.create_payment(
                    RailPaymentInput(
                        payroll_id=run.payroll_id,
                        amount=amount,
                        currency=currency,
                    )
                ),
            )
        except (CollaboratorError, AuthorizationError) as exc:
            await self._record(run, StepResult.failed(Step.RAIL_PROCESSED, str(exc)))
            await self._move_payment(run, PaymentStatus.FAILED)
            return

        run.rail_withdrawal_id = result.id
        run.rail_status = result.status.value
        if run.payment_id is not None:
            await self.store.set_rail_payment_id(run.payment_id, result.id)

        if result.failed:
            await self._record(
                run,
                StepResult.failed(
                    Step.RAIL_PROCESSED,
                    result.failure_reason or "rail payout failed",
                    detail=result.id,
                ),
            )
            await self._move_payment(run, PaymentStatus.FAILED)
            return

        if result.status == RailPaymentStatus.PAID:
            await self._move_payment(run, PaymentStatus.PAID)
        else:
            await self._move_payment(run, PaymentStatus.RAIL_PROCESSING)
        await self._record(
            run,
            StepResult.ok(Step.RAIL_PROCESSED, detail=f"{result.id} {result.status.value}"),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        return await call_with_deadline(
            operation, awaitable, self.config.collaborator_timeout_seconds
        )

    async def _record(self, run: _PayrollRun, result: StepResult) -> None:
        """Append a step result to the log and the steps map."""
        await self.store.append_step(run.payroll_id, len(run.log), result)
        run.log.append(result)
        run.steps[result.step.value] = result.success

        if not result.success:
            logger.warning(
                "Payroll %s step %s failed: %s",
                run.payroll_id,
                result.step.value,
                result.error,
            )

        await self._emit(
            PayrollStepRecorded(
                metadata=EventMetadata.create(correlation_id=run.payroll_id),
                payroll_id=run.payroll_id,
                step=result.step.value,
                success=result.success,
                skipped=result.skipped,
                error=result.error,
                transaction_hash=result.transaction_hash,
            )
        )

    async def _move_payment(self, run: _PayrollRun, to_status: PaymentStatus) -> None:
        """Advance the payment; a FAILED payment stays FAILED."""
        if run.payment_id is None or run.payment_status is None:
            return
        if run.payment_status == PaymentStatus.FAILED:
            return
        await self.store.transition_payment(run.payment_id, to_status)
        run.payment_status = to_status

    async def _finish_event(self, run: _PayrollRun, status: PayrollStatus) -> None:
        await self._emit(
            PayrollFinished(
                metadata=EventMetadata.create(correlation_id=run.payroll_id),
                payroll_id=run.payroll_id,
                status=status.value,
                failed_steps=tuple(name for name, done in run.steps.items() if not done),
            )
        )

    async def _emit(self, event: DomainEvent) -> None:
        if self.emitter is not None:
            await self.emitter.emit(event)
