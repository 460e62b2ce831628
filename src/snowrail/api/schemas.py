"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from snowrail.money import to_minor_units
from snowrail.services.payroll_orchestrator import Customer, PaymentLine, PayrollRequest


# ============================================================================
# Payroll request schemas
# ============================================================================


class MailingAddressIn(BaseModel):
    """Customer mailing address."""

    address_line1: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country_code: str | None = None


class CustomerIn(BaseModel):
    """Customer block of a payroll request.

    Required-ness is enforced by the orchestrator so that a missing field
    fails the payments_created step rather than the HTTP parser.
    """

    first_name: str | None = None
    last_name: str | None = None
    email_address: str | None = None
    telephone_number: str | None = None
    mailing_address: MailingAddressIn | None = None


class PaymentIn(BaseModel):
    """Payment block of a payroll request.

    `amount` is integer minor units. `amount_units` is an alternative in whole
    units (e.g. "12.345") rounded half up to minor units on the way in.
    """

    amount: int | None = None
    amount_units: Decimal | None = None
    currency: str | None = "USD"
    recipient: str | None = None
    description: str | None = None

    @model_validator(mode="after")
    def check_single_amount(self) -> PaymentIn:
        if self.amount is not None and self.amount_units is not None:
            raise ValueError("Set either amount or amount_units, not both")
        return self


class PayrollExecuteRequest(BaseModel):
    """Body of POST /api/payroll/execute and /api/payment/process."""

    customer: CustomerIn = Field(default_factory=CustomerIn)
    payment: PaymentIn = Field(default_factory=PaymentIn)
    payment_token: str | None = None

    def to_domain(self, currency_exponent: int = 2) -> PayrollRequest:
        """Convert to the orchestrator request. Unit amounts are rounded here."""
        amount = self.payment.amount
        if amount is None and self.payment.amount_units is not None:
            amount = to_minor_units(self.payment.amount_units, currency_exponent)

        mailing = (
            self.customer.mailing_address.model_dump(exclude_none=True)
            if self.customer.mailing_address
            else None
        )
        return PayrollRequest(
            customer=Customer(
                first_name=self.customer.first_name,
                last_name=self.customer.last_name,
                email_address=self.customer.email_address,
                telephone_number=self.customer.telephone_number,
                mailing_address=mailing,
            ),
            payment=PaymentLine(
                amount=amount,
                currency=self.payment.currency,
                recipient=self.payment.recipient,
                description=self.payment.description,
            ),
        )


# ============================================================================
# Payroll response schemas
# ============================================================================


class StepsOut(BaseModel):
    """Per-step success flags."""

    payroll_created: bool
    payments_created: bool
    treasury_checked: bool
    onchain_requested: bool
    onchain_executed: bool
    rail_processed: bool


class TransactionsOut(BaseModel):
    """On-chain transaction hashes, in submission order."""

    request_tx_hashes: list[str]
    execute_tx_hashes: list[str]


class RailOut(BaseModel):
    """Fiat payout reference."""

    withdrawal_id: str | None = None
    status: str | None = None


class StepErrorOut(BaseModel):
    """Reason a step did not succeed."""

    step: str
    error: str


class PayrollOutcomeResponse(BaseModel):
    """Consolidated payroll outcome."""

    success: bool
    payrollId: str
    status: str
    steps: StepsOut
    transactions: TransactionsOut
    rail: RailOut
    errors: list[StepErrorOut]


class StepResultOut(BaseModel):
    """One entry of the step log."""

    model_config = ConfigDict(extra="allow")

    step: str
    success: bool


class PaymentOut(BaseModel):
    """Recorded payment line item."""

    id: str
    payrollId: str
    recipient: str
    amount: int
    currency: str
    tokenAddress: str
    status: str
    railPaymentId: str | None = None


class PayrollAuditResponse(BaseModel):
    """Everything recorded for a payroll."""

    payrollId: str
    status: str
    createdAt: datetime
    completedAt: datetime | None = None
    meterId: str | None = None
    payments: list[PaymentOut]
    steps: list[StepResultOut]


# ============================================================================
# Treasury schemas
# ============================================================================


class TreasuryProbeRequest(BaseModel):
    """Body of POST /api/treasury/test. All fields default from config."""

    caller: str | None = None
    payee: str | None = None
    token: str | None = None
    swap_to_token: str | None = None
    amount: int = Field(default=1_000_000, gt=0)
    swap_max_amount: int = Field(default=1_000_000_000, ge=0)
    payment_token: str | None = None


class SwapAuthorizeRequest(BaseModel):
    """Body of POST /api/treasury/swap/authorize."""

    caller: str
    from_token: str
    to_token: str
    max_amount: int = Field(ge=0)
    payment_token: str | None = None


class ReceiptOut(BaseModel):
    """Mined transaction receipt."""

    transactionHash: str
    blockNumber: int
    gasUsed: str


# ============================================================================
# Misc
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    service: str
    network: str | None = None


class ErrorResponse(BaseModel):
    """Structured error payload."""

    error: dict[str, Any]
