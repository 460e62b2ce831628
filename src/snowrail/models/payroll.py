"""Payroll orchestration records.

- Payroll: one end-to-end payment request
- PayrollPayment: payment line item(s) of a payroll
- PayrollStep: append-only log of orchestration step results
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snowrail.models.base import Base, TimestampMixin


class Payroll(Base, TimestampMixin):
    """A payroll request and its orchestration status."""

    __tablename__ = "payroll"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="CREATED")
    meter_id: Mapped[Optional[str]] = mapped_column(String(32))
    customer_email: Mapped[Optional[str]] = mapped_column(String(320))
    description: Mapped[Optional[str]] = mapped_column(Text)
    completed_at: Mapped[Optional[datetime]] = mapped_column()

    __table_args__ = (
        CheckConstraint(
            "status IN ('CREATED', 'PROCESSING', 'COMPLETED', 'FAILED')",
            name="payroll_status_ck",
        ),
    )

    # Relationships
    payments: Mapped[list["PayrollPayment"]] = relationship(
        "PayrollPayment",
        back_populates="payroll",
        order_by="PayrollPayment.created_at",
    )
    steps: Mapped[list["PayrollStep"]] = relationship(
        "PayrollStep",
        back_populates="payroll",
        order_by="PayrollStep.sequence",
    )


class PayrollPayment(Base, TimestampMixin):
    """A payment line item. Amounts are integer minor units."""

    __tablename__ = "payroll_payment"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    payroll_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("payroll.id"), nullable=False
    )
    recipient: Mapped[str] = mapped_column(String(64), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    token_address: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="PENDING")
    rail_payment_id: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        CheckConstraint("amount > 0", name="payroll_payment_amount_positive_ck"),
        CheckConstraint(
            """status IN (
                'PENDING',
                'ONCHAIN_REQUESTED',
                'ONCHAIN_EXECUTED',
                'RAIL_PROCESSING',
                'PAID',
                'FAILED'
            )""",
            name="payroll_payment_status_ck",
        ),
        Index("payroll_payment_by_payroll", "payroll_id"),
    )

    payroll: Mapped[Payroll] = relationship("Payroll", back_populates="payments")


class PayrollStep(Base, TimestampMixin):
    """Append-only orchestration step log.

    Rows are inserted once and never updated; the store exposes no mutation.
    """

    __tablename__ = "payroll_step"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payroll_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("payroll.id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    step: Mapped[str] = mapped_column(String(32), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(80))
    block_number: Mapped[Optional[int]] = mapped_column(BigInteger)
    gas_used: Mapped[Optional[str]] = mapped_column(String(32))
    error: Mapped[Optional[str]] = mapped_column(Text)
    detail: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("payroll_id", "sequence", name="payroll_step_sequence_uq"),
        UniqueConstraint("payroll_id", "step", name="payroll_step_once_uq"),
    )

    payroll: Mapped[Payroll] = relationship("Payroll", back_populates="steps")
