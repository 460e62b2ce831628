"""SQLAlchemy ORM models."""

from snowrail.models.base import Base, TimestampMixin
from snowrail.models.payroll import Payroll, PayrollPayment, PayrollStep

__all__ = [
    "Base",
    "TimestampMixin",
    "Payroll",
    "PayrollPayment",
    "PayrollStep",
]
