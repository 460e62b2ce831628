"""Domain event types for payroll orchestration and metering.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for logging and audit
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYROLL = "payroll"
    METERING = "metering"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: str  # Payroll id, or meter id for metering events
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: str,
        source_service: str = "snowrail",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payroll Events
# =============================================================================


@dataclass(frozen=True)
class PayrollStarted(DomainEvent):
    """A payroll record was created and orchestration began."""

    payroll_id: str
    meter_id: str | None
    amount: int
    currency: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollStepRecorded(DomainEvent):
    """A step result was appended to a payroll's log."""

    payroll_id: str
    step: str
    success: bool
    skipped: bool
    error: str | None
    transaction_hash: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollFinished(DomainEvent):
    """Orchestration ended; status is COMPLETED or FAILED."""

    payroll_id: str
    status: str
    failed_steps: tuple[str, ...]

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


# =============================================================================
# Metering Events
# =============================================================================


@dataclass(frozen=True)
class MeteringChallenged(DomainEvent):
    """A metered call was answered with a payment challenge."""

    meter_id: str
    price: str
    asset: str
    chain: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.METERING
