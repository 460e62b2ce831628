"""Domain events for payroll orchestration and metering."""

from snowrail.events.emitter import (
    AsyncEventEmitter,
    AsyncEventHandler,
    EventHandler,
    logging_handler,
)
from snowrail.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    MeteringChallenged,
    PayrollFinished,
    PayrollStarted,
    PayrollStepRecorded,
)

__all__ = [
    "AsyncEventEmitter",
    "AsyncEventHandler",
    "EventHandler",
    "logging_handler",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "MeteringChallenged",
    "PayrollFinished",
    "PayrollStarted",
    "PayrollStepRecorded",
]
