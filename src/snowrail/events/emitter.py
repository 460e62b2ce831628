"""In-process publisher for payroll and metering events.

Handlers subscribe by event class, by category, or to everything. A handler
that raises is logged and reported back to the publisher; it never stops the
remaining handlers or the payroll run that emitted the event.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

from snowrail.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]
AsyncEventHandler = Callable[[DomainEvent], Awaitable[None]]
AnyHandler = Union[EventHandler, AsyncEventHandler]


@dataclass(frozen=True)
class _Subscription:
    handler: AnyHandler
    is_async: bool
    event_names: frozenset[str] = frozenset()  # empty = any event
    categories: frozenset[EventCategory] = frozenset()  # empty = any category

    def matches(self, event: DomainEvent) -> bool:
        if self.event_names and event.event_type not in self.event_names:
            return False
        if self.categories and event.category not in self.categories:
            return False
        return True


class AsyncEventEmitter:
    """Asynchronous event emitter.

    Usage:
        emitter = AsyncEventEmitter()

        async def notify(event: PayrollFinished) -> None:
            await webhook.post(event.to_dict())

        emitter.on(PayrollFinished, notify)
        emitter.on_sync(PayrollStepRecorded, audit_log.append)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def on(
        self,
        event_type: type[DomainEvent] | list[type[DomainEvent]],
        handler: AsyncEventHandler,
    ) -> None:
        """Subscribe a coroutine handler to one or more event classes."""
        self._subscriptions.append(
            _Subscription(handler=handler, is_async=True, event_names=_type_names(event_type))
        )

    def on_sync(
        self,
        event_type: type[DomainEvent] | list[type[DomainEvent]],
        handler: EventHandler,
    ) -> None:
        """Subscribe a plain callable to one or more event classes."""
        self._subscriptions.append(
            _Subscription(handler=handler, is_async=False, event_names=_type_names(event_type))
        )

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: AsyncEventHandler,
    ) -> None:
        """Subscribe a coroutine handler to whole categories."""
        categories = frozenset(category) if isinstance(category, list) else frozenset({category})
        self._subscriptions.append(
            _Subscription(handler=handler, is_async=True, categories=categories)
        )

    def on_all(self, handler: AnyHandler) -> None:
        """Subscribe a handler (plain or coroutine) to every event."""
        self._subscriptions.append(
            _Subscription(handler=handler, is_async=inspect.iscoroutinefunction(handler))
        )

    def off(self, handler: AnyHandler) -> None:
        """Drop every subscription of a handler."""
        self._subscriptions = [s for s in self._subscriptions if s.handler is not handler]

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver an event to every matching handler.

        Plain handlers run inline in subscription order; coroutine handlers
        run concurrently afterwards.

        Returns:
            Exceptions raised by handlers, empty when all succeeded.
        """
        errors: list[Exception] = []
        pending: list[Awaitable[None]] = []

        for subscription in self._subscriptions:
            if not subscription.matches(event):
                continue
            if subscription.is_async:
                pending.append(_guarded(subscription.handler, event))  # type: ignore[arg-type]
                continue
            try:
                subscription.handler(event)
            except Exception as exc:
                logger.exception(
                    "Handler %r failed for %s", subscription.handler, event.event_type
                )
                errors.append(exc)

        if pending:
            outcomes = await asyncio.gather(*pending, return_exceptions=True)
            errors.extend(o for o in outcomes if isinstance(o, Exception))

        return errors


async def _guarded(handler: AsyncEventHandler, event: DomainEvent) -> None:
    try:
        await handler(event)
    except Exception:
        logger.exception("Async handler %r failed for %s", handler, event.event_type)
        raise


def logging_handler(event: DomainEvent) -> None:
    """Sync handler that writes every event to the module logger."""
    logger.info("%s %s", event.event_type, event.to_json())


def _type_names(event_type: Any) -> frozenset[str]:
    if isinstance(event_type, list):
        return frozenset(t.__name__ for t in event_type)
    return frozenset({event_type.__name__})
