"""FastAPI dependencies for dependency injection."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from snowrail.config import AppConfig
from snowrail.errors import PaymentRequiredError
from snowrail.events import AsyncEventEmitter, EventMetadata, MeteringChallenged
from snowrail.metering.gate import Allow, Challenge, MeteringGate
from snowrail.services.payroll_orchestrator import PayrollOrchestrator
from snowrail.services.treasury_probe import TreasuryProbe
from snowrail.settlement.base import SettlementService


@dataclass(frozen=True)
class ServiceContainer:
    """Services wired once per app instance."""

    config: AppConfig
    session_factory: async_sessionmaker[AsyncSession]
    gate: MeteringGate
    orchestrator: PayrollOrchestrator
    settlement: SettlementService
    probe: TreasuryProbe
    emitter: AsyncEventEmitter

    async def admit(self, resource_id: str, *tokens: str | None) -> Allow:
        """Run the metering gate for a call.

        The first non-empty token is presented. A challenge is announced on
        the emitter and raised as PaymentRequiredError.
        """
        presented = next((t for t in tokens if t), None)
        decision = self.gate.evaluate(resource_id, presented)
        if isinstance(decision, Challenge):
            challenge = decision.challenge
            await self.emitter.emit(
                MeteringChallenged(
                    metadata=EventMetadata.create(correlation_id=challenge.meter_id),
                    meter_id=challenge.meter_id,
                    price=challenge.price,
                    asset=challenge.asset,
                    chain=challenge.chain,
                )
            )
            raise PaymentRequiredError(challenge)
        return decision


def get_container(request: Request) -> ServiceContainer:
    """Get the app's service container."""
    return request.app.state.container


async def get_payment_header(
    x_payment: Annotated[str | None, Header(alias="X-PAYMENT")] = None,
) -> str | None:
    """Extract the payment proof token from the X-PAYMENT header."""
    return x_payment


# Type aliases for cleaner dependency injection
Container = Annotated[ServiceContainer, Depends(get_container)]
PaymentHeader = Annotated[str | None, Depends(get_payment_header)]


async def _body_token(request: Request) -> str | None:
    """payment_token from a JSON object body, if there is one."""
    if not await request.body():
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    token = body.get("payment_token") if isinstance(body, dict) else None
    return token if isinstance(token, str) else None


def metered(resource_id: str) -> Callable[..., Awaitable[Allow]]:
    """Dependency that admits a call to a metered resource.

    FastAPI solves dependencies before it validates the body, so an unpaid
    call gets the 402 challenge even when its body is malformed. Bodies that
    are not JSON at all are still rejected first with a 400.
    """

    async def admit_call(
        request: Request,
        container: Container,
        x_payment: PaymentHeader,
    ) -> Allow:
        return await container.admit(resource_id, x_payment, await _body_token(request))

    return admit_call
