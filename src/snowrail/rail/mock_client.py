"""Mock fiat rail for local development and testing.

Simulates payout latency and a fixed random failure rate. Replace with a real
rail API adapter for production.
"""

from __future__ import annotations

import asyncio
import datetime
import random
import string
import time
from collections.abc import Awaitable, Callable

from snowrail.config import RailConfig
from snowrail.rail.base import RailPaymentInput, RailPaymentResult, RailPaymentStatus

MOCK_FAILURE_REASON = "MOCK_RANDOM_FAILURE"

_ID_ALPHABET = string.digits + string.ascii_lowercase


class MockRailClient:
    """Stub fiat rail.

    In production, this would:
    - Create a withdrawal/payout through the rail provider's API
    - Map provider errors to RailError
    - Poll or receive webhooks for PROCESSING payouts
    """

    rail_name = "mock_rail"

    def __init__(
        self,
        config: RailConfig | None = None,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize mock rail.

        Args:
            config: Latency range and failure rate. Defaults to RailConfig().
            rng: Random source; pass a seeded Random for deterministic runs.
            sleep: Coroutine used to simulate latency.
        """
        self.config = config or RailConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.payments: list[RailPaymentInput] = []

    async def create_payment(self, payment: RailPaymentInput) -> RailPaymentResult:
        """Create a payout (mocked)."""
        self.payments.append(payment)

        delay = self._rng.uniform(
            self.config.min_latency_seconds,
            self.config.max_latency_seconds,
        )
        if delay > 0:
            await self._sleep(delay)

        payout_id = self._new_id()
        created_at = datetime.datetime.now(datetime.timezone.utc)

        if self._rng.random() < self.config.failure_rate:
            return RailPaymentResult(
                id=payout_id,
                status=RailPaymentStatus.FAILED,
                created_at=created_at,
                failure_reason=MOCK_FAILURE_REASON,
            )

        return RailPaymentResult(
            id=payout_id,
            status=RailPaymentStatus.PAID,
            created_at=created_at,
        )

    def _new_id(self) -> str:
        suffix = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(7))
        return f"rail_{int(time.time() * 1000)}_{suffix}"
