"""Tests for the mock fiat rail."""

import random
import re

import pytest

from snowrail.config import RailConfig
from snowrail.rail import MOCK_FAILURE_REASON, MockRailClient, RailPaymentInput, RailPaymentStatus

PAYOUT = RailPaymentInput(payroll_id="payroll_1_abc", amount=2500, currency="USD")


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestMockRailClient:
    async def test_paid_when_failure_rate_zero(self):
        rail = MockRailClient(RailConfig(failure_rate=0.0, min_latency_seconds=0, max_latency_seconds=0))

        result = await rail.create_payment(PAYOUT)

        assert result.status == RailPaymentStatus.PAID
        assert result.failed is False
        assert result.failure_reason is None
        assert re.match(r"^rail_\d+_[0-9a-z]{7}$", result.id)
        assert rail.payments == [PAYOUT]

    async def test_failed_when_failure_rate_one(self):
        rail = MockRailClient(RailConfig(failure_rate=1.0, min_latency_seconds=0, max_latency_seconds=0))

        result = await rail.create_payment(PAYOUT)

        assert result.failed is True
        assert result.failure_reason == MOCK_FAILURE_REASON
        assert result.to_dict()["failureReason"] == MOCK_FAILURE_REASON

    async def test_latency_within_configured_range(self):
        sleep = FakeSleep()
        rail = MockRailClient(
            RailConfig(failure_rate=0.0, min_latency_seconds=1.0, max_latency_seconds=2.0),
            rng=random.Random(3),
            sleep=sleep,
        )

        for _ in range(5):
            await rail.create_payment(PAYOUT)

        assert len(sleep.delays) == 5
        assert all(1.0 <= d <= 2.0 for d in sleep.delays)

    async def test_failure_rate_is_roughly_honoured(self):
        rail = MockRailClient(
            RailConfig(failure_rate=0.1, min_latency_seconds=0, max_latency_seconds=0),
            rng=random.Random(11),
        )

        results = [await rail.create_payment(PAYOUT) for _ in range(400)]
        failures = sum(1 for r in results if r.failed)

        assert 15 <= failures <= 70


class TestRailConfig:
    def test_rejects_bad_failure_rate(self):
        with pytest.raises(ValueError):
            RailConfig(failure_rate=1.5)

    def test_rejects_inverted_latency(self):
        with pytest.raises(ValueError):
            RailConfig(min_latency_seconds=2.0, max_latency_seconds=1.0)
