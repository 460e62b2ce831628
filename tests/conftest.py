"""Pytest fixtures for SnowRail tests."""

from __future__ import annotations

import random
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from snowrail.api.app import create_app
from snowrail.config import AppConfig, create_sandbox_config
from snowrail.database import create_session_factory, get_engine, init_db
from snowrail.events import AsyncEventEmitter, DomainEvent
from snowrail.rail.mock_client import MockRailClient
from snowrail.services.payroll_orchestrator import (
    Customer,
    PaymentLine,
    PayrollOrchestrator,
    PayrollRequest,
)
from snowrail.services.payroll_store import PayrollStore
from snowrail.settlement.treasury_stub import InMemoryTreasury

# Opening treasury balance for tests, in token minor units
TREASURY_BALANCE = 1_000_000_000

SENTINEL = "demo-token"


@pytest.fixture
def config() -> AppConfig:
    """Sandbox config: instant rail that never fails."""
    return create_sandbox_config()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a file-backed SQLite engine with all tables."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'snowrail-test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory) -> PayrollStore:
    return PayrollStore(session_factory)


@pytest.fixture
def treasury(config: AppConfig) -> InMemoryTreasury:
    """Stub treasury owned by the operator, funded in the payroll token."""
    return InMemoryTreasury(
        owner=config.settlement.operator_address,
        balances={config.settlement.token_address: TREASURY_BALANCE},
    )


@pytest.fixture
def rail(config: AppConfig) -> MockRailClient:
    return MockRailClient(config.rail, rng=random.Random(7))


@pytest.fixture
def events() -> list[DomainEvent]:
    return []


@pytest.fixture
def emitter(events: list[DomainEvent]) -> AsyncEventEmitter:
    """Emitter that records every event it sees."""
    emitter = AsyncEventEmitter()
    emitter.on_all(events.append)
    return emitter


@pytest.fixture
def orchestrator(
    store: PayrollStore,
    treasury: InMemoryTreasury,
    rail: MockRailClient,
    config: AppConfig,
    emitter: AsyncEventEmitter,
) -> PayrollOrchestrator:
    return PayrollOrchestrator(
        store=store,
        settlement=treasury,
        rail=rail,
        config=config.orchestrator,
        settlement_config=config.settlement,
        emitter=emitter,
    )


def make_request(**payment: Any) -> PayrollRequest:
    """Valid payroll request; keyword arguments override payment fields."""
    line = {"amount": 2500, "currency": "USD", "description": "October payroll"}
    line.update(payment)
    return PayrollRequest(
        customer=Customer(
            first_name="Ada",
            last_name="Lovelace",
            email_address="ada@example.com",
            telephone_number="+44 20 7946 0000",
        ),
        payment=PaymentLine(**line),
    )


@pytest.fixture
def payroll_request() -> PayrollRequest:
    return make_request()


@pytest.fixture
def build_request():
    """Factory for payroll requests with payment overrides."""
    return make_request


@pytest.fixture
def build_body():
    """Factory for payroll endpoint bodies with payment overrides."""
    return request_body


def request_body(**payment: Any) -> dict[str, Any]:
    """JSON body for the payroll endpoints."""
    line: dict[str, Any] = {"amount": 2500, "currency": "USD"}
    line.update(payment)
    return {
        "customer": {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email_address": "ada@example.com",
        },
        "payment": line,
    }


@pytest.fixture
def app(config, engine, treasury, rail, emitter):
    """App wired to the test database and stub collaborators."""
    return create_app(
        config,
        engine=engine,
        settlement=treasury,
        rail=rail,
        emitter=emitter,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
