"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from snowrail.api.dependencies import ServiceContainer
from snowrail.api.error_handlers import register_error_handlers
from snowrail.api.routes import agent_router, health_router, payroll_router, treasury_router
from snowrail.config import AppConfig, create_app_config, get_settings
from snowrail.database import create_session_factory, get_engine, init_db
from snowrail.events import AsyncEventEmitter, logging_handler
from snowrail.metering.gate import MeteringGate
from snowrail.rail.base import FiatRailClient
from snowrail.rail.mock_client import MockRailClient
from snowrail.services.payroll_orchestrator import PayrollOrchestrator
from snowrail.services.payroll_store import PayrollStore
from snowrail.services.treasury_probe import TreasuryProbe
from snowrail.settlement.base import SettlementService
from snowrail.settlement.treasury_stub import InMemoryTreasury

logger = logging.getLogger(__name__)

# Opening balance of the stub treasury, in token minor units
SANDBOX_TREASURY_BALANCE = 1_000_000_000_000


def build_container(
    config: AppConfig,
    engine: AsyncEngine,
    *,
    settlement: SettlementService | None = None,
    rail: FiatRailClient | None = None,
    emitter: AsyncEventEmitter | None = None,
) -> ServiceContainer:
    """Wire the gate, store, collaborators and orchestrator for one app."""
    if settlement is None:
        settlement = InMemoryTreasury(
            owner=config.settlement.operator_address,
            balances={config.settlement.token_address: SANDBOX_TREASURY_BALANCE},
        )
    if rail is None:
        rail = MockRailClient(config.rail)
    if emitter is None:
        emitter = AsyncEventEmitter()
        emitter.on_all(logging_handler)

    session_factory = create_session_factory(engine)
    orchestrator = PayrollOrchestrator(
        store=PayrollStore(session_factory),
        settlement=settlement,
        rail=rail,
        config=config.orchestrator,
        settlement_config=config.settlement,
        emitter=emitter,
    )
    return ServiceContainer(
        config=config,
        session_factory=session_factory,
        gate=MeteringGate(config.metering),
        orchestrator=orchestrator,
        settlement=settlement,
        probe=TreasuryProbe(settlement, config.orchestrator.collaborator_timeout_seconds),
        emitter=emitter,
    )


def create_app(
    config: AppConfig | None = None,
    *,
    engine: AsyncEngine | None = None,
    settlement: SettlementService | None = None,
    rail: FiatRailClient | None = None,
    emitter: AsyncEventEmitter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without arguments, configuration and the database come from the
    environment. Tests pass an explicit config, engine and collaborators.
    """
    if config is None or engine is None:
        settings = get_settings()
        config = config or create_app_config(settings)
        engine = engine or get_engine(settings.database_url, echo=settings.debug)

    container = build_container(
        config, engine, settlement=settlement, rail=rail, emitter=emitter
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        await init_db(engine)
        logger.info("SnowRail started on %s (chain %s)", config.network, config.chain_id)
        yield
        await engine.dispose()

    app = FastAPI(
        title="SnowRail Treasury API",
        description="Dual-rail payroll orchestration with pay-per-call metering",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(agent_router)
    app.include_router(payroll_router)
    app.include_router(treasury_router)

    return app
