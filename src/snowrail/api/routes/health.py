"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from snowrail.api.dependencies import Container
from snowrail.api.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get(
    "/api/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(container: Container) -> HealthResponse:
    """Check API and database health."""
    db_ok = True
    try:
        async with container.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        db_ok = False

    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        timestamp=datetime.now(timezone.utc),
        service="snowrail",
        network=container.config.network,
    )


@router.get(
    "/facilitator/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def facilitator_health(container: Container) -> HealthResponse:
    """Liveness of the payment facilitator surface."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        service="x402-facilitator",
        network=container.config.network,
    )
