"""API routes."""

from snowrail.api.routes.agent import router as agent_router
from snowrail.api.routes.health import router as health_router
from snowrail.api.routes.payroll import router as payroll_router
from snowrail.api.routes.treasury import router as treasury_router

__all__ = ["agent_router", "health_router", "payroll_router", "treasury_router"]
