"""Agent identity endpoint."""

from typing import Any

from fastapi import APIRouter

from snowrail.api.dependencies import Container
from snowrail.identity import build_agent_card

router = APIRouter(tags=["agent"])


@router.get("/agent/identity")
async def agent_identity(container: Container) -> dict[str, Any]:
    """Capability descriptor for agent discovery."""
    return build_agent_card(container.config, container.gate)
