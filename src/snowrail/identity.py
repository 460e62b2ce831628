"""Agent identity card.

Static capability descriptor other agents read to discover what this service
does, which protocols and networks it speaks, and what each metered resource
costs.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from snowrail.config import AppConfig
from snowrail.metering.gate import MeteringGate

AGENT_CARD_VERSION = "1.0"
METERING_PROTOCOL_VERSION = "8004-alpha"
CREATED_AT = "2025-12-04T00:00:00Z"

CAPABILITIES = (
    "treasury_management",
    "cross_border_payments",
    "payroll_execution",
    "crypto_to_fiat_bridge",
    "x402_payments",
    "eip3009_authorization",
    "dex_swaps",
    "payment_batching",
    "autonomous_operations",
)

PROTOCOLS = ("x402", "erc8004", "eip3009", "a2a", "rail_api")

NETWORKS = ("avalanche", "avalanche-fuji")


def build_agent_card(config: AppConfig, gate: MeteringGate) -> dict[str, Any]:
    """Build the identity card for this deployment."""
    return {
        "erc8004Version": AGENT_CARD_VERSION,
        "agent": {
            "id": "snowrail-treasury-v1",
            "name": "SnowRail Treasury Agent",
            "description": (
                "Autonomous treasury orchestration for cross-border payroll. "
                "Bridges crypto (Avalanche) with fiat (bank accounts) using x402 "
                "for machine-to-machine payments."
            ),
            "version": "1.0.0",
            "capabilities": list(CAPABILITIES),
            "protocols": list(PROTOCOLS),
            "networks": list(NETWORKS),
            "validation": {
                "type": "SMART_CONTRACT",
                "address": config.settlement.treasury_address,
                "chainId": config.chain_id,
                "trustLevel": 3,
            },
        },
        "endpoints": {
            "baseUrl": config.base_url,
            "health": "/api/health",
            "identity": "/agent/identity",
            "x402Facilitator": "/facilitator/health",
            "payrollExecute": "/api/payroll/execute",
            "paymentProcess": "/api/payment/process",
        },
        "metering": {
            "protocol": "x402",
            "version": METERING_PROTOCOL_VERSION,
            "resources": [
                {
                    "id": c.meter_id,
                    "price": c.price,
                    "asset": c.asset,
                    "chain": c.chain,
                    "description": c.description,
                }
                for c in gate.price_list()
            ],
        },
        "audit": {
            "permanentStorage": True,
            "storageProtocol": "arweave",
            "auditTrail": True,
        },
        "createdAt": CREATED_AT,
        "updatedAt": datetime.now(timezone.utc).isoformat(),
    }


def is_compatible_agent(card: dict[str, Any]) -> bool:
    """Whether another agent's card speaks x402 on a network we operate on."""
    agent = card.get("agent") or {}
    if "x402" not in (agent.get("protocols") or []):
        return False
    return any(network in NETWORKS for network in agent.get("networks") or [])
