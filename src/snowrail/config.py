"""Configuration for the SnowRail treasury service.

Two layers:

    Settings   - process settings loaded once from the environment (.env aware).
    AppConfig  - explicit, immutable runtime configuration handed to the
                 metering gate, orchestrator and collaborators at construction.

Rules for the runtime layer:
    1. No env vars. Everything is passed in.
    2. No globals. Each app instance has its own config.
    3. Immutable after creation (frozen dataclasses).

Pattern:
    settings = get_settings()
    config = create_app_config(settings)
    gate = MeteringGate(config.metering)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache

from dotenv import load_dotenv

METERED_RESOURCE_IDS = (
    "payroll_execute",
    "payment_process",
    "contract_test",
    "payment_single",
    "swap_execute",
)

NETWORK_CHAIN_IDS = {
    "fuji": 43113,
    "mainnet": 43114,
}

# USDC on Avalanche C-Chain
DEFAULT_TOKEN_ADDRESS = "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E"
# USDT on Avalanche C-Chain
DEFAULT_SWAP_TOKEN_ADDRESS = "0x9702230A8Ea53601f5cD2dc00fDBc13d4dF4A8c7"
DEFAULT_TREASURY_ADDRESS = "0xcba2318C6C4d9c98f7732c5fDe09D1BAe12c27be"
DEFAULT_OPERATOR_ADDRESS = "0x1111111111111111111111111111111111111111"
DEFAULT_PAYEE_ADDRESS = "0x60aE616a2155Ee3d9A68541Ba4544862310933d4"


# =============================================================================
# Process settings
# =============================================================================


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    database_url: str
    network: str
    sentinel_token: str
    treasury_contract_address: str
    token_address: str
    operator_address: str
    default_payee_address: str
    collaborator_timeout_seconds: float
    rail_failure_rate: float
    rail_min_latency_seconds: float
    rail_max_latency_seconds: float
    host: str
    port: int
    debug: bool
    log_level: str

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./snowrail.db"),
            network=os.getenv("NETWORK", "fuji"),
            sentinel_token=os.getenv("SENTINEL_TOKEN", "demo-token"),
            treasury_contract_address=os.getenv(
                "TREASURY_CONTRACT_ADDRESS", DEFAULT_TREASURY_ADDRESS
            ),
            token_address=os.getenv("TOKEN_ADDRESS", DEFAULT_TOKEN_ADDRESS),
            operator_address=os.getenv("OPERATOR_ADDRESS", DEFAULT_OPERATOR_ADDRESS),
            default_payee_address=os.getenv("DEFAULT_PAYEE_ADDRESS", DEFAULT_PAYEE_ADDRESS),
            collaborator_timeout_seconds=float(os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "30")),
            rail_failure_rate=float(os.getenv("RAIL_FAILURE_RATE", "0.1")),
            rail_min_latency_seconds=float(os.getenv("RAIL_MIN_LATENCY_SECONDS", "1.0")),
            rail_max_latency_seconds=float(os.getenv("RAIL_MAX_LATENCY_SECONDS", "2.0")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "4000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()


# =============================================================================
# Runtime configuration
# =============================================================================


@dataclass(frozen=True)
class MeteredResource:
    """
    Price entry for one metered resource.

    Attributes:
        resource_id: Identifier the gate is evaluated against.
        price: Decimal string, e.g. "0.1".
        asset: Asset the price is denominated in.
        description: Human readable description shown in challenges.
    """

    resource_id: str
    price: str
    asset: str
    description: str

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.resource_id:
            raise ValueError("resource_id is required")
        try:
            price = Decimal(self.price)
        except InvalidOperation as exc:
            raise ValueError(f"price must be a decimal string, got {self.price!r}") from exc
        if price < 0:
            raise ValueError("price cannot be negative")


DEFAULT_PRICE_TABLE: tuple[MeteredResource, ...] = (
    MeteredResource(
        resource_id="payroll_execute",
        price="1",
        asset="USDC",
        description="Execute international payroll for up to 10 freelancers",
    ),
    MeteredResource(
        resource_id="payment_process",
        price="0.1",
        asset="USDC",
        description="Complete payment flow: Rail + Blockchain + Facilitator integration",
    ),
    MeteredResource(
        resource_id="contract_test",
        price="0.1",
        asset="USDC",
        description="Test Treasury contract operations",
    ),
    MeteredResource(
        resource_id="payment_single",
        price="0.1",
        asset="USDC",
        description="Execute a single payment to one recipient",
    ),
    MeteredResource(
        resource_id="swap_execute",
        price="0.5",
        asset="USDC",
        description="Execute a token swap through DEX",
    ),
)


@dataclass(frozen=True)
class MeteringConfig:
    """
    Metering gate configuration.

    Attributes:
        network: Chain the metering prices are quoted on ("fuji" or "mainnet").
        sentinel_token: Stand-in credential accepted in place of real
            payment verification.
        resources: Price table. Resource ids must be unique.
    """

    network: str = "fuji"
    sentinel_token: str = "demo-token"
    resources: tuple[MeteredResource, ...] = DEFAULT_PRICE_TABLE

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.network not in NETWORK_CHAIN_IDS:
            raise ValueError(f"network must be one of {sorted(NETWORK_CHAIN_IDS)}")
        if not self.sentinel_token:
            raise ValueError("sentinel_token is required")
        ids = [r.resource_id for r in self.resources]
        if len(ids) != len(set(ids)):
            raise ValueError("Metered resource ids must be unique")

    def get_resource(self, resource_id: str) -> MeteredResource | None:
        """Get price entry by resource id."""
        for resource in self.resources:
            if resource.resource_id == resource_id:
                return resource
        return None


@dataclass(frozen=True)
class SettlementConfig:
    """
    On-chain settlement configuration.

    Attributes:
        treasury_address: Address of the treasury contract.
        token_address: Token payroll is settled in.
        operator_address: Account the service signs as (the payer).
        default_payee_address: Payee used when a request carries no recipient.
    """

    treasury_address: str = DEFAULT_TREASURY_ADDRESS
    token_address: str = DEFAULT_TOKEN_ADDRESS
    operator_address: str = DEFAULT_OPERATOR_ADDRESS
    default_payee_address: str = DEFAULT_PAYEE_ADDRESS

    def __post_init__(self) -> None:
        """Validate configuration."""
        for name in ("treasury_address", "token_address", "operator_address", "default_payee_address"):
            value = getattr(self, name)
            if not value.startswith("0x") or len(value) != 42:
                raise ValueError(f"{name} must be a 0x-prefixed 20-byte address")


@dataclass(frozen=True)
class RailConfig:
    """
    Mock fiat rail configuration.

    Attributes:
        failure_rate: Probability a payout comes back FAILED. Default 0.1.
        min_latency_seconds: Lower bound of simulated payout latency.
        max_latency_seconds: Upper bound of simulated payout latency.
    """

    failure_rate: float = 0.1
    min_latency_seconds: float = 1.0
    max_latency_seconds: float = 2.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 0.0 <= self.failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        if self.min_latency_seconds < 0:
            raise ValueError("min_latency_seconds cannot be negative")
        if self.max_latency_seconds < self.min_latency_seconds:
            raise ValueError("max_latency_seconds must be >= min_latency_seconds")


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Payroll orchestrator configuration.

    Attributes:
        collaborator_timeout_seconds: Deadline for each settlement/rail call.
            A call exceeding it is recorded as a failed step.
        rail_requires_onchain: If True, the fiat payout is skipped when an
            on-chain step failed. Default False (rails are independent).
        currency_exponent: Minor-unit exponent for amounts. Default 2 (cents).
    """

    collaborator_timeout_seconds: float = 30.0
    rail_requires_onchain: bool = False
    currency_exponent: int = 2

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.collaborator_timeout_seconds <= 0:
            raise ValueError("collaborator_timeout_seconds must be positive")
        if not 0 <= self.currency_exponent <= 18:
            raise ValueError("currency_exponent must be between 0 and 18")


@dataclass(frozen=True)
class AppConfig:
    """
    Complete runtime configuration.

    Attributes:
        metering: Metering gate price table and sentinel.
        settlement: Treasury addresses.
        rail: Mock fiat rail behaviour.
        orchestrator: Orchestrator deadlines and policies.
        base_url: Public base URL advertised by the agent identity card.
    """

    metering: MeteringConfig = field(default_factory=MeteringConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    rail: RailConfig = field(default_factory=RailConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    base_url: str = "http://localhost:4000"

    @property
    def network(self) -> str:
        """Network the service operates on."""
        return self.metering.network

    @property
    def chain_id(self) -> int:
        """EVM chain id for the configured network."""
        return NETWORK_CHAIN_IDS[self.metering.network]


# =============================================================================
# Configuration Builders
# =============================================================================


def create_app_config(settings: Settings) -> AppConfig:
    """
    Build the runtime configuration from process settings.

    This is the only place environment-derived values enter the runtime
    configuration.
    """
    return AppConfig(
        metering=MeteringConfig(
            network=settings.network,
            sentinel_token=settings.sentinel_token,
        ),
        settlement=SettlementConfig(
            treasury_address=settings.treasury_contract_address,
            token_address=settings.token_address,
            operator_address=settings.operator_address,
            default_payee_address=settings.default_payee_address,
        ),
        rail=RailConfig(
            failure_rate=settings.rail_failure_rate,
            min_latency_seconds=settings.rail_min_latency_seconds,
            max_latency_seconds=settings.rail_max_latency_seconds,
        ),
        orchestrator=OrchestratorConfig(
            collaborator_timeout_seconds=settings.collaborator_timeout_seconds,
        ),
        base_url=f"http://localhost:{settings.port}",
    )


def create_sandbox_config(
    *,
    rail_failure_rate: float = 0.0,
    collaborator_timeout_seconds: float = 5.0,
) -> AppConfig:
    """
    Create a sandbox configuration for local runs and tests.

    The fiat rail answers instantly and, by default, never fails.
    """
    return AppConfig(
        rail=RailConfig(
            failure_rate=rail_failure_rate,
            min_latency_seconds=0.0,
            max_latency_seconds=0.0,
        ),
        orchestrator=OrchestratorConfig(
            collaborator_timeout_seconds=collaborator_timeout_seconds,
        ),
    )
