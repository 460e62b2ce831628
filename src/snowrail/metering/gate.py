"""Metering Gate - pay-per-call (HTTP 402) admission decisions.

The gate decides, per call, whether a metered resource may proceed or must be
challenged for payment. It is stateless and never moves funds.

Real payment verification is out of scope: the configured sentinel token is
accepted unconditionally and every other token is treated as unverified.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any, Union

from snowrail.config import MeteringConfig
from snowrail.errors import ConfigurationError, PaymentRequiredError


@dataclass(frozen=True)
class MeteringChallenge:
    """Price quote a caller must satisfy before a resource will run."""

    meter_id: str
    price: str
    asset: str
    chain: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        """Wire format."""
        return {
            "meterId": self.meter_id,
            "price": self.price,
            "asset": self.asset,
            "chain": self.chain,
            "description": self.description,
        }


@dataclass(frozen=True)
class Allow:
    """The call may proceed."""

    meter_id: str

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Challenge:
    """The call must be retried with proof of payment."""

    challenge: MeteringChallenge

    @property
    def allowed(self) -> bool:
        return False

    @property
    def meter_id(self) -> str:
        return self.challenge.meter_id


GateDecision = Union[Allow, Challenge]


class MeteringGate:
    """Metering gate evaluation service.

    Usage:
        gate = MeteringGate(config.metering)

        decision = gate.evaluate("payroll_execute", token)
        if not decision.allowed:
            return challenge_response(decision.challenge)

        # or let the HTTP layer turn the challenge into a 402
        gate.require("payroll_execute", token)
    """

    def __init__(self, config: MeteringConfig):
        self.config = config

    def challenge_for(self, resource_id: str) -> MeteringChallenge:
        """Build the challenge for a resource.

        Raises:
            ConfigurationError: If the resource has no price table entry.
        """
        resource = self.config.get_resource(resource_id)
        if resource is None:
            raise ConfigurationError(f"Unknown metered resource '{resource_id}'")

        return MeteringChallenge(
            meter_id=resource.resource_id,
            price=resource.price,
            asset=resource.asset,
            chain=self.config.network,
            description=resource.description,
        )

    def evaluate(self, resource_id: str, presented_token: str | None = None) -> GateDecision:
        """Evaluate a call against the gate.

        Args:
            resource_id: Metered resource being called.
            presented_token: Caller-presented proof of payment, if any.

        Returns:
            Allow if the token verifies, otherwise Challenge carrying the
            resource's price quote.
        """
        challenge = self.challenge_for(resource_id)
        if self._verify(presented_token):
            return Allow(meter_id=challenge.meter_id)
        return Challenge(challenge=challenge)

    def require(self, resource_id: str, presented_token: str | None = None) -> Allow:
        """Like evaluate, but raise PaymentRequiredError instead of returning a Challenge."""
        decision = self.evaluate(resource_id, presented_token)
        if isinstance(decision, Challenge):
            raise PaymentRequiredError(decision.challenge)
        return decision

    def price_list(self) -> list[MeteringChallenge]:
        """Challenges for every configured resource, in table order."""
        return [self.challenge_for(r.resource_id) for r in self.config.resources]

    def _verify(self, token: str | None) -> bool:
        if not token:
            return False
        return hmac.compare_digest(
            token.strip().encode("utf-8"),
            self.config.sentinel_token.encode("utf-8"),
        )
