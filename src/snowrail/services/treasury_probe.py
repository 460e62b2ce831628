"""Treasury contract probe.

Exercises each treasury operation once and reports per-operation results, so
an operator can confirm the contract is reachable and correctly permissioned.
Every operation is attempted even when an earlier one failed.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from snowrail.errors import AuthorizationError, CollaboratorError
from snowrail.services.payroll_orchestrator import call_with_deadline
from snowrail.settlement.base import SettlementService, TransactionReceipt

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProbeResult:
    """Result of one probed operation."""

    step: str
    success: bool
    receipt: TransactionReceipt | None = None
    error: str | None = None
    not_authorized: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"step": self.step, "success": self.success}
        if self.receipt is not None:
            result.update(self.receipt.to_dict())
        if self.error is not None:
            result["error"] = self.error
        if self.not_authorized:
            result["notAuthorized"] = True
        if self.data:
            result["data"] = dict(self.data)
        return result


@dataclass(frozen=True)
class ProbeReport:
    """All probe results plus a summary."""

    results: tuple[ProbeResult, ...]

    @property
    def transaction_hashes(self) -> list[str]:
        return [r.receipt.tx_hash for r in self.results if r.receipt is not None]

    @property
    def summary(self) -> dict[str, int]:
        successful = sum(1 for r in self.results if r.success)
        return {
            "total": len(self.results),
            "successful": successful,
            "failed": len(self.results) - successful,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "transactionHashes": self.transaction_hashes,
            "summary": self.summary,
        }


class TreasuryProbe:
    """Runs the treasury contract check sequence."""

    def __init__(self, settlement: SettlementService, timeout_seconds: float = 30.0):
        self.settlement = settlement
        self.timeout_seconds = timeout_seconds

    async def run(
        self,
        *,
        caller: str,
        payee: str,
        token: str,
        swap_to_token: str,
        amount: int,
        swap_max_amount: int,
    ) -> ProbeReport:
        """Probe owner, requestPayment, getTokenBalance, authorizeSwap, swapAllowances."""
        results: list[ProbeResult] = []

        try:
            owner = await self._call("owner", self.settlement.owner())
            results.append(
                ProbeResult(
                    step="read_owner",
                    success=True,
                    data={"owner": owner, "isOwner": owner.lower() == caller.lower()},
                )
            )
        except CollaboratorError as exc:
            results.append(ProbeResult(step="read_owner", success=False, error=str(exc)))

        try:
            receipt = await self._call(
                "requestPayment", self.settlement.request_payment(payee, amount, token)
            )
            results.append(ProbeResult(step="request_payment", success=True, receipt=receipt))
        except (CollaboratorError, AuthorizationError) as exc:
            results.append(ProbeResult(step="request_payment", success=False, error=str(exc)))

        try:
            balance = await self._call(
                "getTokenBalance", self.settlement.get_token_balance(token)
            )
            results.append(
                ProbeResult(
                    step="get_token_balance",
                    success=True,
                    data={"token": token, "balance": str(balance)},
                )
            )
        except CollaboratorError as exc:
            results.append(ProbeResult(step="get_token_balance", success=False, error=str(exc)))

        try:
            receipt = await self._call(
                "authorizeSwap",
                self.settlement.authorize_swap(caller, token, swap_to_token, swap_max_amount),
            )
            results.append(ProbeResult(step="authorize_swap", success=True, receipt=receipt))
        except AuthorizationError as exc:
            results.append(
                ProbeResult(
                    step="authorize_swap",
                    success=False,
                    error=f"caller is not the treasury owner: {exc}",
                    not_authorized=True,
                )
            )
        except CollaboratorError as exc:
            results.append(ProbeResult(step="authorize_swap", success=False, error=str(exc)))

        try:
            allowance = await self._call(
                "swapAllowances", self.settlement.swap_allowance(token, swap_to_token)
            )
            results.append(
                ProbeResult(
                    step="swap_allowance",
                    success=True,
                    data={"allowance": str(allowance)},
                )
            )
        except CollaboratorError as exc:
            results.append(ProbeResult(step="swap_allowance", success=False, error=str(exc)))

        report = ProbeReport(results=tuple(results))
        logger.info("Treasury probe finished: %s", report.summary)
        return report

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        return await call_with_deadline(operation, awaitable, self.timeout_seconds)
