"""In-memory treasury for local development and testing.

Mimics the treasury contract closely enough for the orchestrator: balances per
token, an owner, owner-gated execution and swap authorization, block numbers
and transaction hashes. Replace with a chain adapter for production.
"""

from __future__ import annotations

import asyncio
import secrets
from typing import Any

from snowrail.errors import AuthorizationError, SettlementError
from snowrail.settlement.base import PaymentRequest, TransactionReceipt

REQUEST_PAYMENT_GAS = 28_516
EXECUTE_PAYMENT_GAS = 61_204
AUTHORIZE_SWAP_GAS = 46_882


def _normalize(address: str) -> str:
    return address.lower()


class InMemoryTreasury:
    """Stub treasury contract.

    In production, this would:
    - Sign and send transactions through a node provider
    - Wait for receipts and map reverts to SettlementError
    - Read balances through the contract's view functions
    """

    def __init__(
        self,
        owner: str,
        balances: dict[str, int] | None = None,
        start_block: int = 1_000_000,
    ):
        """Initialize stub treasury.

        Args:
            owner: Address allowed to execute payments and authorize swaps.
            balances: Initial balances keyed by token address.
            start_block: Block number of the first mined transaction.
        """
        self._owner = owner
        self._balances: dict[str, int] = {
            _normalize(token): amount for token, amount in (balances or {}).items()
        }
        self._allowances: dict[tuple[str, str], int] = {}
        self._block_number = start_block
        self._lock = asyncio.Lock()
        self._failures: dict[str, str] = {}
        self.requests: list[PaymentRequest] = []
        self.calls: list[str] = []

    async def owner(self) -> str:
        self._record_call("owner")
        return self._owner

    async def get_token_balance(self, token: str) -> int:
        self._record_call("get_token_balance")
        return self._balances.get(_normalize(token), 0)

    async def request_payment(self, payee: str, amount: int, token: str) -> TransactionReceipt:
        """Log a payment intent (emits PaymentRequested on the real contract)."""
        self._record_call("request_payment")
        if amount <= 0:
            raise SettlementError("Amount must be positive")

        async with self._lock:
            receipt = self._mine(REQUEST_PAYMENT_GAS)
            self.requests.append(
                PaymentRequest(
                    payer=self._owner,
                    payee=payee,
                    amount=amount,
                    token=token,
                    tx_hash=receipt.tx_hash,
                )
            )
        return receipt

    async def execute_payment(
        self,
        payer: str,
        payee: str,
        amount: int,
        token: str,
    ) -> TransactionReceipt:
        """Transfer funds out of the treasury."""
        self._record_call("execute_payment")
        self._require_owner(payer)
        if amount <= 0:
            raise SettlementError("Amount must be positive")

        async with self._lock:
            key = _normalize(token)
            balance = self._balances.get(key, 0)
            if balance < amount:
                raise SettlementError(
                    f"Insufficient treasury balance: have {balance}, need {amount}"
                )
            self._balances[key] = balance - amount
            return self._mine(EXECUTE_PAYMENT_GAS)

    async def authorize_swap(
        self,
        caller: str,
        from_token: str,
        to_token: str,
        max_amount: int,
    ) -> TransactionReceipt:
        self._record_call("authorize_swap")
        self._require_owner(caller)
        if max_amount < 0:
            raise SettlementError("max_amount cannot be negative")

        async with self._lock:
            self._allowances[(_normalize(from_token), _normalize(to_token))] = max_amount
            return self._mine(AUTHORIZE_SWAP_GAS)

    async def swap_allowance(self, from_token: str, to_token: str) -> int:
        self._record_call("swap_allowance")
        return self._allowances.get((_normalize(from_token), _normalize(to_token)), 0)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def deposit(self, token: str, amount: int) -> None:
        """Credit the treasury (for testing)."""
        key = _normalize(token)
        self._balances[key] = self._balances.get(key, 0) + amount

    def fail_next(self, operation: str, reason: str = "execution reverted") -> None:
        """Make the next call to `operation` raise SettlementError (for testing)."""
        self._failures[operation] = reason

    def snapshot(self) -> dict[str, Any]:
        """Current balances and allowances (for testing)."""
        return {
            "balances": dict(self._balances),
            "allowances": dict(self._allowances),
            "block_number": self._block_number,
        }

    def _record_call(self, operation: str) -> None:
        self.calls.append(operation)
        reason = self._failures.pop(operation, None)
        if reason is not None:
            raise SettlementError(reason)

    def _require_owner(self, caller: str) -> None:
        if _normalize(caller) != _normalize(self._owner):
            raise AuthorizationError("Not owner")

    def _mine(self, gas_used: int) -> TransactionReceipt:
        self._block_number += 1
        return TransactionReceipt(
            tx_hash="0x" + secrets.token_hex(32),
            block_number=self._block_number,
            gas_used=str(gas_used),
        )
