"""Base protocol and types for the on-chain settlement service.

The orchestrator talks to the treasury contract only through this protocol.
Adapters raise SettlementError for failed operations and AuthorizationError
for owner-gated operations attempted by anyone else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class TransactionReceipt:
    """Receipt of a mined treasury transaction."""

    tx_hash: str
    block_number: int
    gas_used: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionHash": self.tx_hash,
            "blockNumber": self.block_number,
            "gasUsed": self.gas_used,
        }


@dataclass(frozen=True)
class PaymentRequest:
    """A payment intent logged on the ledger by request_payment."""

    payer: str
    payee: str
    amount: int
    token: str
    tx_hash: str


class SettlementService(Protocol):
    """Protocol for treasury contract adapters.

    All amounts are integer minor units of the token.
    """

    async def owner(self) -> str:
        """Return the treasury owner address."""
        ...

    async def get_token_balance(self, token: str) -> int:
        """Return the treasury balance held in `token` (read-only)."""
        ...

    async def request_payment(self, payee: str, amount: int, token: str) -> TransactionReceipt:
        """Log a payment intent on the ledger. Moves no funds."""
        ...

    async def execute_payment(
        self,
        payer: str,
        payee: str,
        amount: int,
        token: str,
    ) -> TransactionReceipt:
        """Move `amount` of `token` from the treasury to `payee`.

        Only meaningful after request_payment succeeded for the same payee.
        """
        ...

    async def authorize_swap(
        self,
        caller: str,
        from_token: str,
        to_token: str,
        max_amount: int,
    ) -> TransactionReceipt:
        """Set the swap allowance for a token pair. Owner only."""
        ...

    async def swap_allowance(self, from_token: str, to_token: str) -> int:
        """Return the current swap allowance for a token pair."""
        ...
