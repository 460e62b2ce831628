"""Treasury contract endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from snowrail.api.dependencies import Container, metered
from snowrail.api.schemas import (
    ErrorResponse,
    ReceiptOut,
    SwapAuthorizeRequest,
    TreasuryProbeRequest,
)
from snowrail.config import DEFAULT_SWAP_TOKEN_ADDRESS
from snowrail.metering.gate import Allow

router = APIRouter(prefix="/api/treasury", tags=["treasury"])


@router.post(
    "/test",
    responses={status.HTTP_402_PAYMENT_REQUIRED: {"model": ErrorResponse}},
)
async def test_treasury(
    _: Annotated[Allow, Depends(metered("contract_test"))],
    body: TreasuryProbeRequest,
    container: Container,
) -> dict[str, Any]:
    """Exercise every treasury operation once and report per-operation results."""
    settlement = container.config.settlement

    report = await container.probe.run(
        caller=body.caller or settlement.operator_address,
        payee=body.payee or settlement.default_payee_address,
        token=body.token or settlement.token_address,
        swap_to_token=body.swap_to_token or DEFAULT_SWAP_TOKEN_ADDRESS,
        amount=body.amount,
        swap_max_amount=body.swap_max_amount,
    )
    return report.to_dict()


@router.post(
    "/swap/authorize",
    response_model=ReceiptOut,
    responses={
        status.HTTP_402_PAYMENT_REQUIRED: {"model": ErrorResponse},
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
    },
)
async def authorize_swap(
    _: Annotated[Allow, Depends(metered("swap_execute"))],
    body: SwapAuthorizeRequest,
    container: Container,
) -> dict[str, Any]:
    """Authorize a token swap allowance. Owner only."""
    receipt = await container.settlement.authorize_swap(
        body.caller, body.from_token, body.to_token, body.max_amount
    )
    return receipt.to_dict()
