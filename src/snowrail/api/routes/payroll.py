"""Payroll API endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from snowrail.api.dependencies import Container, metered
from snowrail.api.schemas import (
    ErrorResponse,
    PayrollAuditResponse,
    PayrollExecuteRequest,
    PayrollOutcomeResponse,
)
from snowrail.metering.gate import Allow

router = APIRouter(tags=["payroll"])

_METERED_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_402_PAYMENT_REQUIRED: {"model": ErrorResponse},
}


async def _run_payroll(
    allow: Allow,
    body: PayrollExecuteRequest,
    container: Container,
) -> dict[str, Any]:
    request = body.to_domain(container.config.orchestrator.currency_exponent)
    outcome = await container.orchestrator.execute(request, meter_id=allow.meter_id)
    return outcome.to_dict()


@router.post(
    "/api/payroll/execute",
    response_model=PayrollOutcomeResponse,
    responses=_METERED_RESPONSES,
)
async def execute_payroll(
    allow: Annotated[Allow, Depends(metered("payroll_execute"))],
    body: PayrollExecuteRequest,
    container: Container,
) -> dict[str, Any]:
    """
    Execute a payroll through both rails.

    Returns 200 with the consolidated outcome even when individual steps
    failed; check `success` and `errors`.
    """
    return await _run_payroll(allow, body, container)


@router.post(
    "/api/payment/process",
    response_model=PayrollOutcomeResponse,
    responses=_METERED_RESPONSES,
)
async def process_payment(
    allow: Annotated[Allow, Depends(metered("payment_process"))],
    body: PayrollExecuteRequest,
    container: Container,
) -> dict[str, Any]:
    """Run the complete payment flow, metered as payment_process."""
    return await _run_payroll(allow, body, container)


@router.get(
    "/api/payroll/{payroll_id}",
    response_model=PayrollAuditResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def get_payroll(payroll_id: str, container: Container) -> dict[str, Any]:
    """Get the recorded payroll, payments and step log."""
    audit = await container.orchestrator.get_audit(payroll_id)
    return audit.to_dict()
