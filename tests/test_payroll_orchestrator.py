"""Tests for the payroll orchestrator.

Tests verify:
1. The happy path walks all six steps and completes the payroll
2. Collaborator failures are recorded on their step, never raised
3. A failed payment request skips execution but not the fiat rail
4. Validation failures abort before any collaborator is called
5. Every step is persisted in order and readable through the audit
"""

import asyncio
import datetime
import random

import pytest

from snowrail.config import OrchestratorConfig, RailConfig
from snowrail.errors import (
    PayrollNotFoundError,
    RailError,
    StorageUnavailableError,
    ValidationError,
)
from snowrail.events import PayrollFinished, PayrollStarted, PayrollStepRecorded
from snowrail.rail import MOCK_FAILURE_REASON, MockRailClient, RailPaymentResult, RailPaymentStatus
from snowrail.database import create_session_factory, get_engine
from snowrail.services.payroll_orchestrator import (
    Customer,
    PayrollOrchestrator,
    PayrollRequest,
    validate_payroll_request,
)
from snowrail.services.payroll_store import PayrollStore
from snowrail.services.state_machine import PayrollStatus
from snowrail.settlement.treasury_stub import InMemoryTreasury

ALL_STEPS = [
    "payroll_created",
    "payments_created",
    "treasury_checked",
    "onchain_requested",
    "onchain_executed",
    "rail_processed",
]

RECIPIENT = "0x3333333333333333333333333333333333333333"


def build_orchestrator(store, settlement, rail, config, emitter=None, **orchestrator_overrides):
    orchestrator_config = OrchestratorConfig(
        collaborator_timeout_seconds=orchestrator_overrides.pop(
            "collaborator_timeout_seconds", config.orchestrator.collaborator_timeout_seconds
        ),
        **orchestrator_overrides,
    )
    return PayrollOrchestrator(
        store=store,
        settlement=settlement,
        rail=rail,
        config=orchestrator_config,
        settlement_config=config.settlement,
        emitter=emitter,
    )


class SlowTreasury(InMemoryTreasury):
    """Treasury whose balance read never answers in time."""

    async def get_token_balance(self, token: str) -> int:
        await asyncio.sleep(5)
        return await super().get_token_balance(token)


class ProcessingRail:
    """Rail that accepts payouts but has not paid them yet."""

    rail_name = "processing_rail"

    async def create_payment(self, payment):
        return RailPaymentResult(
            id="rail_1_pending",
            status=RailPaymentStatus.PROCESSING,
            created_at=datetime.datetime.now(datetime.timezone.utc),
        )


class UnreachableTreasury(InMemoryTreasury):
    """Treasury whose node drops the connection on payment requests."""

    async def request_payment(self, payee: str, amount: int, token: str):
        raise ConnectionError("node unreachable")


class BrokenRail:
    """Rail whose API cannot be reached."""

    rail_name = "broken_rail"

    async def create_payment(self, payment):
        raise RailError("connection refused")


class GarbledRail:
    """Rail that answers with a payload it cannot decode."""

    rail_name = "garbled_rail"

    async def create_payment(self, payment):
        raise ValueError("unexpected response body")


class TestHappyPath:
    """All collaborators succeed."""

    async def test_completes_all_steps(self, orchestrator, payroll_request, treasury, rail):
        outcome = await orchestrator.execute(payroll_request, meter_id="payroll_execute")

        assert outcome.success is True
        assert outcome.status == PayrollStatus.COMPLETED
        assert outcome.steps == {step: True for step in ALL_STEPS}
        assert outcome.errors == ()
        assert outcome.failed_step is None
        assert len(outcome.request_tx_hashes) == 1
        assert len(outcome.execute_tx_hashes) == 1
        assert outcome.rail_withdrawal_id.startswith("rail_")
        assert outcome.rail_status == "PAID"
        assert [r.step.value for r in outcome.log] == ALL_STEPS

        assert treasury.calls == ["get_token_balance", "request_payment", "execute_payment"]
        assert rail.payments[0].payroll_id == outcome.payroll_id
        assert rail.payments[0].amount == 2500

    async def test_funds_move_to_default_payee(self, orchestrator, payroll_request, treasury, config):
        await orchestrator.execute(payroll_request)

        assert treasury.requests[0].payee == config.settlement.default_payee_address
        balance = await treasury.get_token_balance(config.settlement.token_address)
        assert balance == 1_000_000_000 - 2500

    async def test_recipient_overrides_default_payee(self, orchestrator, build_request, treasury):
        await orchestrator.execute(build_request(recipient=RECIPIENT))
        assert treasury.requests[0].payee == RECIPIENT

    async def test_wire_format(self, orchestrator, payroll_request):
        outcome = await orchestrator.execute(payroll_request)
        data = outcome.to_dict()

        assert data["success"] is True
        assert data["payrollId"] == outcome.payroll_id
        assert data["status"] == "COMPLETED"
        assert list(data["steps"]) == ALL_STEPS
        assert data["transactions"]["request_tx_hashes"] == list(outcome.request_tx_hashes)
        assert data["rail"] == {"withdrawal_id": outcome.rail_withdrawal_id, "status": "PAID"}
        assert data["errors"] == []

    async def test_audit_records_everything(self, orchestrator, payroll_request):
        outcome = await orchestrator.execute(payroll_request, meter_id="payment_process")
        audit = await orchestrator.get_audit(outcome.payroll_id)

        assert audit.status == "COMPLETED"
        assert audit.meter_id == "payment_process"
        assert audit.completed_at is not None
        assert [s.step.value for s in audit.steps] == ALL_STEPS
        assert audit.steps[3].transaction_hash == outcome.request_tx_hashes[0]
        assert audit.steps[4].transaction_hash == outcome.execute_tx_hashes[0]

        payment = audit.payments[0]
        assert payment.status == "PAID"
        assert payment.amount == 2500
        assert payment.currency == "USD"
        assert payment.rail_payment_id == outcome.rail_withdrawal_id

    async def test_emits_events(self, orchestrator, payroll_request, events):
        outcome = await orchestrator.execute(payroll_request)

        started = [e for e in events if isinstance(e, PayrollStarted)]
        recorded = [e for e in events if isinstance(e, PayrollStepRecorded)]
        finished = [e for e in events if isinstance(e, PayrollFinished)]

        assert len(started) == 1 and started[0].amount == 2500
        assert [e.step for e in recorded] == ALL_STEPS
        assert finished[0].status == "COMPLETED"
        assert finished[0].failed_steps == ()
        assert all(e.metadata.correlation_id == outcome.payroll_id for e in events)

    async def test_each_run_gets_new_ids(self, orchestrator, payroll_request):
        first = await orchestrator.execute(payroll_request)
        second = await orchestrator.execute(payroll_request)

        assert first.payroll_id != second.payroll_id
        assert set(first.request_tx_hashes).isdisjoint(second.request_tx_hashes)


class TestOnchainFailures:
    """Settlement failures are captured per step."""

    async def test_request_failure_skips_execute(self, orchestrator, payroll_request, treasury, rail):
        treasury.fail_next("request_payment", "execution reverted")

        outcome = await orchestrator.execute(payroll_request)

        assert outcome.status == PayrollStatus.FAILED
        assert outcome.steps["onchain_requested"] is False
        assert outcome.steps["onchain_executed"] is False
        assert outcome.steps["rail_processed"] is True
        assert outcome.request_tx_hashes == ()
        assert outcome.execute_tx_hashes == ()
        assert "execute_payment" not in treasury.calls
        assert len(rail.payments) == 1

        errors = {e["step"]: e["error"] for e in outcome.errors}
        assert errors["onchain_requested"] == "requestPayment failed: execution reverted"
        assert errors["onchain_executed"] == "skipped: onchain_requested failed"
        assert outcome.log[4].skipped is True
        assert outcome.failed_step == "onchain_requested"

    async def test_execute_failure_keeps_request_hash(self, store, rail, config, build_request):
        empty = InMemoryTreasury(owner=config.settlement.operator_address)
        orchestrator = build_orchestrator(store, empty, rail, config)

        outcome = await orchestrator.execute(build_request())

        assert outcome.steps["treasury_checked"] is True
        assert outcome.steps["onchain_requested"] is True
        assert outcome.steps["onchain_executed"] is False
        assert len(outcome.request_tx_hashes) == 1
        assert outcome.execute_tx_hashes == ()
        error = outcome.errors[0]["error"]
        assert error.startswith("executePayment failed, funds requested but not moved")
        assert "Insufficient" in error

    async def test_treasury_read_failure_does_not_block(self, orchestrator, payroll_request, treasury):
        treasury.fail_next("get_token_balance", "rpc unavailable")

        outcome = await orchestrator.execute(payroll_request)

        assert outcome.status == PayrollStatus.FAILED
        assert outcome.steps["treasury_checked"] is False
        assert outcome.steps["onchain_requested"] is True
        assert outcome.steps["onchain_executed"] is True
        assert outcome.steps["rail_processed"] is True
        assert outcome.errors == ({"step": "treasury_checked", "error": "rpc unavailable"},)

    async def test_operator_not_owner(self, store, rail, config, build_request):
        foreign = InMemoryTreasury(
            owner="0x4444444444444444444444444444444444444444",
            balances={config.settlement.token_address: 10_000},
        )
        orchestrator = build_orchestrator(store, foreign, rail, config)

        outcome = await orchestrator.execute(build_request())

        assert outcome.steps["onchain_executed"] is False
        assert "Not owner" in outcome.errors[0]["error"]

    async def test_timeout_is_recorded(self, store, rail, config, build_request):
        slow = SlowTreasury(
            owner=config.settlement.operator_address,
            balances={config.settlement.token_address: 10_000},
        )
        orchestrator = build_orchestrator(
            store, slow, rail, config, collaborator_timeout_seconds=0.05
        )

        outcome = await orchestrator.execute(build_request())

        assert outcome.steps["treasury_checked"] is False
        assert "getTokenBalance timed out" in outcome.errors[0]["error"]
        assert outcome.steps["onchain_executed"] is True

    async def test_unexpected_adapter_error_is_recorded(self, store, rail, config, build_request):
        unreachable = UnreachableTreasury(
            owner=config.settlement.operator_address,
            balances={config.settlement.token_address: 10_000},
        )
        orchestrator = build_orchestrator(store, unreachable, rail, config)

        outcome = await orchestrator.execute(build_request())
        audit = await orchestrator.get_audit(outcome.payroll_id)

        assert outcome.status == PayrollStatus.FAILED
        assert outcome.steps["onchain_requested"] is False
        assert outcome.log[4].skipped is True
        assert outcome.steps["rail_processed"] is True
        assert outcome.errors[0] == {
            "step": "onchain_requested",
            "error": "requestPayment failed: requestPayment raised ConnectionError: node unreachable",
        }
        assert audit.status == "FAILED"
        assert audit.payments[0].status == "FAILED"


class TestRailOutcomes:
    """Fiat rail results and policy."""

    async def test_rail_failure_keeps_onchain_result(self, store, treasury, config, build_request):
        failing = MockRailClient(
            RailConfig(failure_rate=1.0, min_latency_seconds=0, max_latency_seconds=0),
            rng=random.Random(1),
        )
        orchestrator = build_orchestrator(store, treasury, failing, config)

        outcome = await orchestrator.execute(build_request())
        audit = await orchestrator.get_audit(outcome.payroll_id)

        assert outcome.status == PayrollStatus.FAILED
        assert outcome.steps["onchain_executed"] is True
        assert outcome.steps["rail_processed"] is False
        assert outcome.rail_status == "FAILED"
        assert outcome.rail_withdrawal_id is not None
        assert outcome.errors == ({"step": "rail_processed", "error": MOCK_FAILURE_REASON},)
        assert audit.payments[0].status == "FAILED"

    async def test_rail_processing_counts_as_success(self, store, treasury, config, build_request):
        orchestrator = build_orchestrator(store, treasury, ProcessingRail(), config)

        outcome = await orchestrator.execute(build_request())
        audit = await orchestrator.get_audit(outcome.payroll_id)

        assert outcome.success is True
        assert outcome.rail_status == "PROCESSING"
        assert audit.payments[0].status == "RAIL_PROCESSING"

    async def test_rail_transport_error(self, store, treasury, config, build_request):
        orchestrator = build_orchestrator(store, treasury, BrokenRail(), config)

        outcome = await orchestrator.execute(build_request())

        assert outcome.steps["rail_processed"] is False
        assert outcome.rail_withdrawal_id is None
        assert outcome.to_dict()["rail"] == {}
        assert outcome.errors[0]["error"] == "connection refused"

    async def test_rail_decoding_error_is_recorded(self, store, treasury, config, build_request):
        orchestrator = build_orchestrator(store, treasury, GarbledRail(), config)

        outcome = await orchestrator.execute(build_request())

        assert outcome.status == PayrollStatus.FAILED
        assert outcome.steps["onchain_executed"] is True
        assert outcome.errors == (
            {
                "step": "rail_processed",
                "error": "createRailPayment raised ValueError: unexpected response body",
            },
        )

    async def test_rail_can_require_onchain(self, store, treasury, rail, config, build_request):
        orchestrator = build_orchestrator(
            store, treasury, rail, config, rail_requires_onchain=True
        )
        treasury.fail_next("request_payment")

        outcome = await orchestrator.execute(build_request())

        assert outcome.steps["rail_processed"] is False
        assert outcome.log[5].skipped is True
        assert rail.payments == []


class TestValidation:
    """Invalid requests fail at payments_created without side effects."""

    async def test_missing_customer_fields(self, orchestrator, treasury, rail, events):
        request = PayrollRequest(customer=Customer())

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.execute(request)

        fields = {f["field"] for f in exc_info.value.fields}
        assert {
            "customer.first_name",
            "customer.last_name",
            "customer.email_address",
            "payment.amount",
            "payment.currency",
        } <= fields
        assert treasury.calls == []
        assert rail.payments == []

        finished = [e for e in events if isinstance(e, PayrollFinished)]
        assert finished[0].status == "FAILED"

    async def test_rejected_payroll_is_audited(self, orchestrator, store, build_request, events):
        with pytest.raises(ValidationError):
            await orchestrator.execute(build_request(amount=0))

        payroll_id = events[0].payroll_id
        audit = await store.get_audit(payroll_id)
        assert audit.status == "FAILED"
        assert [(s.step.value, s.success) for s in audit.steps] == [
            ("payroll_created", True),
            ("payments_created", False),
        ]
        assert audit.payments == []

    async def test_amount_beyond_storage_range(
        self, orchestrator, store, build_request, treasury, events
    ):
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.execute(build_request(amount=10**20))

        assert exc_info.value.fields == [
            {"field": "payment.amount", "message": "Payment amount is too large"}
        ]
        assert treasury.calls == []
        audit = await store.get_audit(events[0].payroll_id)
        assert audit.status == "FAILED"

    @pytest.mark.parametrize(
        ("override", "field"),
        [
            ({"amount": -5}, "payment.amount"),
            ({"amount": True}, "payment.amount"),
            ({"amount": 2**63}, "payment.amount"),
            ({"currency": "usd"}, "payment.currency"),
            ({"recipient": "not-an-address"}, "payment.recipient"),
        ],
    )
    def test_field_errors(self, build_request, override, field):
        errors = validate_payroll_request(build_request(**override))
        assert [e["field"] for e in errors] == [field]

    def test_bad_email(self, build_request):
        request = build_request()
        request = PayrollRequest(
            customer=Customer(first_name="A", last_name="B", email_address="nope"),
            payment=request.payment,
        )
        assert validate_payroll_request(request) == [
            {"field": "customer.email_address", "message": "Email address is invalid"}
        ]


class TestStorage:
    async def test_unknown_payroll(self, orchestrator):
        with pytest.raises(PayrollNotFoundError):
            await orchestrator.get_audit("payroll_0_missing")

    async def test_storage_unavailable_before_any_call(
        self, tmp_path, treasury, rail, config, payroll_request
    ):
        # No tables created
        engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        store = PayrollStore(create_session_factory(engine))
        orchestrator = build_orchestrator(store, treasury, rail, config)

        try:
            with pytest.raises(StorageUnavailableError):
                await orchestrator.execute(payroll_request)
        finally:
            await engine.dispose()

        assert treasury.calls == []
        assert rail.payments == []
