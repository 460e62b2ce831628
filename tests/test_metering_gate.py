"""Tests for the pay-per-call metering gate."""

import pytest

from snowrail.config import MeteredResource, MeteringConfig
from snowrail.errors import ConfigurationError, PaymentRequiredError
from snowrail.metering.gate import Allow, Challenge, MeteringGate


@pytest.fixture
def gate() -> MeteringGate:
    return MeteringGate(MeteringConfig())


class TestEvaluate:
    """Gate decisions per presented token."""

    def test_missing_token_is_challenged(self, gate):
        decision = gate.evaluate("payroll_execute", None)

        assert isinstance(decision, Challenge)
        assert decision.allowed is False
        assert decision.challenge.meter_id == "payroll_execute"
        assert decision.challenge.price == "1"
        assert decision.challenge.asset == "USDC"
        assert decision.challenge.chain == "fuji"

    def test_empty_token_is_challenged(self, gate):
        assert isinstance(gate.evaluate("payment_process", ""), Challenge)

    def test_sentinel_token_is_allowed(self, gate):
        decision = gate.evaluate("payroll_execute", "demo-token")

        assert decision == Allow(meter_id="payroll_execute")
        assert decision.allowed is True

    def test_sentinel_surrounding_whitespace_ignored(self, gate):
        assert gate.evaluate("payroll_execute", "  demo-token ").allowed is True

    def test_other_tokens_are_unverified(self, gate):
        for token in ("demo-token2", "DEMO-TOKEN", "0xdeadbeef", "démo-token"):
            assert isinstance(gate.evaluate("swap_execute", token), Challenge)

    def test_unknown_resource_is_configuration_error(self, gate):
        with pytest.raises(ConfigurationError):
            gate.evaluate("mystery_meter", "demo-token")

    def test_challenge_reflects_configured_network(self):
        gate = MeteringGate(MeteringConfig(network="mainnet"))
        assert gate.evaluate("contract_test").challenge.chain == "mainnet"

    def test_custom_sentinel(self):
        gate = MeteringGate(MeteringConfig(sentinel_token="s3cret"))
        assert gate.evaluate("payroll_execute", "s3cret").allowed is True
        assert gate.evaluate("payroll_execute", "demo-token").allowed is False


class TestRequire:
    def test_raises_payment_required(self, gate):
        with pytest.raises(PaymentRequiredError) as exc_info:
            gate.require("payment_process", None)

        payload = exc_info.value.to_dict()
        assert payload["meterId"] == "payment_process"
        assert payload["metering"]["price"] == "0.1"
        assert "message" in payload

    def test_returns_allow(self, gate):
        assert gate.require("payment_process", "demo-token").meter_id == "payment_process"


class TestPriceList:
    def test_lists_every_resource_in_order(self, gate):
        ids = [c.meter_id for c in gate.price_list()]
        assert ids == [
            "payroll_execute",
            "payment_process",
            "contract_test",
            "payment_single",
            "swap_execute",
        ]

    def test_custom_table(self):
        config = MeteringConfig(
            resources=(MeteredResource("only_one", "2.5", "USDC", "One thing"),)
        )
        prices = MeteringGate(config).price_list()
        assert [(c.meter_id, c.price) for c in prices] == [("only_one", "2.5")]


class TestChallengeWire:
    def test_to_dict_is_camel_case(self, gate):
        data = gate.challenge_for("swap_execute").to_dict()
        assert data == {
            "meterId": "swap_execute",
            "price": "0.5",
            "asset": "USDC",
            "chain": "fuji",
            "description": "Execute a token swap through DEX",
        }
