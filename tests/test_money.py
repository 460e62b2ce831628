"""Tests for minor-unit conversion."""

from decimal import Decimal

import pytest

from snowrail.errors import ValidationError
from snowrail.money import from_minor_units, to_minor_units


class TestToMinorUnits:
    """Unit amounts round half up to integer minor units."""

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            ("12.345", 1235),
            ("12.344", 1234),
            ("0.005", 1),
            ("0.004", 0),
            ("25", 2500),
        ],
    )
    def test_rounds_half_up(self, amount, expected):
        assert to_minor_units(amount) == expected

    def test_float_uses_decimal_repr(self):
        """12.345 as a float must not round down through its binary value."""
        assert to_minor_units(12.345) == 1235

    def test_decimal_and_int_inputs(self):
        assert to_minor_units(Decimal("1.10")) == 110
        assert to_minor_units(7) == 700

    def test_exponent(self):
        assert to_minor_units("1.5", exponent=0) == 2
        assert to_minor_units("1.000001", exponent=6) == 1_000_001

    @pytest.mark.parametrize("amount", ["abc", "NaN", "Infinity", True])
    def test_rejects_non_numbers(self, amount):
        with pytest.raises(ValidationError):
            to_minor_units(amount)


class TestFromMinorUnits:
    def test_renders_units(self):
        assert from_minor_units(1235) == Decimal("12.35")
