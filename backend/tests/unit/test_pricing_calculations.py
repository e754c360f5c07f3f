"""
Unit tests for currency conversion and price comparison
"""
import pytest
from decimal import Decimal
from hypothesis import given, strategies as st, settings

from core.utils.money import (
    PRICE_TOLERANCE,
    format_price,
    from_minor_units,
    prices_match,
    to_minor_units,
)

amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("99999.99"), places=2, allow_nan=False, allow_infinity=False)


@pytest.mark.unit
class TestPricingCalculations:
    """Test minor-unit conversion and the client/server price tolerance."""

    def test_to_minor_units_from_decimal(self):
        assert to_minor_units(Decimal("12.00")) == 1200

    def test_to_minor_units_from_float_has_no_binary_drift(self):
        # 19.99 * 100 == 1998.9999999999998 as a float
        assert to_minor_units(19.99) == 1999

    def test_to_minor_units_rounds_half_up(self):
        assert to_minor_units(Decimal("12.005")) == 1201
        assert to_minor_units(Decimal("12.004")) == 1200

    def test_from_minor_units(self):
        assert from_minor_units(1200) == Decimal("12.00")
        assert from_minor_units(None) == Decimal("0.00")

    def test_prices_match_within_tolerance(self):
        assert prices_match(Decimal("12.00"), Decimal("12.01"))
        assert prices_match(Decimal("12.00"), 11.99)
        assert not prices_match(Decimal("12.00"), Decimal("12.02"))
        assert not prices_match(Decimal("15.00"), Decimal("12.00"))

    def test_format_price(self):
        assert format_price(12) == "12.00€"
        assert format_price(Decimal("15.5")) == "15.50€"

    @given(amount=amounts)
    @settings(max_examples=200, deadline=None)
    def test_minor_units_round_trip_property(self, amount):
        """Any two-decimal amount survives the trip to Stripe minor units and back."""
        assert from_minor_units(to_minor_units(amount)) == amount

    @given(server=amounts, delta=st.decimals(min_value=Decimal("-0.05"), max_value=Decimal("0.05"), places=3))
    @settings(max_examples=200, deadline=None)
    def test_price_tolerance_property(self, server, delta):
        assert prices_match(server, server + delta) == (abs(delta) <= PRICE_TOLERANCE)
