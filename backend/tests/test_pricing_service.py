# Overview: Pytest coverage for the core-exchange pricing calculator.

from decimal import Decimal

import pytest

from core_exchange.errors import InvalidPrice
from core_exchange.services import pricing_service
from core_exchange.validation import ValidationError


class TestMaxDiscountPercent:
    def test_carcass_over_price(self):
        """Carcass 100.00 on a 500.00 part allows 20%."""
        assert pricing_service.max_discount_percent(50000, 10000) == Decimal("20.0000")

    def test_truncates_to_four_places(self):
        assert pricing_service.max_discount_percent(30000, 10000) == Decimal("33.3333")
        assert pricing_service.max_discount_percent(30000, 20000) == Decimal("66.6666")

    def test_zero_carcass_means_no_discount(self):
        assert pricing_service.max_discount_percent(50000, 0) == Decimal("0")

    def test_clamped_to_one_hundred(self):
        assert pricing_service.max_discount_percent(5000, 10000) == Decimal("100.0000")

    @pytest.mark.parametrize("price", [0, -100])
    def test_non_positive_price_rejected(self, price):
        with pytest.raises(InvalidPrice):
            pricing_service.max_discount_percent(price, 10000)


class TestDiscountArithmetic:
    def test_discount_value_rounds_half_up(self):
        # 999 * 12.5% = 124.875
        assert pricing_service.discount_value(999, Decimal("12.5")) == 125

    def test_retained_revenue_never_negative(self):
        assert pricing_service.retained_revenue(10000, 7500) == 2500
        assert pricing_service.retained_revenue(10000, 10000) == 0
        assert pricing_service.retained_revenue(10000, 12000) == 0

    def test_validate_discount(self):
        assert pricing_service.validate_discount(50000, Decimal("20"), 10000) is True
        assert pricing_service.validate_discount(50000, Decimal("15"), 10000) is True
        assert pricing_service.validate_discount(50000, Decimal("20.01"), 10000) is False

    def test_final_price(self):
        assert pricing_service.final_price(50000, Decimal("15")) == 42500


class TestQuoteLine:
    def test_discount_within_ceiling(self):
        """Carcass 100.00, price 500.00, 15%: discount 75.00, retained 25.00, final 425.00."""
        quote = pricing_service.quote_line(50000, "15", 10000)

        assert quote.max_discount_percent == Decimal("20.0000")
        assert quote.discount_percent == Decimal("15")
        assert quote.discount_value_cents == 7500
        assert quote.retained_revenue_cents == 2500
        assert quote.final_price_cents == 42500
        assert quote.clamped is False

    def test_discount_above_ceiling_is_clamped(self):
        quote = pricing_service.quote_line(50000, 25, 10000)

        assert quote.clamped is True
        assert quote.requested_discount_percent == Decimal("25")
        assert quote.discount_percent == Decimal("20.0000")
        assert quote.discount_value_cents == 10000
        assert quote.retained_revenue_cents == 0
        assert quote.final_price_cents == 40000

    def test_float_percent_keeps_decimal_value(self):
        quote = pricing_service.quote_line(50000, 12.5, 10000)
        assert quote.discount_percent == Decimal("12.5")
        assert quote.discount_value_cents == 6250

    def test_line_totals_scale_with_quantity(self):
        quote = pricing_service.quote_line(50000, "15", 10000, quantity=3)
        assert quote.line_total_cents == 127500
        assert quote.line_retained_revenue_cents == 7500

    def test_to_dict_renders_percent_as_string(self):
        data = pricing_service.quote_line(50000, "15", 10000).to_dict()
        assert data["discount_percent"] == "15"
        assert data["max_discount_percent"] == "20.0000"
        assert data["clamped"] is False

    @pytest.mark.parametrize("bad", [-1, 101, "abc", None])
    def test_invalid_percent_rejected(self, bad):
        with pytest.raises(ValidationError):
            pricing_service.quote_line(50000, bad, 10000)
