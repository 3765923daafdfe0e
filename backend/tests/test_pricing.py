# Overview: Pytest coverage for totals arithmetic in integer cents.

from decimal import Decimal

import pytest

from backoffice.services.pricing import LineInput, apply_bps, compute_totals, round_half_up
from backoffice.validation import ValidationError


class TestComputeTotals:

    def test_total_follows_line_discount_and_tax_formula(self):
        totals = compute_totals(
            [
                LineInput(product_id=1, quantity=2, unit_price_cents=1000, discount_cents=0),
                LineInput(product_id=2, quantity=1, unit_price_cents=500, discount_cents=100),
            ],
            discount_cents=200,
            tax_rate_bps=1000,
        )

        assert totals.subtotal_cents == 2400
        assert totals.net_cents == 2200
        assert totals.tax_cents == 220
        assert totals.total_cents == 2420
        assert [line.line_total_cents for line in totals.lines] == [2000, 400]

    def test_promotion_discount_is_taken_before_tax(self):
        totals = compute_totals(
            [LineInput(product_id=1, quantity=1, unit_price_cents=10000)],
            promotion_discount_cents=1500,
            tax_rate_bps=825,
        )
        # 8500 * 8.25% = 701.25 -> 701
        assert totals.net_cents == 8500
        assert totals.tax_cents == 701
        assert totals.total_cents == 9201

    def test_tax_rounds_half_up(self):
        totals = compute_totals([LineInput(product_id=1, quantity=1, unit_price_cents=50)], tax_rate_bps=1000)
        assert totals.tax_cents == 5
        assert apply_bps(25, 1000) == 3
        assert round_half_up(Decimal("2.5")) == 3

    def test_line_discount_larger_than_line_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            compute_totals([LineInput(product_id=1, quantity=1, unit_price_cents=100, discount_cents=101)])
        assert "line discount" in exc.value.message

    def test_header_discount_larger_than_subtotal_is_rejected(self):
        with pytest.raises(ValidationError):
            compute_totals([LineInput(product_id=1, quantity=1, unit_price_cents=100)], discount_cents=101)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_is_rejected(self, quantity):
        with pytest.raises(ValidationError):
            compute_totals([LineInput(product_id=1, quantity=quantity, unit_price_cents=100)])

    def test_empty_items_are_rejected(self):
        with pytest.raises(ValidationError):
            compute_totals([])

    def test_tax_rate_out_of_range_is_rejected(self):
        with pytest.raises(ValidationError):
            compute_totals([LineInput(product_id=1, quantity=1, unit_price_cents=100)], tax_rate_bps=10001)
