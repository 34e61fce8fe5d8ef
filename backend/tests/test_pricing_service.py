"""
Discount / tax resolver tests.

Verifies:
- Percentage discounts round half-up, respect the cap, never exceed the subtotal
- Coupon eligibility errors (not found, inactive, window, minimum purchase)
- Tax is applied on the discounted subtotal using the single active rate
"""

from datetime import timedelta

import pytest

from trustpos.errors import DiscountInactive, DiscountNotFound, MinPurchaseNotMet, PolicyError
from trustpos.services import pricing_service
from trustpos.time_utils import utcnow


class TestDiscountComputation:
    def test_percentage_capped_by_max_discount(self, make_discount):
        discount = make_discount(value=10, min_purchase_cents=50000, max_discount_cents=5000)
        result = pricing_service.resolve(100000, "SAVE10")
        assert discount.id == result.discount.id
        assert result.discount_cents == 5000

    def test_percentage_without_cap(self, make_discount):
        make_discount(value=10)
        assert pricing_service.resolve(100000, "SAVE10").discount_cents == 10000

    def test_percentage_rounds_half_up(self, make_discount):
        discount = make_discount(value=15)
        # 15% of 333 = 49.95
        assert pricing_service.compute_discount_cents(discount, 333) == 50
        # 15% of 30 = 4.5
        assert pricing_service.compute_discount_cents(discount, 30) == 5

    def test_fixed_discount_clamped_to_subtotal(self, make_discount):
        discount = make_discount(code="BIG", discount_type="FIXED", value=50000)
        assert pricing_service.compute_discount_cents(discount, 12000) == 12000

    def test_coupon_code_is_case_insensitive(self, make_discount):
        make_discount(code="SAVE10")
        assert pricing_service.resolve(10000, "save10").discount_cents == 1000


class TestCouponEligibility:
    def test_unknown_code(self, db_session):
        with pytest.raises(DiscountNotFound):
            pricing_service.resolve(10000, "NOPE")

    def test_inactive_code(self, make_discount):
        make_discount(is_active=False)
        with pytest.raises(DiscountInactive):
            pricing_service.resolve(10000, "SAVE10")

    def test_expired_code(self, make_discount):
        make_discount(end_date=utcnow() - timedelta(days=1))
        with pytest.raises(DiscountInactive):
            pricing_service.resolve(10000, "SAVE10")

    def test_not_yet_started_code(self, make_discount):
        make_discount(start_date=utcnow() + timedelta(days=1))
        with pytest.raises(DiscountInactive):
            pricing_service.resolve(10000, "SAVE10")

    def test_below_minimum_purchase_is_policy_error(self, make_discount):
        make_discount(min_purchase_cents=50000, max_discount_cents=5000)
        with pytest.raises(MinPurchaseNotMet) as exc_info:
            pricing_service.resolve(49999, "SAVE10")
        assert isinstance(exc_info.value, PolicyError)
        assert exc_info.value.status_code == 422


class TestTax:
    def test_no_active_tax_means_zero(self, db_session):
        result = pricing_service.resolve(100000)
        assert result.tax_cents == 0
        assert result.tax_config is None

    def test_tax_on_discounted_subtotal(self, make_tax, make_discount):
        make_tax(rate_bps=1800)
        make_discount(discount_type="FIXED", value=10000)
        result = pricing_service.resolve(100000, "SAVE10")
        assert result.discount_cents == 10000
        assert result.tax_cents == 16200
        assert result.total_cents == 106200

    def test_eighteen_percent_scenario(self, make_tax):
        make_tax(rate_bps=1800)
        result = pricing_service.resolve(100000)
        assert (result.subtotal_cents, result.discount_cents, result.tax_cents) == (100000, 0, 18000)
        assert result.total_cents == 118000

    def test_tax_rounds_half_up(self, make_tax):
        make_tax(rate_bps=1800)
        # 18% of 25 = 4.5
        assert pricing_service.resolve(25).tax_cents == 5

    def test_most_recent_active_wins_if_invariant_broken(self, make_tax):
        make_tax(rate_bps=1000, name="old")
        newer = make_tax(rate_bps=1800, name="new")
        assert pricing_service.get_active_tax_config().id == newer.id
