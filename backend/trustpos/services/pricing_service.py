# Overview: Discount/Tax resolver; pure computation over Discount and TaxConfig lookups.

"""
Discount / Tax Resolver

Contract: resolve(subtotal_cents, coupon_code=None) -> PricingResult

- Coupon lookup fails with DiscountNotFound, DiscountInactive (flag off or
  outside [start_date, end_date]) or MinPurchaseNotMet (subtotal < minimum).
- Raw discount is value (FIXED) or subtotal * value / 100 (PERCENTAGE),
  capped at max_discount_cents, then capped at the subtotal.
- Tax is (subtotal - discount) * rate_bps / 10000 using the single active
  TaxConfig; no active config means zero tax.
- All rounding is half-up in integer minor units.
- No writes. Safe to call for previews.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..extensions import db
from ..errors import DiscountInactive, DiscountNotFound, MinPurchaseNotMet
from ..models import Discount, TaxConfig
from trustpos.time_utils import utcnow

DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED = "FIXED"


@dataclass(frozen=True)
class PricingResult:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    tax_rate_bps: int = 0
    discount: Discount | None = None
    tax_config: TaxConfig | None = None

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents + self.tax_cents


def _round_div(numerator: int, denominator: int) -> int:
    """Integer division rounding half-up (non-negative operands)."""
    return (numerator + denominator // 2) // denominator


def find_discount_by_code(code: str) -> Discount:
    discount = db.session.query(Discount).filter_by(code=code.strip().upper()).first()
    if discount is None:
        raise DiscountNotFound(f"Discount code {code} not found", details={"coupon_code": code})
    return discount


def check_discount_eligible(discount: Discount, subtotal_cents: int, now: datetime | None = None) -> None:
    now = now or utcnow()
    if not discount.is_active:
        raise DiscountInactive(f"Discount {discount.code} is inactive", details={"coupon_code": discount.code})
    if discount.start_date and discount.start_date > now:
        raise DiscountInactive(f"Discount {discount.code} is not active yet", details={"coupon_code": discount.code})
    if discount.end_date and discount.end_date < now:
        raise DiscountInactive(f"Discount {discount.code} has expired", details={"coupon_code": discount.code})
    if subtotal_cents < (discount.min_purchase_cents or 0):
        raise MinPurchaseNotMet(
            f"Minimum purchase for {discount.code} is {discount.min_purchase_cents}",
            details={
                "coupon_code": discount.code,
                "min_purchase_cents": discount.min_purchase_cents,
                "subtotal_cents": subtotal_cents,
            },
        )


def compute_discount_cents(discount: Discount, subtotal_cents: int) -> int:
    if discount.discount_type == DISCOUNT_PERCENTAGE:
        raw = _round_div(subtotal_cents * discount.value, 100)
    else:
        raw = discount.value

    if discount.max_discount_cents is not None:
        raw = min(raw, discount.max_discount_cents)
    return max(0, min(raw, subtotal_cents))


def get_active_tax_config() -> TaxConfig | None:
    """
    Single active TaxConfig, or None.

    tax_service keeps at most one row active; if that invariant was ever
    broken by direct DB edits, the most recently updated row wins.
    """
    return (
        db.session.query(TaxConfig)
        .filter_by(is_active=True)
        .order_by(TaxConfig.updated_at.desc(), TaxConfig.id.desc())
        .first()
    )


def compute_tax_cents(taxable_cents: int, rate_bps: int) -> int:
    if taxable_cents <= 0 or rate_bps <= 0:
        return 0
    return _round_div(taxable_cents * rate_bps, 10_000)


def resolve(subtotal_cents: int, coupon_code: str | None = None) -> PricingResult:
    discount = None
    discount_cents = 0
    if coupon_code:
        discount = find_discount_by_code(coupon_code)
        check_discount_eligible(discount, subtotal_cents)
        discount_cents = compute_discount_cents(discount, subtotal_cents)

    return with_discount(subtotal_cents, discount_cents, discount=discount)


def with_discount(subtotal_cents: int, discount_cents: int, *, discount: Discount | None = None) -> PricingResult:
    """Apply tax on top of an already-decided discount amount."""
    tax_config = get_active_tax_config()
    rate_bps = tax_config.rate_bps if tax_config else 0
    tax_cents = compute_tax_cents(subtotal_cents - discount_cents, rate_bps)

    return PricingResult(
        subtotal_cents=subtotal_cents,
        discount_cents=discount_cents,
        tax_cents=tax_cents,
        tax_rate_bps=rate_bps,
        discount=discount,
        tax_config=tax_config,
    )
