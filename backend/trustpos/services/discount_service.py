# Overview: Service-layer operations for discounts; coupon CRUD and preview.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import DiscountNotFound, DuplicateCode, ValidationError
from ..models import Discount
from trustpos.time_utils import utcnow
from . import audit_service, pricing_service

DISCOUNT_MUTABLE_FIELDS = {
    "name", "description", "code", "discount_type", "value", "min_purchase_cents",
    "max_discount_cents", "start_date", "end_date", "is_active",
}


def _ensure_code_free(code: str | None, exclude_id: int | None = None) -> None:
    if not code:
        return
    q = db.session.query(Discount).filter_by(code=code)
    if exclude_id is not None:
        q = q.filter(Discount.id != exclude_id)
    if q.first() is not None:
        raise DuplicateCode("Discount code already exists", details={"code": code})


def list_discounts() -> list[dict]:
    q = db.session.query(Discount).order_by(Discount.id.desc())
    return [d.to_dict() for d in q.all()]


def list_active_discounts() -> list[dict]:
    now = utcnow()
    q = db.session.query(Discount).filter(
        Discount.is_active.is_(True),
        or_(Discount.start_date.is_(None), Discount.start_date <= now),
        or_(Discount.end_date.is_(None), Discount.end_date >= now),
    )
    return [d.to_dict() for d in q.order_by(Discount.id.desc()).all()]


def get_discount(discount_id: int) -> Discount:
    discount = db.session.get(Discount, discount_id)
    if discount is None:
        raise DiscountNotFound(f"Discount {discount_id} not found")
    return discount


def create_discount(data: dict) -> Discount:
    _ensure_code_free(data.get("code"))
    discount = Discount(
        name=data["name"],
        description=data.get("description"),
        code=data.get("code"),
        discount_type=data["discount_type"],
        value=data["value"],
        min_purchase_cents=data.get("min_purchase_cents") or 0,
        max_discount_cents=data.get("max_discount_cents"),
        start_date=data.get("start_date"),
        end_date=data.get("end_date"),
        is_active=data.get("is_active", True) is not False,
    )
    db.session.add(discount)
    db.session.commit()
    return discount


def update_discount(discount_id: int, patch: dict, user_id: int | None = None) -> Discount:
    discount = get_discount(discount_id)
    if "code" in patch:
        _ensure_code_free(patch["code"], exclude_id=discount.id)

    new_type = patch.get("discount_type", discount.discount_type)
    new_value = patch.get("value", discount.value)
    if new_type == pricing_service.DISCOUNT_PERCENTAGE and new_value > 100:
        raise ValidationError("PERCENTAGE value must be between 0 and 100", details={"field": "value"})

    old = discount.to_dict()
    for key, value in patch.items():
        if key in DISCOUNT_MUTABLE_FIELDS:
            setattr(discount, key, value)
    db.session.commit()

    audit_service.record(
        audit_service.DISCOUNT_UPDATE,
        "DISCOUNT",
        discount.id,
        user_id,
        old_value=old,
        new_value=discount.to_dict(),
    )
    return discount


def validate_coupon(code: str, subtotal_cents: int) -> dict:
    """
    Preview a coupon against a cart subtotal without side effects.

    Raises the same errors create_order would.
    """
    if not code:
        raise ValidationError("Discount code is required", details={"field": "code"})
    discount = pricing_service.find_discount_by_code(code)
    pricing_service.check_discount_eligible(discount, subtotal_cents)
    return {
        "valid": True,
        "discount_id": discount.id,
        "code": discount.code,
        "discount_type": discount.discount_type,
        "value": discount.value,
        "discount_cents": pricing_service.compute_discount_cents(discount, subtotal_cents),
    }
