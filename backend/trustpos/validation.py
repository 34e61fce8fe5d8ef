# Overview: Request schemas and parsers for the JSON API.

"""
Request schemas for the JSON API.

Every payload that reaches a service is parsed here into an explicit,
immutable request type. Parsers reject unknown fields, floats where integers
are required, and values outside their enums, raising ValidationError with
the offending field in details.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trustpos.errors import EmptyCart, InvalidQuantity, ValidationError
from trustpos.time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99 (999,999,999 minor units)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

PAYMENT_METHODS = ("CASH", "MOBILE_MONEY", "CARD")
DISCOUNT_TYPES = ("PERCENTAGE", "FIXED")


# =============================================================================
# FIELD COERCION
# =============================================================================

def _require_mapping(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _reject_unknown(payload: dict, allowed: set[str], where: str | None = None) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        prefix = f"{where}: " if where else ""
        raise ValidationError(
            f"{prefix}Field not allowed: {', '.join(unknown)}",
            details={"fields": unknown},
        )


def _reject_null(payload: dict, keys: tuple[str, ...]) -> None:
    """Keys that may be omitted but never sent as an explicit null."""
    for key in keys:
        if key in payload and payload[key] is None:
            raise ValidationError(f"{key} cannot be null", details={"field": key})


def _as_int(payload: dict, key: str, *, required: bool = False, minimum: int | None = None,
            maximum: int | None = None) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return None

    # Strict: reject bools, floats and scientific notation
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{key} must be an integer", details={"field": key})
        value = int(stripped)
    elif not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", details={"field": key})

    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={"field": key})
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}", details={"field": key})
    return value


def _as_text(payload: dict, key: str, *, required: bool = False, max_length: int | None = None,
             min_length: int = 1) -> str | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={"field": key})
    value = value.strip()
    if not value:
        if required:
            raise ValidationError(f"{key} cannot be blank", details={"field": key})
        return None
    if len(value) < min_length:
        raise ValidationError(f"{key} must be at least {min_length} characters", details={"field": key})
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}", details={"field": key})
    return value


def _as_bool(payload: dict, key: str) -> bool | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean", details={"field": key})
    return value


def _as_choice(payload: dict, key: str, choices: tuple[str, ...], *, default: str | None = None) -> str | None:
    value = payload.get(key, default)
    if value is None:
        return None
    if not isinstance(value, str) or value.upper() not in choices:
        raise ValidationError(
            f"{key} must be one of {', '.join(choices)}",
            details={"field": key},
        )
    return value.upper()


def _as_datetime(payload: dict, key: str) -> datetime | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an ISO-8601 datetime", details={"field": key})
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime", details={"field": key})


# =============================================================================
# CHECKOUT
# =============================================================================

@dataclass(frozen=True)
class CartItem:
    product_id: int
    quantity: int
    serial_number: str | None = None
    price_override_cents: int | None = None


@dataclass(frozen=True)
class CheckoutRequest:
    items: tuple[CartItem, ...]
    payment_method: str = "CASH"
    customer_id: int | None = None
    coupon_code: str | None = None
    amount_tendered_cents: int | None = None
    manual_discount_cents: int | None = None
    override_reason: str | None = None
    payment_reference: str | None = None

    @property
    def has_override(self) -> bool:
        return self.manual_discount_cents is not None or any(
            item.price_override_cents is not None for item in self.items
        )


CART_ITEM_FIELDS = {"product_id", "quantity", "serial_number", "price_override_cents"}
CHECKOUT_FIELDS = {
    "items", "payment_method", "customer_id", "coupon_code", "amount_tendered_cents",
    "manual_discount_cents", "override_reason", "payment_reference",
}


def parse_cart_item(raw: Any, index: int) -> CartItem:
    if not isinstance(raw, dict):
        raise ValidationError("Cart item must be an object", details={"item_index": index})
    try:
        _reject_unknown(raw, CART_ITEM_FIELDS)
        product_id = _as_int(raw, "product_id", required=True, minimum=1)
        quantity = _as_int(raw, "quantity", required=True)
        if quantity < 1:
            raise InvalidQuantity("quantity must be >= 1", details={"field": "quantity"})
        return CartItem(
            product_id=product_id,
            quantity=quantity,
            serial_number=_as_text(raw, "serial_number", max_length=128),
            price_override_cents=_as_int(raw, "price_override_cents", minimum=0, maximum=MAX_PRICE_CENTS),
        )
    except ValidationError as e:
        raise e.with_item_index(index)


def parse_checkout_request(payload: Any) -> CheckoutRequest:
    payload = _require_mapping(payload)
    _reject_unknown(payload, CHECKOUT_FIELDS)
    _reject_null(payload, ("payment_method",))

    raw_items = payload.get("items")
    if raw_items is None or (isinstance(raw_items, list) and not raw_items):
        raise EmptyCart("Cart must contain at least one item")
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", details={"field": "items"})

    items = tuple(parse_cart_item(raw, i) for i, raw in enumerate(raw_items))

    coupon_code = _as_text(payload, "coupon_code", max_length=32)
    manual_discount = _as_int(payload, "manual_discount_cents", minimum=0)
    if coupon_code and manual_discount is not None:
        raise ValidationError("coupon_code and manual_discount_cents are mutually exclusive")

    request = CheckoutRequest(
        items=items,
        payment_method=_as_choice(payload, "payment_method", PAYMENT_METHODS, default="CASH"),
        customer_id=_as_int(payload, "customer_id", minimum=1),
        coupon_code=coupon_code.upper() if coupon_code else None,
        amount_tendered_cents=_as_int(payload, "amount_tendered_cents", minimum=0),
        manual_discount_cents=manual_discount,
        override_reason=_as_text(payload, "override_reason", max_length=255),
        payment_reference=_as_text(payload, "payment_reference", max_length=128),
    )
    if request.has_override and not request.override_reason:
        raise ValidationError("override_reason is required when overriding prices or discounts")
    return request


# =============================================================================
# RETURNS
# =============================================================================

@dataclass(frozen=True)
class ReturnLine:
    order_item_id: int
    quantity: int


@dataclass(frozen=True)
class ReturnRequest:
    order_id: int
    reason: str
    items: tuple[ReturnLine, ...]


def parse_return_request(payload: Any) -> ReturnRequest:
    payload = _require_mapping(payload)
    _reject_unknown(payload, {"order_id", "reason", "items"})

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})

    lines = []
    for i, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("Return item must be an object", details={"item_index": i})
        try:
            _reject_unknown(raw, {"order_item_id", "quantity"})
            lines.append(ReturnLine(
                order_item_id=_as_int(raw, "order_item_id", required=True, minimum=1),
                quantity=_as_int(raw, "quantity", required=True, minimum=1),
            ))
        except ValidationError as e:
            raise e.with_item_index(i)

    return ReturnRequest(
        order_id=_as_int(payload, "order_id", required=True, minimum=1),
        reason=_as_text(payload, "reason", required=True, min_length=5, max_length=255),
        items=tuple(lines),
    )


# =============================================================================
# CATALOG / PRICING PAYLOADS (plain dict patches)
# =============================================================================

PRODUCT_FIELDS = {
    "sku", "name", "description", "price_cents", "cost_price_cents", "stock_quantity",
    "low_stock_threshold", "is_serialized", "warranty_months", "category_id", "supplier_id",
    "is_active", "serial_numbers", "reason",
}
PRODUCT_NOT_NULL = ("is_active", "is_serialized", "low_stock_threshold", "warranty_months", "stock_quantity")


def parse_product_payload(payload: Any, *, partial: bool) -> dict:
    """
    Validate a product create (partial=False) or patch (partial=True).

    Returns a cleaned dict containing only the keys present in the payload.
    """
    payload = _require_mapping(payload)
    _reject_unknown(payload, PRODUCT_FIELDS)
    _reject_null(payload, PRODUCT_NOT_NULL)

    if not partial:
        missing = [f for f in ("sku", "name", "price_cents") if payload.get(f) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    patch: dict = {}
    if "sku" in payload:
        patch["sku"] = _as_text(payload, "sku", required=True, max_length=64)
    if "name" in payload:
        patch["name"] = _as_text(payload, "name", required=True, max_length=255)
    if "description" in payload:
        patch["description"] = _as_text(payload, "description")
    if "price_cents" in payload:
        patch["price_cents"] = _as_int(payload, "price_cents", required=True, minimum=1, maximum=MAX_PRICE_CENTS)
    if "cost_price_cents" in payload:
        patch["cost_price_cents"] = _as_int(payload, "cost_price_cents", minimum=0, maximum=MAX_PRICE_CENTS)
    if "stock_quantity" in payload:
        patch["stock_quantity"] = _as_int(payload, "stock_quantity", required=True, minimum=0)
    if "low_stock_threshold" in payload:
        patch["low_stock_threshold"] = _as_int(payload, "low_stock_threshold", required=True, minimum=0)
    if "is_serialized" in payload:
        patch["is_serialized"] = _as_bool(payload, "is_serialized")
    if "warranty_months" in payload:
        patch["warranty_months"] = _as_int(payload, "warranty_months", required=True, minimum=0, maximum=120)
    if "category_id" in payload:
        patch["category_id"] = _as_int(payload, "category_id", minimum=1)
    if "supplier_id" in payload:
        patch["supplier_id"] = _as_int(payload, "supplier_id", minimum=1)
    if "is_active" in payload:
        patch["is_active"] = _as_bool(payload, "is_active")
    if "serial_numbers" in payload:
        patch["serial_numbers"] = parse_serial_numbers(payload.get("serial_numbers"))
    if "reason" in payload:
        patch["reason"] = _as_text(payload, "reason", max_length=255)

    price = patch.get("price_cents")
    cost = patch.get("cost_price_cents")
    if price is not None and cost is not None and price < cost:
        raise ValidationError(
            f"Selling price ({price}) cannot be lower than cost price ({cost})",
            details={"field": "price_cents"},
        )
    return patch


def parse_serial_numbers(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(s, str) and s.strip() for s in value):
        raise ValidationError("serial_numbers must be a list of non-empty strings", details={"field": "serial_numbers"})
    serials = [s.strip() for s in value]
    if len(set(serials)) != len(serials):
        raise ValidationError("serial_numbers contains duplicates", details={"field": "serial_numbers"})
    return serials


def parse_stock_change(payload: Any, *, adjustment: bool) -> dict:
    payload = _require_mapping(payload)
    if adjustment:
        _reject_unknown(payload, {"quantity_delta", "reason"})
        delta = _as_int(payload, "quantity_delta", required=True)
        if delta == 0:
            raise ValidationError("quantity_delta must be non-zero", details={"field": "quantity_delta"})
        return {
            "quantity_delta": delta,
            "reason": _as_text(payload, "reason", required=True, max_length=255),
        }

    _reject_unknown(payload, {"quantity", "reason", "serial_numbers"})
    return {
        "quantity": _as_int(payload, "quantity", required=True, minimum=1),
        "reason": _as_text(payload, "reason", max_length=255),
        "serial_numbers": parse_serial_numbers(payload.get("serial_numbers")),
    }


DISCOUNT_FIELDS = {
    "name", "description", "code", "discount_type", "value", "min_purchase_cents",
    "max_discount_cents", "start_date", "end_date", "is_active",
}


def parse_discount_payload(payload: Any, *, partial: bool) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, DISCOUNT_FIELDS)
    _reject_null(payload, ("discount_type", "value", "is_active"))

    if not partial:
        missing = [f for f in ("name", "discount_type", "value") if payload.get(f) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    patch: dict = {}
    if "name" in payload:
        patch["name"] = _as_text(payload, "name", required=True, min_length=3, max_length=64)
    if "description" in payload:
        patch["description"] = _as_text(payload, "description")
    if "code" in payload:
        code = _as_text(payload, "code", min_length=3, max_length=32)
        patch["code"] = code.upper() if code else None
    if "discount_type" in payload:
        patch["discount_type"] = _as_choice(payload, "discount_type", DISCOUNT_TYPES)
    if "value" in payload:
        patch["value"] = _as_int(payload, "value", required=True, minimum=0)
    if "min_purchase_cents" in payload:
        patch["min_purchase_cents"] = _as_int(payload, "min_purchase_cents", minimum=0) or 0
    if "max_discount_cents" in payload:
        patch["max_discount_cents"] = _as_int(payload, "max_discount_cents", minimum=0)
    if "start_date" in payload:
        patch["start_date"] = _as_datetime(payload, "start_date")
    if "end_date" in payload:
        patch["end_date"] = _as_datetime(payload, "end_date")
    if "is_active" in payload:
        patch["is_active"] = _as_bool(payload, "is_active")

    if patch.get("discount_type") == "PERCENTAGE" and patch.get("value") is not None and patch["value"] > 100:
        raise ValidationError("PERCENTAGE value must be between 0 and 100", details={"field": "value"})
    start, end = patch.get("start_date"), patch.get("end_date")
    if start and end and end < start:
        raise ValidationError("end_date must not be before start_date", details={"field": "end_date"})
    return patch


def parse_tax_payload(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, {"name", "rate_bps", "is_active"})
    return {
        "name": _as_text(payload, "name", required=True, max_length=64),
        "rate_bps": _as_int(payload, "rate_bps", required=True, minimum=0, maximum=10_000),
        "is_active": bool(_as_bool(payload, "is_active")),
    }


def parse_amount(payload: Any, key: str) -> int:
    payload = _require_mapping(payload)
    return _as_int(payload, key, required=True, minimum=0)


def parse_customer_payload(payload: Any) -> dict:
    payload = _require_mapping(payload)
    _reject_unknown(payload, {"name", "email", "phone"})
    email = _as_text(payload, "email", max_length=255)
    if email and "@" not in email:
        raise ValidationError("email is not valid", details={"field": "email"})
    return {
        "name": _as_text(payload, "name", required=True, max_length=255),
        "email": email.lower() if email else None,
        "phone": _as_text(payload, "phone", max_length=32),
    }


# =============================================================================
# ORDER LIFECYCLE
# =============================================================================

def parse_cancel_request(payload: Any) -> str:
    payload = _require_mapping(payload)
    _reject_unknown(payload, {"reason"})
    return _as_text(payload, "reason", required=True, max_length=255)


def parse_confirm_payment(payload: Any) -> str | None:
    payload = _require_mapping(payload)
    _reject_unknown(payload, {"reference_number"})
    return _as_text(payload, "reference_number", max_length=128)


# =============================================================================
# STAFF ACCOUNTS
# =============================================================================

USER_FIELDS = {"username", "email", "password", "role"}
USER_ROLES = ("ADMIN", "MANAGER", "SALES_AGENT")


def parse_user_payload(payload: Any, *, partial: bool) -> dict:
    """
    Validate a staff account create (partial=False) or patch (partial=True).

    Password strength is checked by auth_service when the hash is built.
    """
    payload = _require_mapping(payload)
    _reject_unknown(payload, USER_FIELDS)
    _reject_null(payload, tuple(USER_FIELDS))

    if not partial:
        missing = [f for f in ("username", "email", "password") if payload.get(f) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    patch: dict = {}
    if "username" in payload:
        patch["username"] = _as_text(payload, "username", required=True, min_length=3, max_length=64)
    if "email" in payload:
        email = _as_text(payload, "email", required=True, max_length=255)
        if "@" not in email:
            raise ValidationError("email is not valid", details={"field": "email"})
        patch["email"] = email.lower()
    if "password" in payload:
        password = payload["password"]
        if not isinstance(password, str):
            raise ValidationError("password must be a string", details={"field": "password"})
        patch["password"] = password
    if "role" in payload:
        patch["role"] = _as_choice(payload, "role", USER_ROLES)
    elif not partial:
        patch["role"] = "SALES_AGENT"
    return patch
