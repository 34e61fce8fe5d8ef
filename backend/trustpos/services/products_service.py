# Overview: Service-layer operations for products; catalog CRUD with audited price and stock edits.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Category, Product, StockMovement, Supplier
from . import audit_service, inventory_service
from .concurrency import run_with_retry

PRODUCT_ATTRIBUTES = {
    "sku", "name", "description", "price_cents", "cost_price_cents", "low_stock_threshold",
    "is_serialized", "warranty_months", "category_id", "supplier_id", "is_active",
}


def _ensure_sku_free(sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter_by(sku=sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"SKU {sku} already exists", details={"sku": sku})


def _ensure_references(data: dict) -> None:
    if data.get("category_id") and db.session.get(Category, data["category_id"]) is None:
        raise NotFoundError(f"Category {data['category_id']} not found", details={"category_id": data["category_id"]})
    if data.get("supplier_id") and db.session.get(Supplier, data["supplier_id"]) is None:
        raise NotFoundError(f"Supplier {data['supplier_id']} not found", details={"supplier_id": data["supplier_id"]})


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    low_stock: bool = False,
    include_inactive: bool = False,
) -> list[dict]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    if category_id:
        q = q.filter(Product.category_id == category_id)
    if low_stock:
        q = q.filter(Product.stock_quantity <= Product.low_stock_threshold)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))
    return [p.to_dict() for p in q.order_by(Product.name.asc()).all()]


def create_product(data: dict, user_id: int | None = None) -> Product:
    """
    Create a product. Opening stock is booked as an IN movement so the
    movement ledger always explains the counter.

    Serialized products take their opening stock from serial_numbers.
    """
    _ensure_sku_free(data["sku"])
    _ensure_references(data)

    serial_numbers = data.get("serial_numbers") or []
    is_serialized = bool(data.get("is_serialized"))
    opening = len(serial_numbers) if is_serialized else (data.get("stock_quantity") or 0)
    if is_serialized and data.get("stock_quantity") not in (None, len(serial_numbers)):
        raise ValidationError(
            "Serialized products take their stock from serial_numbers",
            details={"field": "stock_quantity"},
        )
    if serial_numbers and not is_serialized:
        raise ValidationError("serial_numbers require is_serialized", details={"field": "serial_numbers"})

    product = Product(
        stock_quantity=0,
        **{k: v for k, v in data.items() if k in PRODUCT_ATTRIBUTES},
    )
    db.session.add(product)
    db.session.flush()

    if opening > 0:
        inventory_service.receive_stock_locked(
            product,
            opening,
            user_id=user_id,
            reason="Opening stock",
            serial_numbers=serial_numbers,
        )
    db.session.commit()
    return product


def _audit_action(price_changed: bool, stock_changed: bool) -> str | None:
    if price_changed and stock_changed:
        return audit_service.PRICE_AND_STOCK_UPDATE
    if price_changed:
        return audit_service.PRICE_CHANGE
    if stock_changed:
        return audit_service.STOCK_ADJUSTMENT
    return None


def update_product(product_id: int, patch: dict, user_id: int | None = None) -> Product:
    """
    Patch a product.

    - The resulting price may not fall below the resulting cost.
    - stock_quantity on a non-serialized product is booked as an ADJUSTMENT
      movement for the difference.
    - serial_numbers on a serialized product are received as new units.
    - Price and stock changes are audited (PRICE_CHANGE / STOCK_ADJUSTMENT /
      PRICE_AND_STOCK_UPDATE).
    """
    reason = patch.get("reason") or "Manual inventory update"

    def _op():
        product = inventory_service.get_product(product_id, lock=True)
        if "sku" in patch:
            _ensure_sku_free(patch["sku"], exclude_id=product.id)
        _ensure_references(patch)

        final_price = patch.get("price_cents", product.price_cents)
        final_cost = patch.get("cost_price_cents", product.cost_price_cents)
        if final_cost and final_price < final_cost:
            raise ValidationError(
                f"New selling price ({final_price}) would be lower than cost price ({final_cost})",
                details={"field": "price_cents"},
            )

        is_serialized = patch.get("is_serialized", product.is_serialized)
        if is_serialized != product.is_serialized and product.stock_quantity > 0:
            raise ValidationError(
                "is_serialized cannot change while the product has stock",
                details={"field": "is_serialized"},
            )
        if is_serialized and "stock_quantity" in patch:
            raise ValidationError(
                "Stock for serialized products changes through serial_numbers",
                details={"field": "stock_quantity"},
            )

        old = {"price_cents": product.price_cents, "stock": product.stock_quantity}

        for key, value in patch.items():
            if key in PRODUCT_ATTRIBUTES:
                setattr(product, key, value)
        db.session.flush()

        if patch.get("serial_numbers"):
            if not is_serialized:
                raise ValidationError("serial_numbers require is_serialized", details={"field": "serial_numbers"})
            inventory_service.receive_stock_locked(
                product,
                len(patch["serial_numbers"]),
                user_id=user_id,
                reason=reason,
                serial_numbers=patch["serial_numbers"],
            )
        elif "stock_quantity" in patch and patch["stock_quantity"] != product.stock_quantity:
            delta = patch["stock_quantity"] - product.stock_quantity
            if delta < 0:
                inventory_service._decrement(product, -delta)
            else:
                inventory_service._increment(product, delta)
            db.session.add(StockMovement(
                product_id=product.id,
                type=inventory_service.MOVEMENT_ADJUSTMENT,
                quantity_delta=delta,
                reason=reason,
                user_id=user_id,
            ))

        db.session.commit()
        return product, old

    product, old = run_with_retry(_op)

    new = {"price_cents": product.price_cents, "stock": product.stock_quantity}
    action = _audit_action(old["price_cents"] != new["price_cents"], old["stock"] != new["stock"])
    if action:
        audit_service.record(action, "PRODUCT", product.id, user_id, old_value=old, new_value=new, reason=reason)
    return product


def deactivate_product(product_id: int, user_id: int | None = None) -> Product:
    """
    Remove a product from sale. Rows are kept because order items and
    stock movements reference them.
    """
    product = inventory_service.get_product(product_id)
    snapshot = product.to_dict()
    product.is_active = False
    db.session.commit()

    audit_service.record(
        audit_service.PRODUCT_DELETE,
        "PRODUCT",
        product.id,
        user_id,
        old_value=snapshot,
        reason="Product removed from catalog",
    )
    return product


def list_categories() -> list[dict]:
    return [c.to_dict() for c in db.session.query(Category).order_by(Category.name.asc()).all()]


def create_category(name: str, description: str | None = None) -> Category:
    if db.session.query(Category).filter_by(name=name).first() is not None:
        raise ConflictError(f"Category {name} already exists", details={"name": name})
    category = Category(name=name, description=description)
    db.session.add(category)
    db.session.commit()
    return category
