# Overview: Service-layer operations for inventory; encapsulates stock mutations.

# backend/trustpos/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..extensions import db
from ..errors import (
    InsufficientStock,
    ProductInactive,
    ProductNotFound,
    SerialNotAvailable,
    ValidationError,
    InvalidQuantity,
    ConflictError,
)
from ..models import Product, SerialItem, StockMovement
from trustpos.time_utils import utcnow
from . import audit_service
from .concurrency import lock_for_update, run_with_retry
"""
Inventory Invariants (authoritative)

Stock model:
- Product.stock_quantity is the on-hand counter; it never goes below zero.
- For serialized products, stock_quantity == count of AVAILABLE SerialItem rows.
- Every change to stock_quantity writes exactly one StockMovement row in the
  same DB transaction. Movements are append-only.

Concurrency:
- Decrements are a single conditional UPDATE (stock_quantity >= q), so two
  concurrent checkouts can never overdraw the same product row.
- Serial consumption is a conditional UPDATE on status='AVAILABLE'.

Transactions:
- reserve_stock and release_stock never commit; they run inside the
  caller's unit of work (checkout, cancel, return).
- receive_stock and adjust_stock are standalone operations and commit.
"""

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_CANCEL = "CANCEL"

SERIAL_AVAILABLE = "AVAILABLE"
SERIAL_SOLD = "SOLD"


@dataclass
class Reservation:
    """Result of a successful reserve_stock call."""
    product: Product
    quantity: int
    movement: StockMovement
    serial_item: SerialItem | None = None

    @property
    def serial_number(self) -> str | None:
        return self.serial_item.serial_number if self.serial_item else None


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound(f"Product not found: {product_id}", details={"product_id": product_id})
    return product


def _decrement(product: Product, quantity: int) -> None:
    stmt = (
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(
            stock_quantity=Product.stock_quantity - quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        db.session.refresh(product)
        raise InsufficientStock(
            f"Insufficient stock for {product.name}. Available: {product.stock_quantity}",
            details={
                "product_id": product.id,
                "requested_quantity": quantity,
                "available": product.stock_quantity,
            },
        )
    db.session.refresh(product)


def _increment(product: Product, quantity: int) -> None:
    stmt = (
        update(Product)
        .where(Product.id == product.id)
        .values(
            stock_quantity=Product.stock_quantity + quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    db.session.refresh(product)


def _claim_serial(product: Product, serial_number: str | None) -> SerialItem:
    query = db.session.query(SerialItem).filter_by(product_id=product.id)
    if serial_number:
        serial = query.filter_by(serial_number=serial_number).first()
        if serial is None or serial.status != SERIAL_AVAILABLE:
            raise SerialNotAvailable(
                f"Serial {serial_number} is not available for {product.name}",
                details={"product_id": product.id, "serial_number": serial_number},
            )
    else:
        serial = query.filter_by(status=SERIAL_AVAILABLE).order_by(SerialItem.id.asc()).first()
        if serial is None:
            raise InsufficientStock(
                f"No serialized units available for {product.name}",
                details={"product_id": product.id, "requested_quantity": 1, "available": 0},
            )

    stmt = (
        update(SerialItem)
        .where(SerialItem.id == serial.id, SerialItem.status == SERIAL_AVAILABLE)
        .values(status=SERIAL_SOLD, sold_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if db.session.execute(stmt).rowcount != 1:
        raise SerialNotAvailable(
            f"Serial {serial.serial_number} is not available for {product.name}",
            details={"product_id": product.id, "serial_number": serial.serial_number},
        )
    db.session.refresh(serial)
    return serial


def reserve_stock(
    product_id: int,
    quantity: int,
    serial_number: str | None = None,
    *,
    user_id: int | None = None,
) -> Reservation:
    """
    Draw stock for one cart line inside the caller's transaction.

    All checks run before any mutation:
    ProductNotFound, ProductInactive, InsufficientStock, SerialNotAvailable.

    Serialized products sell one unit per line. A requested serial must be
    AVAILABLE; without one the oldest available unit is assigned.
    """
    if quantity < 1:
        raise InvalidQuantity("quantity must be >= 1")

    product = get_product(product_id)
    if not product.is_active:
        raise ProductInactive(f"Product {product.name} is inactive", details={"product_id": product.id})

    if product.is_serialized and quantity != 1:
        raise InvalidQuantity(
            f"Serialized product {product.name} must be sold one unit per line",
            details={"product_id": product.id},
        )
    if serial_number and not product.is_serialized:
        raise ValidationError(
            f"Product {product.name} is not serialized",
            details={"product_id": product.id, "serial_number": serial_number},
        )

    if quantity > product.stock_quantity:
        raise InsufficientStock(
            f"Insufficient stock for {product.name}. Available: {product.stock_quantity}",
            details={
                "product_id": product.id,
                "requested_quantity": quantity,
                "available": product.stock_quantity,
            },
        )

    serial_item = None
    if product.is_serialized:
        serial_item = _claim_serial(product, serial_number)

    _decrement(product, quantity)

    movement = StockMovement(
        product_id=product.id,
        type=MOVEMENT_OUT,
        quantity_delta=-quantity,
        reason="SALE",
        user_id=user_id,
    )
    db.session.add(movement)

    return Reservation(product=product, quantity=quantity, movement=movement, serial_item=serial_item)


def release_stock(
    product_id: int,
    quantity: int,
    *,
    movement_type: str,
    reason: str,
    user_id: int | None = None,
    order_id: int | None = None,
    serial_number: str | None = None,
) -> StockMovement:
    """
    Put units back on the shelf inside the caller's transaction (cancel / return).
    """
    product = get_product(product_id)

    if serial_number:
        serial = db.session.query(SerialItem).filter_by(
            product_id=product.id, serial_number=serial_number
        ).first()
        if serial is None or serial.status != SERIAL_SOLD:
            raise ConflictError(
                f"Serial {serial_number} is not marked as sold",
                details={"product_id": product.id, "serial_number": serial_number},
            )
        serial.status = SERIAL_AVAILABLE
        serial.order_item_id = None
        serial.sold_at = None

    _increment(product, quantity)

    movement = StockMovement(
        product_id=product.id,
        type=movement_type,
        quantity_delta=quantity,
        reason=reason,
        user_id=user_id,
        order_id=order_id,
    )
    db.session.add(movement)
    return movement


def _create_serials(product: Product, serial_numbers: list[str]) -> None:
    existing = (
        db.session.query(SerialItem.serial_number)
        .filter(SerialItem.serial_number.in_(serial_numbers))
        .all()
    )
    if existing:
        taken = sorted(row[0] for row in existing)
        raise ConflictError(
            f"Serial numbers already registered: {', '.join(taken)}",
            details={"serial_numbers": taken},
        )
    for sn in serial_numbers:
        db.session.add(SerialItem(product_id=product.id, serial_number=sn, status=SERIAL_AVAILABLE))


def receive_stock_locked(
    product: Product,
    quantity: int,
    *,
    user_id: int | None,
    reason: str | None = None,
    serial_numbers: list[str] | None = None,
) -> StockMovement:
    """Core receive logic without retry or commit (shared with product creation)."""
    serial_numbers = serial_numbers or []
    if product.is_serialized:
        if len(serial_numbers) != quantity:
            raise ValidationError(
                "Serialized products require one serial number per unit received",
                details={"quantity": quantity, "serial_numbers": len(serial_numbers)},
            )
        _create_serials(product, serial_numbers)
    elif serial_numbers:
        raise ValidationError(f"Product {product.name} is not serialized")

    _increment(product, quantity)

    movement = StockMovement(
        product_id=product.id,
        type=MOVEMENT_IN,
        quantity_delta=quantity,
        reason=reason or "RECEIVE",
        user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def receive_stock(
    product_id: int,
    quantity: int,
    *,
    user_id: int | None,
    reason: str | None = None,
    serial_numbers: list[str] | None = None,
) -> StockMovement:
    """Receive stock into a product (IN movement)."""
    if quantity < 1:
        raise InvalidQuantity("quantity must be >= 1")

    def _op():
        product = get_product(product_id, lock=True)
        movement = receive_stock_locked(
            product, quantity, user_id=user_id, reason=reason, serial_numbers=serial_numbers
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def adjust_stock(product_id: int, quantity_delta: int, *, reason: str, user_id: int | None) -> StockMovement:
    """
    Manual stock correction (ADJUSTMENT movement). Audited as STOCK_ADJUSTMENT.

    Serialized products change stock only through receive, sale, cancel and
    return so the serial count invariant holds.
    """
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")
    if not reason:
        raise ValidationError("reason is required for stock adjustments")

    def _op():
        product = get_product(product_id, lock=True)
        if product.is_serialized:
            raise ValidationError(
                f"Stock for serialized product {product.name} cannot be adjusted manually",
                details={"product_id": product.id},
            )
        old_quantity = product.stock_quantity
        if quantity_delta < 0:
            _decrement(product, -quantity_delta)
        else:
            _increment(product, quantity_delta)

        movement = StockMovement(
            product_id=product.id,
            type=MOVEMENT_ADJUSTMENT,
            quantity_delta=quantity_delta,
            reason=reason,
            user_id=user_id,
        )
        db.session.add(movement)
        db.session.commit()
        return movement, old_quantity, product.stock_quantity

    movement, old_quantity, new_quantity = run_with_retry(_op)

    audit_service.record(
        audit_service.STOCK_ADJUSTMENT,
        "PRODUCT",
        product_id,
        user_id,
        old_value={"stock": old_quantity},
        new_value={"stock": new_quantity},
        reason=reason,
    )
    return movement


def list_stock_movements(product_id: int, limit: int = 100) -> list[dict]:
    get_product(product_id)
    movements = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(min(max(limit, 1), 500))
        .all()
    )
    return [m.to_dict() for m in movements]
