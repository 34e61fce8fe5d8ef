"""
Inventory ledger tests.

Verifies:
- Stock never goes negative; failed reservations leave stock unchanged
- Every counter change is explained by a StockMovement
- Serialized products keep stock == AVAILABLE serials
"""

import pytest

from trustpos.errors import (
    ConflictError,
    InsufficientStock,
    InvalidQuantity,
    ProductInactive,
    ProductNotFound,
    SerialNotAvailable,
    ValidationError,
)
from trustpos.extensions import db
from trustpos.models import AuditLog, Product, SerialItem, StockMovement
from trustpos.services import inventory_service, products_service


def ledger_sum(product_id: int) -> int:
    return sum(
        m.quantity_delta
        for m in db.session.query(StockMovement).filter_by(product_id=product_id).all()
    )


def available_serials(product_id: int) -> int:
    return db.session.query(SerialItem).filter_by(product_id=product_id, status="AVAILABLE").count()


class TestReserveStock:
    def test_reserve_more_than_available_fails_without_change(self, make_product):
        product = make_product(stock_quantity=3)

        with pytest.raises(InsufficientStock) as exc_info:
            inventory_service.reserve_stock(product.id, 4)
        db.session.rollback()

        assert exc_info.value.details == {"product_id": product.id, "requested_quantity": 4, "available": 3}
        assert db.session.get(Product, product.id).stock_quantity == 3

    def test_reserve_decrements_and_records_movement(self, make_product):
        product = make_product(stock_quantity=3)

        reservation = inventory_service.reserve_stock(product.id, 2)
        db.session.commit()

        assert reservation.product.stock_quantity == 1
        assert ledger_sum(product.id) == 1

    def test_zero_quantity_rejected(self, make_product):
        product = make_product()
        with pytest.raises(InvalidQuantity):
            inventory_service.reserve_stock(product.id, 0)

    def test_unknown_and_inactive_products(self, make_product):
        with pytest.raises(ProductNotFound):
            inventory_service.reserve_stock(424242, 1)

        product = make_product(is_active=False)
        with pytest.raises(ProductInactive):
            inventory_service.reserve_stock(product.id, 1)

    def test_serial_on_plain_product_rejected(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            inventory_service.reserve_stock(product.id, 1, "SN-X")

    def test_unknown_serial_not_available(self, make_product):
        product = make_product(is_serialized=True, serial_numbers=["SN-1"])
        with pytest.raises(SerialNotAvailable):
            inventory_service.reserve_stock(product.id, 1, "SN-404")


class TestReceiveAndAdjust:
    def test_opening_stock_is_a_movement(self, make_product):
        product = make_product(stock_quantity=7)
        movement = db.session.query(StockMovement).filter_by(product_id=product.id).one()
        assert movement.type == "IN"
        assert movement.quantity_delta == 7
        assert movement.reason == "Opening stock"

    def test_receive_increments(self, make_product, manager):
        product = make_product(stock_quantity=2)
        inventory_service.receive_stock(product.id, 5, user_id=manager.id, reason="Supplier delivery")

        assert db.session.get(Product, product.id).stock_quantity == 7
        assert ledger_sum(product.id) == 7

    def test_receive_serialized_requires_one_serial_per_unit(self, make_product, manager):
        product = make_product(is_serialized=True, serial_numbers=["SN-1"])

        with pytest.raises(ValidationError):
            inventory_service.receive_stock(product.id, 2, user_id=manager.id, serial_numbers=["SN-2"])

        inventory_service.receive_stock(product.id, 2, user_id=manager.id, serial_numbers=["SN-2", "SN-3"])
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 3
        assert available_serials(product.id) == 3

    def test_duplicate_serial_conflicts(self, make_product, manager):
        product = make_product(is_serialized=True, serial_numbers=["SN-1"])
        with pytest.raises(ConflictError):
            inventory_service.receive_stock(product.id, 1, user_id=manager.id, serial_numbers=["SN-1"])

    def test_adjust_down_cannot_go_negative(self, make_product, manager):
        product = make_product(stock_quantity=2)
        with pytest.raises(InsufficientStock):
            inventory_service.adjust_stock(product.id, -3, reason="Shrinkage", user_id=manager.id)
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 2

    def test_adjust_is_audited(self, make_product, manager):
        product = make_product(stock_quantity=5)
        inventory_service.adjust_stock(product.id, -2, reason="Damaged in storage", user_id=manager.id)

        entry = db.session.query(AuditLog).filter_by(action="STOCK_ADJUSTMENT").one()
        assert entry.old_value == {"stock": 5}
        assert entry.new_value == {"stock": 3}
        assert ledger_sum(product.id) == 3

    def test_serialized_stock_cannot_be_adjusted(self, make_product, manager):
        product = make_product(is_serialized=True, serial_numbers=["SN-1"])
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product.id, 1, reason="Found one", user_id=manager.id)


class TestProductUpdates:
    def test_price_below_cost_rejected(self, make_product, manager):
        product = make_product(price_cents=1000, cost_price_cents=500)
        with pytest.raises(ValidationError):
            products_service.update_product(product.id, {"price_cents": 400}, manager.id)

    def test_stock_patch_books_adjustment(self, make_product, manager):
        product = make_product(stock_quantity=10)

        products_service.update_product(product.id, {"stock_quantity": 6, "price_cents": 1200}, manager.id)

        movement = db.session.query(StockMovement).filter_by(product_id=product.id, type="ADJUSTMENT").one()
        assert movement.quantity_delta == -4
        assert ledger_sum(product.id) == 6
        assert db.session.query(AuditLog).filter_by(action="PRICE_AND_STOCK_UPDATE").count() == 1

    def test_deactivate_is_soft(self, make_product, manager):
        product = make_product()
        products_service.deactivate_product(product.id, manager.id)

        assert db.session.get(Product, product.id).is_active is False
        assert products_service.list_products() == []
        assert len(products_service.list_products(include_inactive=True)) == 1
