"""
Returns and receipts tests.

Verifies:
- Returns restock with RETURN movements and refund the paid unit price
- Returned quantity can never exceed sold quantity
- Receipts are issued once, frozen, and reprints only bump the counter
"""

import pytest

from trustpos.errors import (
    InvalidState,
    ReceiptExists,
    ReceiptNotFound,
    ReturnNotFound,
    ReturnQuantityExceeded,
    ValidationError,
)
from trustpos.extensions import db
from trustpos.models import AuditLog, Order, Product, SerialItem, StockMovement
from trustpos.services import order_service, receipt_service, return_service
from trustpos.validation import parse_checkout_request, parse_return_request


def checkout(agent, **payload):
    return order_service.create_order(parse_checkout_request(payload), agent)


def return_items(order, user, lines, reason="Customer changed mind"):
    request = parse_return_request({
        "order_id": order.id,
        "reason": reason,
        "items": [{"order_item_id": item_id, "quantity": qty} for item_id, qty in lines],
    })
    return return_service.create_return(request, user.id)


class TestReturns:
    def test_partial_return_restocks_and_refunds(self, agent, manager, make_product):
        product = make_product(price_cents=2000, stock_quantity=5)
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 3}])
        item_id = order.items[0].id

        return_doc = return_items(order, manager, [(item_id, 2)])

        assert return_doc.return_number.startswith("RET-")
        assert return_doc.refund_cents == 4000
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 4
        movement = db.session.query(StockMovement).filter_by(type="RETURN").one()
        assert movement.quantity_delta == 2
        assert movement.order_id == order.id
        assert db.session.get(Order, order.id).status == "COMPLETED"
        assert db.session.query(AuditLog).filter_by(action="ORDER_RETURN").count() == 1

    def test_refund_uses_paid_price_not_catalog_price(self, agent, manager, make_product):
        product = make_product(price_cents=2000)
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 1}])

        product.price_cents = 5000
        db.session.commit()

        return_doc = return_items(order, manager, [(order.items[0].id, 1)])
        assert return_doc.refund_cents == 2000

    def test_full_return_marks_order_returned(self, agent, manager, make_product):
        product = make_product()
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 2}])

        return_items(order, manager, [(order.items[0].id, 2)])

        order = db.session.get(Order, order.id)
        assert order.status == "RETURNED"
        assert order.payment.status == "REFUNDED"

    def test_cannot_return_more_than_sold(self, agent, manager, make_product):
        product = make_product()
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 2}])
        item_id = order.items[0].id
        return_items(order, manager, [(item_id, 1)])

        with pytest.raises(ReturnQuantityExceeded) as exc_info:
            return_items(order, manager, [(item_id, 1), (item_id, 1)])

        assert exc_info.value.details["item_index"] == 1
        assert exc_info.value.details["returnable"] == 0
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 9

    def test_item_from_another_order_rejected(self, agent, manager, make_product):
        product = make_product()
        first = checkout(agent, items=[{"product_id": product.id, "quantity": 1}])
        second = checkout(agent, items=[{"product_id": product.id, "quantity": 1}])

        with pytest.raises(ValidationError):
            return_items(first, manager, [(second.items[0].id, 1)])

    def test_pending_order_cannot_be_returned(self, agent, manager, make_product):
        product = make_product()
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 1}], payment_method="MOBILE_MONEY")
        with pytest.raises(InvalidState):
            return_items(order, manager, [(order.items[0].id, 1)])

    def test_returned_serial_is_available_again(self, agent, manager, make_product):
        product = make_product(is_serialized=True, serial_numbers=["SN-1"])
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 1}])

        return_items(order, manager, [(order.items[0].id, 1)])

        serial = db.session.query(SerialItem).filter_by(serial_number="SN-1").one()
        assert serial.status == "AVAILABLE"
        assert serial.order_item_id is None
        assert db.session.get(Product, product.id).stock_quantity == 1

    def test_reason_too_short(self):
        with pytest.raises(ValidationError):
            parse_return_request({"order_id": 1, "reason": "no", "items": [{"order_item_id": 1, "quantity": 1}]})

    def test_get_unknown_return(self, db_session):
        with pytest.raises(ReturnNotFound):
            return_service.get_return(9999)


class TestReceipts:
    def test_receipt_snapshot(self, agent, make_product, make_tax):
        make_tax(rate_bps=1800)
        product = make_product(name="USB-C Cable", price_cents=50000, cost_price_cents=1)
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 2}], amount_tendered_cents=120000)

        receipt = receipt_service.generate_receipt(order.id)

        content = receipt.content
        assert receipt.receipt_number.startswith("RCP-")
        assert content["order_number"] == order.order_number
        assert content["customer"] == {"name": "Walk-in Customer"}
        assert content["agent"] == {"name": agent.username}
        assert content["items"][0]["name"] == "USB-C Cable"
        assert content["total_cents"] == 118000
        assert content["change_cents"] == 2000
        assert content["branding"]["business_name"]

    def test_one_receipt_per_order(self, agent, make_product):
        product = make_product()
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 1}])
        receipt_service.generate_receipt(order.id)

        with pytest.raises(ReceiptExists):
            receipt_service.generate_receipt(order.id)

    def test_reprint_keeps_content(self, agent, make_product):
        product = make_product(name="Original name")
        order = checkout(agent, items=[{"product_id": product.id, "quantity": 1}])
        receipt = receipt_service.generate_receipt(order.id)
        original = dict(receipt.content)

        product.name = "Renamed"
        db.session.commit()
        reprinted = receipt_service.reprint_receipt(receipt.id)

        assert reprinted.reprint_count == 1
        assert reprinted.content == original
        assert receipt_service.get_receipt_by_order(order.id).id == receipt.id

    def test_missing_receipt(self, db_session):
        with pytest.raises(ReceiptNotFound):
            receipt_service.get_receipt_by_order(12345)
