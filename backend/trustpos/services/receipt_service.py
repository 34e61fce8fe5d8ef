# Overview: Service-layer operations for receipts; frozen order snapshots and reprints.

"""
Receipt Service

A receipt is a frozen JSON snapshot of an order taken at print time. Later
catalog, customer or branding edits never change an issued receipt; reprints
return the same content and only bump reprint_count.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ReceiptExists, ReceiptNotFound
from ..models import Order, Receipt
from trustpos.time_utils import to_utc_z, utcnow
from .document_service import next_document_number
from .order_service import get_order


def _build_content(order: Order, receipt_number: str) -> dict:
    payment = order.payment
    return {
        "branding": {
            "business_name": current_app.config.get("BUSINESS_NAME", "TRUST POS"),
            "footer_message": current_app.config.get("RECEIPT_FOOTER"),
        },
        "order_number": order.order_number,
        "receipt_number": receipt_number,
        "date": to_utc_z(utcnow()),
        "customer": (
            {"name": order.customer.name, "email": order.customer.email}
            if order.customer else {"name": "Walk-in Customer"}
        ),
        "agent": {"name": order.agent.username if order.agent else "Unknown Agent"},
        "items": [
            {
                "name": item.product_name,
                "quantity": item.quantity,
                "unit_price_cents": item.unit_price_cents,
                "total_cents": item.line_total_cents,
                "serial_number": item.serial_number,
                "warranty_expiry": to_utc_z(item.warranty_expiry) if item.warranty_expiry else None,
            }
            for item in order.items
        ],
        "subtotal_cents": order.subtotal_cents,
        "discount_cents": order.discount_cents,
        "tax_cents": order.tax_cents,
        "tax_rate_bps": order.tax_rate_bps,
        "total_cents": order.total_cents,
        "payment_method": payment.method if payment else None,
        "payment_status": payment.status if payment else "PENDING",
        "amount_tendered_cents": payment.amount_tendered_cents if payment else order.total_cents,
        "change_cents": payment.change_cents if payment else 0,
    }


def generate_receipt(order_id: int) -> Receipt:
    """Issue the one receipt for an order. ReceiptExists if already issued."""
    order = get_order(order_id)
    if db.session.query(Receipt.id).filter_by(order_id=order.id).first() is not None:
        raise ReceiptExists(
            f"Receipt already exists for order {order.order_number}",
            details={"order_id": order.id},
        )

    receipt_number = next_document_number(document_type="RECEIPT", prefix="RCP")
    receipt = Receipt(
        order_id=order.id,
        receipt_number=receipt_number,
        content=_build_content(order, receipt_number),
        printed_at=utcnow(),
    )
    db.session.add(receipt)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ReceiptExists(
            f"Receipt already exists for order {order.order_number}",
            details={"order_id": order.id},
        )
    return receipt


def get_receipt(receipt_id: int) -> Receipt:
    receipt = db.session.get(Receipt, receipt_id)
    if receipt is None:
        raise ReceiptNotFound(f"Receipt {receipt_id} not found", details={"receipt_id": receipt_id})
    return receipt


def get_receipt_by_order(order_id: int) -> Receipt:
    receipt = db.session.query(Receipt).filter_by(order_id=order_id).first()
    if receipt is None:
        raise ReceiptNotFound(f"No receipt for order {order_id}", details={"order_id": order_id})
    return receipt


def reprint_receipt(receipt_id: int) -> Receipt:
    receipt = get_receipt(receipt_id)
    receipt.reprint_count = (receipt.reprint_count or 0) + 1
    receipt.printed_at = utcnow()
    db.session.commit()
    return receipt
