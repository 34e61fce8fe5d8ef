"""
Return Processing Service

WHY: Returned goods must go back on the shelf with a RETURN movement, and the
refund must use the price the customer actually paid (the OrderItem snapshot),
never the current catalog price.

RULES:
- Only COMPLETED orders accept returns.
- Each line may return at most (quantity - returned_quantity) units.
- Serialized units become AVAILABLE again.
- The order moves to RETURNED once every unit has come back.
- ORDER_RETURN is audited after the return commits.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import InvalidState, OrderNotFound, ReturnNotFound, ReturnQuantityExceeded, ValidationError
from ..models import Order, OrderItem, Return, ReturnItem
from ..validation import ReturnRequest
from . import audit_service, inventory_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .order_service import ORDER_COMPLETED, ORDER_RETURNED, PAYMENT_REFUNDED

RETURN_STATUS_COMPLETED = "COMPLETED"


def create_return(request: ReturnRequest, user_id: int | None) -> Return:
    """
    Process a customer return in one transaction.

    Raises:
        OrderNotFound, InvalidState (order not COMPLETED),
        ValidationError (line not on this order),
        ReturnQuantityExceeded (more than sold minus already returned)
    """
    def _op() -> Return:
        order = lock_for_update(db.session.query(Order).filter_by(id=request.order_id)).first()
        if order is None:
            raise OrderNotFound(f"Order {request.order_id} not found", details={"order_id": request.order_id})
        if order.status != ORDER_COMPLETED:
            raise InvalidState(
                f"Can only return COMPLETED orders. Order {order.order_number} has status: {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        items_by_id = {item.id: item for item in order.items}
        requested: dict[int, int] = {}
        for index, line in enumerate(request.items):
            item = items_by_id.get(line.order_item_id)
            if item is None:
                raise ValidationError(
                    f"Order item {line.order_item_id} does not belong to order {order.order_number}",
                    details={"item_index": index, "order_item_id": line.order_item_id},
                )
            already = requested.get(item.id, 0)
            remaining = item.quantity - item.returned_quantity - already
            if line.quantity > remaining:
                raise ReturnQuantityExceeded(
                    f"Cannot return {line.quantity} of {item.product_name}; only {remaining} returnable",
                    details={
                        "item_index": index,
                        "order_item_id": item.id,
                        "requested_quantity": line.quantity,
                        "returnable": remaining,
                    },
                )
            requested[item.id] = already + line.quantity

        return_doc = Return(
            return_number=next_document_number(document_type="RETURN", prefix="RET"),
            order_id=order.id,
            reason=request.reason,
            refund_cents=0,
            status=RETURN_STATUS_COMPLETED,
            created_by_user_id=user_id,
        )
        db.session.add(return_doc)
        db.session.flush()

        refund_total = 0
        for line in request.items:
            item: OrderItem = items_by_id[line.order_item_id]
            refund = item.unit_price_cents * line.quantity
            refund_total += refund

            inventory_service.release_stock(
                item.product_id,
                line.quantity,
                movement_type=inventory_service.MOVEMENT_RETURN,
                reason=f"Return: {request.reason} (Order: {order.order_number})",
                user_id=user_id,
                order_id=order.id,
                serial_number=item.serial_number,
            )
            item.returned_quantity += line.quantity
            db.session.add(ReturnItem(
                return_id=return_doc.id,
                order_item_id=item.id,
                quantity=line.quantity,
                refund_cents=refund,
            ))

        return_doc.refund_cents = refund_total

        if all(item.returned_quantity >= item.quantity for item in order.items):
            order.status = ORDER_RETURNED
            if order.payment is not None:
                order.payment.status = PAYMENT_REFUNDED

        db.session.commit()
        return return_doc

    return_doc = run_with_retry(_op)

    audit_service.record(
        audit_service.ORDER_RETURN,
        "ORDER",
        return_doc.order_id,
        user_id,
        new_value={
            "return_number": return_doc.return_number,
            "refund_cents": return_doc.refund_cents,
            "items": [
                {"order_item_id": ri.order_item_id, "quantity": ri.quantity}
                for ri in return_doc.items
            ],
        },
        reason=request.reason,
    )
    return return_doc


def list_returns(order_id: int | None = None, page: int = 1, per_page: int = 20) -> dict:
    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), 100)

    q = db.session.query(Return)
    if order_id:
        q = q.filter(Return.order_id == order_id)
    total = q.count()
    returns = q.order_by(Return.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [r.to_dict() for r in returns],
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
        "total": total,
    }


def get_return(return_id: int) -> Return:
    return_doc = db.session.get(Return, return_id)
    if return_doc is None:
        raise ReturnNotFound(f"Return {return_id} not found", details={"return_id": return_id})
    return return_doc
