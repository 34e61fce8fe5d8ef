"""
Order Assembler - checkout as a single unit of work.

WHY: Stock reservation for every cart line, the Order/OrderItem/Payment
graph and the StockMovement rows either all commit together or not at all.
Partial application (some lines decremented, no order saved) is the failure
mode this module exists to prevent.

FLOW (create_order):
1. Validate the cart shape (done by validation.parse_checkout_request).
2. Reserve stock per line, snapshotting price/cost/serial. Any failure aborts
   and is tagged with the offending item_index.
3. Resolve discount and tax (pricing_service).
4. total = subtotal - discount + tax; negative totals are rejected.
5. CASH over-tender produces change; under-tender is rejected.
6. Allocate an order number and persist everything; commit once.
7. Orders that bypassed standard pricing are audited after commit.

Totals are never accepted from the client.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import (
    CustomerNotFound,
    EmptyCart,
    InsufficientPayment,
    InvalidState,
    InvalidTotal,
    OrderNotFound,
    OrderNumberCollision,
    OverrideNotPermitted,
    PersistenceError,
    PosError,
)
from ..models import Customer, Order, OrderItem, Payment, User
from ..validation import CheckoutRequest
from trustpos.time_utils import add_months, utcnow
from . import audit_service, inventory_service, pricing_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number

ORDER_PENDING = "PENDING"
ORDER_COMPLETED = "COMPLETED"
ORDER_CANCELLED = "CANCELLED"
ORDER_RETURNED = "RETURNED"

PAYMENT_PENDING = "PENDING"
PAYMENT_COMPLETED = "COMPLETED"
PAYMENT_CANCELLED = "CANCELLED"
PAYMENT_REFUNDED = "REFUNDED"

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_MOBILE_MONEY = "MOBILE_MONEY"

# Methods confirmed at the counter; others wait for confirm_payment
SYNCHRONOUS_METHODS = {METHOD_CASH, METHOD_CARD}

OVERRIDE_ROLES = {"ADMIN", "MANAGER"}


@dataclass
class _LineDraft:
    reservation: inventory_service.Reservation
    unit_price_cents: int
    list_price_cents: int | None

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.reservation.quantity


def _reserve_lines(request: CheckoutRequest, agent_id: int | None) -> list[_LineDraft]:
    drafts = []
    for index, item in enumerate(request.items):
        try:
            reservation = inventory_service.reserve_stock(
                item.product_id,
                item.quantity,
                item.serial_number,
                user_id=agent_id,
            )
        except PosError as e:
            raise e.with_item_index(index)

        product = reservation.product
        if item.price_override_cents is not None and item.price_override_cents != product.price_cents:
            drafts.append(_LineDraft(reservation, item.price_override_cents, product.price_cents))
        else:
            drafts.append(_LineDraft(reservation, product.price_cents, None))
    return drafts


def _settle_payment(method: str, total_cents: int, amount_tendered_cents: int | None) -> tuple[int, int]:
    """Returns (amount_tendered_cents, change_cents)."""
    if method != METHOD_CASH or amount_tendered_cents is None:
        return total_cents, 0

    change = amount_tendered_cents - total_cents
    if change < 0:
        raise InsufficientPayment(
            f"Amount tendered ({amount_tendered_cents}) is less than total ({total_cents})",
            details={"amount_tendered_cents": amount_tendered_cents, "total_cents": total_cents},
        )
    return amount_tendered_cents, change


def _persist(
    request: CheckoutRequest,
    drafts: list[_LineDraft],
    pricing: pricing_service.PricingResult,
    *,
    agent_id: int | None,
    amount_tendered_cents: int,
    change_cents: int,
) -> Order:
    now = utcnow()
    synchronous = request.payment_method in SYNCHRONOUS_METHODS
    status = ORDER_COMPLETED if synchronous else ORDER_PENDING

    order_number = next_document_number(
        document_type="ORDER",
        prefix=current_app.config.get("ORDER_NUMBER_PREFIX", "ORD"),
    )
    if db.session.query(Order.id).filter_by(order_number=order_number).first() is not None:
        raise OrderNumberCollision(
            f"Order number {order_number} already exists",
            details={"order_number": order_number},
        )

    order = Order(
        order_number=order_number,
        status=status,
        subtotal_cents=pricing.subtotal_cents,
        discount_cents=pricing.discount_cents,
        tax_cents=pricing.tax_cents,
        total_cents=pricing.total_cents,
        discount_id=pricing.discount.id if pricing.discount else None,
        coupon_code=request.coupon_code if pricing.discount else None,
        tax_config_id=pricing.tax_config.id if pricing.tax_config else None,
        tax_rate_bps=pricing.tax_rate_bps,
        pricing_override=request.has_override,
        override_reason=request.override_reason if request.has_override else None,
        customer_id=request.customer_id,
        agent_id=agent_id,
        completed_at=now if synchronous else None,
    )
    db.session.add(order)
    db.session.flush()

    for line_number, draft in enumerate(drafts, start=1):
        product = draft.reservation.product
        warranty_expiry = None
        if product.warranty_months and product.warranty_months > 0:
            warranty_expiry = add_months(now, product.warranty_months)

        item = OrderItem(
            order_id=order.id,
            product_id=product.id,
            line_number=line_number,
            product_name=product.name,
            quantity=draft.reservation.quantity,
            unit_price_cents=draft.unit_price_cents,
            unit_cost_cents=product.cost_price_cents or 0,
            line_total_cents=draft.line_total_cents,
            list_price_cents=draft.list_price_cents,
            serial_number=draft.reservation.serial_number,
            warranty_expiry=warranty_expiry,
        )
        db.session.add(item)
        db.session.flush()

        draft.reservation.movement.order_id = order.id
        if draft.reservation.serial_item is not None:
            draft.reservation.serial_item.order_item_id = item.id

    db.session.add(Payment(
        order_id=order.id,
        method=request.payment_method,
        status=PAYMENT_COMPLETED if synchronous else PAYMENT_PENDING,
        amount_cents=order.total_cents,
        amount_tendered_cents=amount_tendered_cents,
        change_cents=change_cents,
        reference_number=request.payment_reference,
        completed_at=now if synchronous else None,
    ))
    return order


def create_order(request: CheckoutRequest, agent: User | None = None) -> Order:
    """
    Create a fully paid (or payment-pending) order from a validated cart.

    Raises a PosError subclass on any business failure; nothing is persisted
    in that case.
    """
    if not request.items:
        raise EmptyCart("Cart must contain at least one item")

    agent_id = agent.id if agent else None
    if request.has_override and (agent is None or agent.role not in OVERRIDE_ROLES):
        raise OverrideNotPermitted("Only managers can override prices or discounts")

    def _op() -> Order:
        if request.customer_id is not None and db.session.get(Customer, request.customer_id) is None:
            raise CustomerNotFound(
                f"Customer {request.customer_id} not found",
                details={"customer_id": request.customer_id},
            )

        drafts = _reserve_lines(request, agent_id)
        subtotal = sum(d.line_total_cents for d in drafts)

        if request.manual_discount_cents is not None:
            pricing = pricing_service.with_discount(subtotal, request.manual_discount_cents)
        else:
            pricing = pricing_service.resolve(subtotal, request.coupon_code)

        if pricing.total_cents < 0:
            raise InvalidTotal(
                "Order total cannot be negative",
                details={
                    "subtotal_cents": pricing.subtotal_cents,
                    "discount_cents": pricing.discount_cents,
                    "tax_cents": pricing.tax_cents,
                },
            )

        tendered, change = _settle_payment(
            request.payment_method, pricing.total_cents, request.amount_tendered_cents
        )

        order = _persist(
            request,
            drafts,
            pricing,
            agent_id=agent_id,
            amount_tendered_cents=tendered,
            change_cents=change,
        )
        try:
            db.session.commit()
        except IntegrityError as exc:
            raise PersistenceError("Order could not be saved") from exc
        return order

    attempts = current_app.config.get("CHECKOUT_RETRY_ATTEMPTS", 5)
    try:
        order = run_with_retry(_op, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        raise PersistenceError("Checkout could not be completed, please retry") from exc

    if order.pricing_override:
        audit_service.record(
            audit_service.ORDER_CREATE,
            "ORDER",
            order.id,
            agent_id,
            new_value={
                "order_number": order.order_number,
                "subtotal_cents": order.subtotal_cents,
                "discount_cents": order.discount_cents,
                "manual_discount_cents": request.manual_discount_cents,
                "price_overrides": [
                    {
                        "product_id": item.product_id,
                        "list_price_cents": item.list_price_cents,
                        "unit_price_cents": item.unit_price_cents,
                    }
                    for item in order.items
                    if item.list_price_cents is not None
                ],
                "total_cents": order.total_cents,
            },
            reason=order.override_reason,
        )
    return order


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(
    user: User,
    status: str | None = None,
    customer_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Sales agents see only their own orders; managers and admins see all."""
    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), 100)

    q = db.session.query(Order)
    if user.role == "SALES_AGENT":
        q = q.filter(Order.agent_id == user.id)
    if status:
        q = q.filter(Order.status == status.upper())
    if customer_id:
        q = q.filter(Order.customer_id == customer_id)

    total = q.count()
    orders = q.order_by(Order.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [o.to_dict() for o in orders],
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
        "total": total,
    }


def confirm_payment(order_id: int, reference_number: str | None = None) -> Order:
    """Confirm an asynchronous payment (e.g. mobile money): PENDING -> COMPLETED."""
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
        if order.status != ORDER_PENDING or order.payment is None or order.payment.status != PAYMENT_PENDING:
            raise InvalidState(
                f"Only PENDING orders can be confirmed (status {order.status})",
                details={"order_id": order.id, "status": order.status},
            )
        now = utcnow()
        order.status = ORDER_COMPLETED
        order.completed_at = now
        order.payment.status = PAYMENT_COMPLETED
        order.payment.completed_at = now
        if reference_number:
            order.payment.reference_number = reference_number
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, user_id: int | None, reason: str) -> Order:
    """
    Cancel a PENDING order and put its stock back (CANCEL movements).
    Completed orders are reversed through returns instead.
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
        if order.status != ORDER_PENDING:
            raise InvalidState(
                f"Only PENDING orders can be cancelled (status {order.status})",
                details={"order_id": order.id, "status": order.status},
            )

        for item in order.items:
            inventory_service.release_stock(
                item.product_id,
                item.quantity,
                movement_type=inventory_service.MOVEMENT_CANCEL,
                reason=f"Cancel: {reason} (Order: {order.order_number})",
                user_id=user_id,
                order_id=order.id,
                serial_number=item.serial_number,
            )

        order.status = ORDER_CANCELLED
        order.cancelled_at = utcnow()
        if order.payment is not None:
            order.payment.status = PAYMENT_CANCELLED
        db.session.commit()
        return order

    order = run_with_retry(_op)
    audit_service.record(
        audit_service.ORDER_CANCEL,
        "ORDER",
        order.id,
        user_id,
        old_value={"status": ORDER_PENDING},
        new_value={"status": order.status, "order_number": order.order_number},
        reason=reason,
    )
    return order
