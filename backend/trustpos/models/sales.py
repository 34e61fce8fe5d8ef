from __future__ import annotations

from ..extensions import db
from trustpos.time_utils import to_utc_z


class Order(db.Model):
    """
    Checkout order (receipt header).

    TOTALS INVARIANT: total_cents == subtotal_cents - discount_cents + tax_cents >= 0.
    Totals are computed once by order_service.create_order and never
    recomputed from live product prices.

    STATUS: PENDING, COMPLETED, CANCELLED, RETURNED
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "ORD-20261017-000042")
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True, index=True)
    coupon_code = db.Column(db.String(32), nullable=True)
    tax_config_id = db.Column(db.Integer, db.ForeignKey("tax_configs.id"), nullable=True)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    # Set when a manager bypassed standard pricing
    pricing_override = db.Column(db.Boolean, nullable=False, default=False)
    override_reason = db.Column(db.String(255), nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.line_number")
    payment = db.relationship("Payment", back_populates="order", uselist=False)
    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    agent = db.relationship("User", backref=db.backref("orders", lazy=True))
    discount = db.relationship("Discount")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_number={self.order_number!r} status={self.status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "discount_id": self.discount_id,
            "coupon_code": self.coupon_code,
            "tax_config_id": self.tax_config_id,
            "tax_rate_bps": self.tax_rate_bps,
            "pricing_override": self.pricing_override,
            "override_reason": self.override_reason,
            "customer_id": self.customer_id,
            "agent_id": self.agent_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["payment"] = self.payment.to_dict() if self.payment else None
        return data


class OrderItem(db.Model):
    """
    Line item with price and cost snapshots taken at sale time.

    Later product price changes never alter historical orders.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        db.UniqueConstraint("order_id", "line_number", name="uq_order_items_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # Snapshot of product name so receipts survive catalog edits
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Catalog price when it differs from unit_price_cents (manager override)
    list_price_cents = db.Column(db.Integer, nullable=True)

    serial_number = db.Column(db.String(128), nullable=True)
    warranty_expiry = db.Column(db.DateTime(timezone=True), nullable=True)

    returned_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "line_number": self.line_number,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "list_price_cents": self.list_price_cents,
            "serial_number": self.serial_number,
            "warranty_expiry": to_utc_z(self.warranty_expiry) if self.warranty_expiry else None,
            "returned_quantity": self.returned_quantity,
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Payment for an order (one-to-one).

    METHODS: CASH, MOBILE_MONEY, CARD
    STATUS: PENDING, COMPLETED, REFUNDED, CANCELLED

    amount_cents always equals Order.total_cents. amount_tendered_cents and
    change_cents describe cash over-tender.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)

    method = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    amount_tendered_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Mobile money transaction id, card auth code, etc.
    reference_number = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("Order", back_populates="payment")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "method": self.method,
            "status": self.status,
            "amount_cents": self.amount_cents,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_cents": self.change_cents,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }


class Receipt(db.Model):
    """Printed receipt: a frozen JSON snapshot of an order. One per order."""
    __tablename__ = "receipts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    receipt_number = db.Column(db.String(64), nullable=False, unique=True)
    content = db.Column(db.JSON, nullable=False)
    printed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reprint_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("receipt", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "receipt_number": self.receipt_number,
            "content": self.content,
            "printed_at": to_utc_z(self.printed_at) if self.printed_at else None,
            "reprint_count": self.reprint_count,
            "created_at": to_utc_z(self.created_at),
        }


class Return(db.Model):
    """Customer return against a completed order."""
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(64), nullable=False, unique=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED")
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("returns", lazy=True))
    items = db.relationship("ReturnItem", back_populates="return_doc", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "reason": self.reason,
            "refund_cents": self.refund_cents,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)

    return_doc = db.relationship("Return", back_populates="items")
    order_item = db.relationship("OrderItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "order_item_id": self.order_item_id,
            "quantity": self.quantity,
            "refund_cents": self.refund_cents,
        }
