# Overview: Service-layer operations for customers; lookup, creation and spend totals.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, CustomerNotFound
from ..models import Customer, Order

# Orders that count towards a customer's spend
SPEND_STATUSES = ("COMPLETED",)


def create_customer(data: dict) -> Customer:
    if data.get("email") and db.session.query(Customer).filter_by(email=data["email"]).first():
        raise ConflictError("Customer with this email already exists", details={"email": data["email"]})

    customer = Customer(name=data["name"], email=data.get("email"), phone=data.get("phone"))
    db.session.add(customer)
    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def list_customers(search: str | None = None) -> list[dict]:
    """Customers with order count and total spent (completed orders only)."""
    order_count = func.count(Order.id)
    spent = func.coalesce(
        func.sum(db.case((Order.status.in_(SPEND_STATUSES), Order.total_cents), else_=0)),
        0,
    )
    q = (
        db.session.query(Customer, order_count, spent)
        .outerjoin(Order, Order.customer_id == Customer.id)
        .group_by(Customer.id)
    )
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(db.or_(Customer.name.ilike(like), Customer.email.ilike(like), Customer.phone.ilike(like)))

    results = []
    for customer, orders, total_spent in q.order_by(Customer.created_at.desc(), Customer.id.desc()).all():
        data = customer.to_dict()
        data["order_count"] = orders
        data["total_spent_cents"] = int(total_spent or 0)
        results.append(data)
    return results
