# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/trustpos/routes/orders.py
"""
Checkout and order routes.

POST /api/orders is the single checkout entry point: the client sends the
cart, the server computes every total.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import can_access_order, require_auth, require_role
from ..errors import PosError
from ..services import order_service
from ..validation import parse_cancel_request, parse_checkout_request, parse_confirm_payment

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Body:
    {
      "items": [{"product_id": 1, "quantity": 2, "serial_number"?: "...", "price_override_cents"?: 100}],
      "payment_method"?: "CASH" | "MOBILE_MONEY" | "CARD",
      "customer_id"?: int,
      "coupon_code"?: str,
      "manual_discount_cents"?: int,
      "override_reason"?: str,
      "amount_tendered_cents"?: int,
      "payment_reference"?: str
    }
    """
    try:
        checkout = parse_checkout_request(request.get_json(silent=True))
        order = order_service.create_order(checkout, g.current_user)
        current_app.logger.info(
            "Order %s created by user %s total=%s", order.order_number, g.current_user.id, order.total_cents
        )
        return jsonify({"order": order.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """Query params: status, customer_id, page, per_page"""
    try:
        result = order_service.list_orders(
            g.current_user,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            page=request.args.get("page", default=1, type=int),
            per_page=request.args.get("per_page", default=20, type=int),
        )
        return jsonify(result), 200
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        if not can_access_order(order):
            return jsonify({"error": "Permission denied"}), 403
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/confirm-payment")
@require_auth
def confirm_payment_route(order_id: int):
    """Body: {"reference_number"?: str}"""
    try:
        reference_number = parse_confirm_payment(request.get_json(silent=True))
        order = order_service.confirm_payment(order_id, reference_number=reference_number)
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_role("ADMIN", "MANAGER")
def cancel_order_route(order_id: int):
    """Body: {"reason": str}"""
    try:
        reason = parse_cancel_request(request.get_json(silent=True))
        order = order_service.cancel_order(order_id, g.current_user.id, reason)
        return jsonify({"order": order.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
