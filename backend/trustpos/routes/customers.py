# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth
from ..errors import PosError
from ..services import customer_service
from ..validation import parse_customer_payload

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    try:
        customers = customer_service.list_customers(search=request.args.get("search"))
        return jsonify({"items": customers, "count": len(customers)}), 200
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_auth
def create_customer_route():
    try:
        data = parse_customer_payload(request.get_json(silent=True))
        customer = customer_service.create_customer(data)
        return jsonify({"customer": customer.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
