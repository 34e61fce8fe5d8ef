# Overview: Flask API routes for discount operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError
from ..services import discount_service
from ..validation import parse_amount, parse_discount_payload

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("")
@require_auth
@require_role("ADMIN", "MANAGER")
def list_discounts_route():
    return jsonify({"items": discount_service.list_discounts()}), 200


@discounts_bp.get("/active")
@require_auth
def list_active_discounts_route():
    return jsonify({"items": discount_service.list_active_discounts()}), 200


@discounts_bp.post("")
@require_auth
@require_role("ADMIN", "MANAGER")
def create_discount_route():
    try:
        data = parse_discount_payload(request.get_json(silent=True), partial=False)
        discount = discount_service.create_discount(data)
        return jsonify({"discount": discount.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.patch("/<int:discount_id>")
@require_auth
@require_role("ADMIN", "MANAGER")
def update_discount_route(discount_id: int):
    try:
        patch = parse_discount_payload(request.get_json(silent=True), partial=True)
        discount = discount_service.update_discount(discount_id, patch, user_id=g.current_user.id)
        return jsonify({"discount": discount.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.post("/validate")
@require_auth
def validate_discount_route():
    """
    Preview a coupon against a subtotal without side effects.

    Body: {"code": str, "subtotal_cents": int}
    """
    try:
        data = request.get_json(silent=True) or {}
        subtotal = parse_amount(data, "subtotal_cents")
        result = discount_service.validate_coupon(data.get("code"), subtotal)
        return jsonify(result), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate discount")
        return jsonify({"error": "Internal server error"}), 500
