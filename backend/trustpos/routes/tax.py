# Overview: Flask API routes for tax operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError
from ..services import tax_service
from ..validation import parse_amount, parse_tax_payload

tax_bp = Blueprint("tax", __name__, url_prefix="/api/tax")


@tax_bp.get("")
@require_auth
@require_role("ADMIN", "MANAGER")
def list_tax_configs_route():
    return jsonify({"items": tax_service.list_tax_configs()}), 200


@tax_bp.post("")
@require_auth
@require_role("ADMIN", "MANAGER")
def create_tax_config_route():
    try:
        data = parse_tax_payload(request.get_json(silent=True))
        config = tax_service.create_tax_config(data)
        return jsonify({"tax_config": config.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create tax configuration")
        return jsonify({"error": "Internal server error"}), 500


@tax_bp.post("/<int:config_id>/activate")
@require_auth
@require_role("ADMIN", "MANAGER")
def activate_tax_config_route(config_id: int):
    try:
        config = tax_service.activate_tax_config(config_id, user_id=g.current_user.id)
        return jsonify({"tax_config": config.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to activate tax configuration")
        return jsonify({"error": "Internal server error"}), 500


@tax_bp.get("/active")
@require_auth
def active_tax_config_route():
    return jsonify({"tax_config": tax_service.get_active_tax_config()}), 200


@tax_bp.post("/calculate")
@require_auth
def calculate_tax_route():
    """Body: {"subtotal_cents": int}"""
    try:
        subtotal = parse_amount(request.get_json(silent=True), "subtotal_cents")
        return jsonify(tax_service.calculate_tax(subtotal)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
