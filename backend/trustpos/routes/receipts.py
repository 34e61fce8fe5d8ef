# Overview: Flask API routes for receipt operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify

from ..decorators import can_access_order, require_auth
from ..errors import PosError
from ..services import order_service, receipt_service

receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")

FORBIDDEN = {"error": "Permission denied"}


@receipts_bp.post("/generate/<int:order_id>")
@require_auth
def generate_receipt_route(order_id: int):
    try:
        if not can_access_order(order_service.get_order(order_id)):
            return jsonify(FORBIDDEN), 403
        receipt = receipt_service.generate_receipt(order_id)
        return jsonify({"receipt": receipt.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate receipt")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.get("/<int:receipt_id>")
@require_auth
def get_receipt_route(receipt_id: int):
    try:
        receipt = receipt_service.get_receipt(receipt_id)
        if not can_access_order(receipt.order):
            return jsonify(FORBIDDEN), 403
        return jsonify({"receipt": receipt.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@receipts_bp.get("/order/<int:order_id>")
@require_auth
def get_receipt_by_order_route(order_id: int):
    try:
        receipt = receipt_service.get_receipt_by_order(order_id)
        if not can_access_order(receipt.order):
            return jsonify(FORBIDDEN), 403
        return jsonify({"receipt": receipt.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@receipts_bp.post("/<int:receipt_id>/reprint")
@require_auth
def reprint_receipt_route(receipt_id: int):
    try:
        if not can_access_order(receipt_service.get_receipt(receipt_id).order):
            return jsonify(FORBIDDEN), 403
        receipt = receipt_service.reprint_receipt(receipt_id)
        return jsonify({"receipt": receipt.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reprint receipt")
        return jsonify({"error": "Internal server error"}), 500
