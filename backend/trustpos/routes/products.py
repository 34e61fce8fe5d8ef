# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/trustpos/routes/products.py
"""
Product and inventory routes.

SECURITY: All routes require authentication.
- Read operations are open to every role
- Catalog writes and stock changes require ADMIN or MANAGER
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError, ValidationError
from ..services import inventory_service, products_service
from ..validation import parse_product_payload, parse_stock_change

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

MANAGERS = ("ADMIN", "MANAGER")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params:
    - search: name or SKU substring
    - category_id: int
    - low_stock: "true" to return only products at or below their threshold
    - include_inactive: "true" to include deactivated products
    """
    try:
        products = products_service.list_products(
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            low_stock=request.args.get("low_stock", "").lower() == "true",
            include_inactive=request.args.get("include_inactive", "").lower() == "true",
        )
        return jsonify({"items": products, "count": len(products)}), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
@require_role(*MANAGERS)
def create_product_route():
    try:
        data = parse_product_payload(request.get_json(silent=True), partial=False)
        product = products_service.create_product(data, user_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(*MANAGERS)
def update_product_route(product_id: int):
    try:
        patch = parse_product_payload(request.get_json(silent=True), partial=True)
        product = products_service.update_product(product_id, patch, user_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(*MANAGERS)
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, history is kept."""
    try:
        products_service.deactivate_product(product_id, user_id=g.current_user.id)
        return jsonify({"message": "Product removed"}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/receive")
@require_auth
@require_role(*MANAGERS)
def receive_stock_route(product_id: int):
    """Body: {"quantity": int, "reason"?: str, "serial_numbers"?: [str]}"""
    try:
        data = parse_stock_change(request.get_json(silent=True), adjustment=False)
        movement = inventory_service.receive_stock(
            product_id,
            data["quantity"],
            user_id=g.current_user.id,
            reason=data["reason"],
            serial_numbers=data["serial_numbers"],
        )
        product = inventory_service.get_product(product_id)
        return jsonify({"movement": movement.to_dict(), "product": product.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/adjust")
@require_auth
@require_role(*MANAGERS)
def adjust_stock_route(product_id: int):
    """Body: {"quantity_delta": int (non-zero), "reason": str}"""
    try:
        data = parse_stock_change(request.get_json(silent=True), adjustment=True)
        movement = inventory_service.adjust_stock(
            product_id,
            data["quantity_delta"],
            reason=data["reason"],
            user_id=g.current_user.id,
        )
        product = inventory_service.get_product(product_id)
        return jsonify({"movement": movement.to_dict(), "product": product.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_auth
def list_movements_route(product_id: int):
    try:
        limit = request.args.get("limit", default=100, type=int)
        movements = inventory_service.list_stock_movements(product_id, limit=limit)
        return jsonify({"items": movements}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/categories")
@require_auth
def list_categories_route():
    return jsonify({"items": products_service.list_categories()}), 200


@products_bp.post("/categories")
@require_auth
@require_role(*MANAGERS)
def create_category_route():
    """Body: {"name": str, "description"?: str}"""
    try:
        data = request.get_json(silent=True) or {}
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"field": "name"})
        category = products_service.create_category(name, data.get("description"))
        return jsonify({"category": category.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500
