# Overview: Flask API routes for return operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError
from ..services import return_service
from ..validation import parse_return_request

returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@require_auth
@require_role("ADMIN", "MANAGER")
def create_return_route():
    """Body: {"order_id": int, "reason": str, "items": [{"order_item_id": int, "quantity": int}]}"""
    try:
        return_request = parse_return_request(request.get_json(silent=True))
        return_doc = return_service.create_return(return_request, g.current_user.id)
        return jsonify({"return": return_doc.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_auth
@require_role("ADMIN", "MANAGER")
def list_returns_route():
    result = return_service.list_returns(
        order_id=request.args.get("order_id", type=int),
        page=request.args.get("page", default=1, type=int),
        per_page=request.args.get("per_page", default=20, type=int),
    )
    return jsonify(result), 200
