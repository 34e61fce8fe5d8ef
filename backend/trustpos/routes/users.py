# Overview: Flask API routes for staff account operations; parses input and returns JSON responses.

"""
Staff account management. Admin only.

DELETE deactivates: accounts stay referenced by orders and audit entries.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import PosError
from ..services import user_service
from ..validation import parse_user_payload

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role("ADMIN")
def list_users_route():
    """Query params: role, include_inactive (default true)"""
    try:
        users = user_service.list_users(
            role=request.args.get("role"),
            include_inactive=request.args.get("include_inactive", "true").lower() == "true",
        )
        return jsonify({"items": users, "count": len(users)}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def get_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.get_user(user_id).to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@users_bp.post("")
@require_auth
@require_role("ADMIN")
def create_user_route():
    """Body: {"username": str, "email": str, "password": str, "role"?: "ADMIN" | "MANAGER" | "SALES_AGENT"}"""
    try:
        data = parse_user_payload(request.get_json(silent=True), partial=False)
        user = user_service.create_user(data, g.current_user.id)
        current_app.logger.info("User %s created by %s", user.username, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def update_user_route(user_id: int):
    try:
        patch = parse_user_payload(request.get_json(silent=True), partial=True)
        user = user_service.update_user(user_id, patch, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role("ADMIN")
def deactivate_user_route(user_id: int):
    try:
        user, revoked = user_service.deactivate_user(user_id, g.current_user.id)
        current_app.logger.info("User %s deactivated by %s", user.username, g.current_user.id)
        return jsonify({"user": user.to_dict(), "sessions_revoked": revoked}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.post("/<int:user_id>/reactivate")
@require_auth
@require_role("ADMIN")
def reactivate_user_route(user_id: int):
    try:
        user = user_service.reactivate_user(user_id, g.current_user.id)
        return jsonify({"user": user.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reactivate user")
        return jsonify({"error": "Internal server error"}), 500
