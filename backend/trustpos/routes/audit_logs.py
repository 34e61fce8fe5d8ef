# Overview: Flask API routes for the audit log; read-only.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..services import audit_service

audit_logs_bp = Blueprint("audit_logs", __name__, url_prefix="/api/audit-logs")


@audit_logs_bp.get("")
@require_auth
@require_role("ADMIN", "MANAGER")
def list_audit_logs_route():
    """Query params: action, entity_type, page, per_page"""
    result = audit_service.list_audit_logs(
        action=request.args.get("action"),
        entity_type=request.args.get("entity_type"),
        page=request.args.get("page", default=1, type=int),
        per_page=request.args.get("per_page", default=20, type=int),
    )
    return jsonify(result), 200
