# Overview: Audit recorder; append-only log of sensitive mutations.

"""
Audit Recorder

INVARIANTS:
- record() is called AFTER the business transaction it describes has
  committed, so an audit failure can never roll that transaction back.
- record() never raises. Failures are rolled back locally and reported on
  the "trustpos.audit" logger (the operational channel).
- There is no update or delete path for AuditLog rows.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..extensions import db
from ..models import AuditLog

logger = logging.getLogger("trustpos.audit")

# Actions
ORDER_CREATE = "ORDER_CREATE"
ORDER_CANCEL = "ORDER_CANCEL"
ORDER_RETURN = "ORDER_RETURN"
PRICE_CHANGE = "PRICE_CHANGE"
STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"
PRICE_AND_STOCK_UPDATE = "PRICE_AND_STOCK_UPDATE"
PRODUCT_DELETE = "PRODUCT_DELETE"
DISCOUNT_UPDATE = "DISCOUNT_UPDATE"
TAX_ACTIVATE = "TAX_ACTIVATE"
USER_CREATE = "USER_CREATE"
USER_UPDATE = "USER_UPDATE"
USER_DEACTIVATE = "USER_DEACTIVATE"
USER_REACTIVATE = "USER_REACTIVATE"


def _snapshot(value: Any) -> Any:
    """Coerce a value into a JSON-safe snapshot (datetimes become strings)."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def record(
    action: str,
    entity_type: str,
    entity_id: int | str,
    user_id: int | None,
    old_value: Any = None,
    new_value: Any = None,
    reason: str | None = None,
) -> AuditLog | None:
    """
    Append an audit entry. Returns the entry, or None if it could not be written.
    """
    try:
        entry = AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            user_id=user_id,
            old_value=_snapshot(old_value),
            new_value=_snapshot(new_value),
            reason=reason,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        logger.exception(
            "Failed to write audit entry action=%s entity=%s:%s user=%s",
            action, entity_type, entity_id, user_id,
        )
        return None


def list_audit_logs(
    action: str | None = None,
    entity_type: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    page = max(page or 1, 1)
    per_page = min(max(per_page or 20, 1), 100)

    q = db.session.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)

    total = q.count()
    logs = (
        q.order_by(AuditLog.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [log.to_dict() for log in logs],
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page,
        "total": total,
    }
