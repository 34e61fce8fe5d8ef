"""
Audit recorder tests.

Verifies:
- Entries are written with JSON snapshots
- A failing audit write never undoes or fails the business operation
"""

import logging

from sqlalchemy.exc import OperationalError

from trustpos.extensions import db
from trustpos.models import AuditLog, Product
from trustpos.services import audit_service, inventory_service


class TestAuditRecorder:
    def test_record_writes_entry(self, db_session, manager):
        entry = audit_service.record(
            audit_service.PRICE_CHANGE,
            "PRODUCT",
            7,
            manager.id,
            old_value={"price_cents": 100},
            new_value={"price_cents": 120},
            reason="Supplier increase",
        )

        assert entry is not None
        assert entry.entity_id == "7"
        assert entry.old_value == {"price_cents": 100}

    def test_failure_is_logged_not_raised(self, db_session, monkeypatch, caplog):
        def broken_commit():
            raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))

        monkeypatch.setattr(db.session, "commit", broken_commit)

        with caplog.at_level(logging.ERROR, logger="trustpos.audit"):
            result = audit_service.record(audit_service.ORDER_CANCEL, "ORDER", 1, None)

        assert result is None
        assert any("Failed to write audit entry" in r.getMessage() for r in caplog.records)

    def test_business_change_survives_audit_failure(self, make_product, manager, monkeypatch, caplog):
        product = make_product(stock_quantity=5)

        def unserializable(value):
            raise TypeError("Object of type Decimal is not JSON serializable")

        monkeypatch.setattr(audit_service, "_snapshot", unserializable)
        with caplog.at_level(logging.ERROR, logger="trustpos.audit"):
            movement = inventory_service.adjust_stock(
                product.id, -1, reason="Broken on shelf", user_id=manager.id
            )

        assert movement.quantity_delta == -1
        assert "STOCK_ADJUSTMENT" in caplog.text

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 4
        assert db.session.query(AuditLog).count() == 0

    def test_list_filters_by_action(self, db_session):
        audit_service.record(audit_service.PRICE_CHANGE, "PRODUCT", 1, None)
        audit_service.record(audit_service.ORDER_CANCEL, "ORDER", 2, None)

        result = audit_service.list_audit_logs(action="ORDER_CANCEL")
        assert result["total"] == 1
        assert result["items"][0]["entity_id"] == "2"

    def test_unexpected_error_is_contained(self, db_session, monkeypatch, caplog):
        def explode(value):
            raise RuntimeError("snapshot exploded")

        monkeypatch.setattr(audit_service, "_snapshot", explode)
        with caplog.at_level(logging.ERROR, logger="trustpos.audit"):
            result = audit_service.record(audit_service.TAX_ACTIVATE, "TAX_CONFIG", 3, None, new_value={"a": 1})

        assert result is None
        assert "TAX_ACTIVATE" in caplog.text
