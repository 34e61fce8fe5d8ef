"""
Tax configuration and discount management tests.
"""

import pytest

from trustpos.errors import DiscountInactive, DuplicateCode, TaxConfigNotFound, ValidationError
from trustpos.extensions import db
from trustpos.models import AuditLog, TaxConfig
from trustpos.services import discount_service, tax_service
from trustpos.validation import parse_discount_payload


class TestTaxConfig:
    def test_creating_active_rate_deactivates_others(self, db_session):
        tax_service.create_tax_config({"name": "Old VAT", "rate_bps": 1600, "is_active": True})
        tax_service.create_tax_config({"name": "VAT", "rate_bps": 1800, "is_active": True})

        active = db.session.query(TaxConfig).filter_by(is_active=True).all()
        assert [c.name for c in active] == ["VAT"]

    def test_activate_switches_single_active_rate(self, db_session, admin):
        first = tax_service.create_tax_config({"name": "VAT", "rate_bps": 1800, "is_active": True})
        second = tax_service.create_tax_config({"name": "Reduced", "rate_bps": 500, "is_active": False})

        tax_service.activate_tax_config(second.id, admin.id)

        assert tax_service.get_active_tax_config()["id"] == second.id
        assert db.session.query(TaxConfig).filter_by(is_active=True).count() == 1
        entry = db.session.query(AuditLog).filter_by(action="TAX_ACTIVATE").one()
        assert entry.old_value["id"] == first.id
        assert entry.new_value["id"] == second.id

    def test_activate_unknown(self, db_session):
        with pytest.raises(TaxConfigNotFound):
            tax_service.activate_tax_config(404)

    def test_calculate_tax(self, make_tax):
        make_tax(rate_bps=1800, name="VAT")
        assert tax_service.calculate_tax(100000) == {"tax_cents": 18000, "rate_bps": 1800, "tax_name": "VAT"}

    def test_calculate_tax_without_config(self, db_session):
        assert tax_service.calculate_tax(100000)["tax_cents"] == 0


class TestDiscounts:
    def test_duplicate_code(self, make_discount):
        make_discount(code="SAVE10")
        with pytest.raises(DuplicateCode):
            discount_service.create_discount(
                parse_discount_payload(
                    {"name": "Again", "code": "save10", "discount_type": "FIXED", "value": 100},
                    partial=False,
                )
            )

    def test_percentage_over_100_rejected(self):
        with pytest.raises(ValidationError):
            parse_discount_payload({"name": "Too much", "discount_type": "PERCENTAGE", "value": 150}, partial=False)

    def test_update_is_audited(self, make_discount, manager):
        discount = make_discount(value=10)

        discount_service.update_discount(discount.id, {"value": 15}, manager.id)

        entry = db.session.query(AuditLog).filter_by(action="DISCOUNT_UPDATE").one()
        assert entry.old_value["value"] == 10
        assert entry.new_value["value"] == 15
        assert entry.user_id == manager.id

    def test_validate_coupon_preview(self, make_discount):
        make_discount(value=10, max_discount_cents=5000)
        result = discount_service.validate_coupon("SAVE10", 100000)
        assert result["valid"] is True
        assert result["discount_cents"] == 5000

    def test_validate_inactive_coupon(self, make_discount):
        make_discount(is_active=False)
        with pytest.raises(DiscountInactive):
            discount_service.validate_coupon("SAVE10", 100000)

    def test_active_list_excludes_inactive(self, make_discount):
        make_discount(code="ON")
        make_discount(code="OFF", is_active=False)
        assert [d["code"] for d in discount_service.list_active_discounts()] == ["ON"]
