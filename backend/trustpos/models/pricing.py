from __future__ import annotations

from ..extensions import db
from trustpos.time_utils import to_utc_z


class Discount(db.Model):
    """
    Coupon / discount definition.

    TYPES:
    - PERCENTAGE: value is whole percent of the subtotal (0-100)
    - FIXED: value is an amount in minor units

    max_discount_cents caps PERCENTAGE discounts; min_purchase_cents gates
    eligibility on the pre-discount subtotal. A NULL start/end date leaves
    that side of the validity window open.
    """
    __tablename__ = "discounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Upper-cased on write
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    discount_type = db.Column(db.String(16), nullable=False)
    value = db.Column(db.Integer, nullable=False)

    min_purchase_cents = db.Column(db.Integer, nullable=False, default=0)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "code": self.code,
            "discount_type": self.discount_type,
            "value": self.value,
            "min_purchase_cents": self.min_purchase_cents,
            "max_discount_cents": self.max_discount_cents,
            "start_date": to_utc_z(self.start_date) if self.start_date else None,
            "end_date": to_utc_z(self.end_date) if self.end_date else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class TaxConfig(db.Model):
    """
    Sales tax rate.

    At most one row is active; tax_service.activate_tax_config deactivates
    every other row in the same transaction.
    """
    __tablename__ = "tax_configs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)

    # Basis points: 1800 == 18.00%
    rate_bps = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rate_bps": self.rate_bps,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
