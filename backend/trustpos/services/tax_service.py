# Overview: Service-layer operations for tax configuration; single active rate with audited activation.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..errors import TaxConfigNotFound
from ..models import TaxConfig
from . import audit_service, pricing_service
from .concurrency import run_with_retry


def _deactivate_all(exclude_id: int | None = None) -> None:
    stmt = update(TaxConfig).where(TaxConfig.is_active.is_(True))
    if exclude_id is not None:
        stmt = stmt.where(TaxConfig.id != exclude_id)
    db.session.execute(
        stmt.values(is_active=False).execution_options(synchronize_session="fetch")
    )


def list_tax_configs() -> list[dict]:
    return [t.to_dict() for t in db.session.query(TaxConfig).order_by(TaxConfig.id.desc()).all()]


def create_tax_config(data: dict) -> TaxConfig:
    """Create a tax rate; when created active, every other row is deactivated first."""
    def _op():
        if data.get("is_active"):
            _deactivate_all()
        config = TaxConfig(name=data["name"], rate_bps=data["rate_bps"], is_active=bool(data.get("is_active")))
        db.session.add(config)
        db.session.commit()
        return config

    return run_with_retry(_op)


def activate_tax_config(config_id: int, user_id: int | None = None) -> TaxConfig:
    """Make config_id the single active rate in one transaction."""
    def _op():
        config = db.session.get(TaxConfig, config_id)
        if config is None:
            raise TaxConfigNotFound(f"Tax configuration {config_id} not found")
        previous = pricing_service.get_active_tax_config()
        previous = previous.to_dict() if previous else None
        _deactivate_all(exclude_id=config.id)
        config.is_active = True
        db.session.commit()
        return config, previous

    config, previous = run_with_retry(_op)
    audit_service.record(
        audit_service.TAX_ACTIVATE,
        "TAX_CONFIG",
        config.id,
        user_id,
        old_value=previous,
        new_value=config.to_dict(),
    )
    return config


def get_active_tax_config() -> dict | None:
    config = pricing_service.get_active_tax_config()
    return config.to_dict() if config else None


def calculate_tax(subtotal_cents: int) -> dict:
    config = pricing_service.get_active_tax_config()
    if config is None:
        return {"tax_cents": 0, "rate_bps": 0, "tax_name": None}
    return {
        "tax_cents": pricing_service.compute_tax_cents(subtotal_cents, config.rate_bps),
        "rate_bps": config.rate_bps,
        "tax_name": config.name,
    }
