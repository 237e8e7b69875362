# tanapark/services/pricing_service.py
"""Pricing settings persistence — one row, read by every fee calculation."""

from sqlalchemy.orm import Session
from tanapark.config import settings
from tanapark.models.pricing_settings import PricingSettings
from tanapark.services.fee_calculator import PricingConfiguration, PACKAGE_TIERS, VEHICLE_TYPES
from tanapark.utils.clock import utcnow
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)

RATE_KEYS = ("hourly",) + PACKAGE_TIERS


def get_or_create_settings(db: Session) -> PricingSettings:
    row = db.query(PricingSettings).order_by(PricingSettings.id).first()
    if not row:
        row = PricingSettings(settings={}, updated_at=utcnow())
        db.add(row)
        db.commit()
        db.refresh(row)
    return row


def get_pricing_configuration(db: Session) -> PricingConfiguration:
    row = db.query(PricingSettings).order_by(PricingSettings.id).first()
    return PricingConfiguration.from_document(row.settings if row else None,
                                              default_vat_rate=settings.DEFAULT_VAT_RATE)


def validate_pricing_document(document: dict) -> dict:
    """Normalise rates to floats; raises ValueError on unknown vehicle types, tiers or negative prices."""
    levels = document.get("priceLevels") or {}
    cleaned = {}
    for level, by_type in levels.items():
        if not str(level).strip():
            raise ValueError("Price level name cannot be empty")
        cleaned[level] = {}
        for vehicle_type, rates in (by_type or {}).items():
            if vehicle_type not in VEHICLE_TYPES:
                raise ValueError(f"Unknown vehicle type {vehicle_type!r} in level {level!r}")
            cleaned[level][vehicle_type] = {}
            for key, value in (rates or {}).items():
                if key not in RATE_KEYS:
                    raise ValueError(f"Unknown rate {key!r} for {vehicle_type} in level {level!r}")
                if value is None:
                    continue
                if float(value) < 0:
                    raise ValueError(f"Negative {key} rate for {vehicle_type} in level {level!r}")
                cleaned[level][vehicle_type][key] = float(value)

    result = {"priceLevels": cleaned}
    vat_rate = document.get("vatRate")
    if vat_rate is not None:
        if not 0 <= float(vat_rate) < 1:
            raise ValueError("vatRate must be a fraction between 0 and 1")
        result["vatRate"] = float(vat_rate)
    return result


def update_pricing_settings(db: Session, document: dict) -> PricingSettings:
    row = get_or_create_settings(db)
    row.settings = validate_pricing_document(document)
    row.updated_at = utcnow()
    db.commit()
    db.refresh(row)
    logger.info(f"Pricing settings updated: levels={list(row.settings['priceLevels'].keys())}")
    return row
