# tanapark/services/fee_calculator.py
"""
Parking fee calculation — hourly and package pricing plus VAT.

Pure functions only: no DB, no clock, no config lookups. The caller passes
`now` and the PricingConfiguration, which keeps every result reproducible
and lets the backend and the client workflow share the same arithmetic.

Hourly:  minutes = max(1, ceil(elapsed)); base = minutes / 60 × hourly rate
Package: base = flat price for (price level, vehicle type, tier)
VAT:     vat = base × rate; total = base + vat — all rounded half-up to cents
"""

import calendar
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from tanapark.services.errors import ConfigurationError

VEHICLE_TYPES = ("tripod", "automobile", "truck", "trailer")
SERVICE_TYPES = ("hourly", "package")
PACKAGE_TIERS = ("weekly", "monthly", "yearly")

DEFAULT_VAT_RATE = 0.15
_CENT = Decimal("0.01")


@dataclass
class PricingConfiguration:
    price_levels: dict = field(default_factory=dict)   # level -> vehicle type -> {hourly, weekly, monthly, yearly}
    vat_rate: float = DEFAULT_VAT_RATE

    @classmethod
    def from_document(cls, document: Optional[dict], default_vat_rate: float = DEFAULT_VAT_RATE):
        document = document or {}
        vat_rate = document.get("vatRate")
        return cls(
            price_levels=dict(document.get("priceLevels") or {}),
            vat_rate=float(vat_rate) if vat_rate is not None else default_vat_rate,
        )

    def to_document(self) -> dict:
        return {"priceLevels": self.price_levels, "vatRate": self.vat_rate}


@dataclass
class FeeBreakdown:
    base_amount: float
    vat_amount: float
    total_amount: float
    vat_rate: float
    duration_description: str
    price_level: str
    billable_minutes: Optional[int] = None   # hourly only
    hourly_rate: Optional[float] = None      # hourly only
    package_duration: Optional[str] = None   # package only

    def to_dict(self) -> dict:
        return {
            "base_amount": self.base_amount,
            "vat_amount": self.vat_amount,
            "total_amount": self.total_amount,
            "vat_rate": self.vat_rate,
            "duration_description": self.duration_description,
            "price_level": self.price_level,
            "billable_minutes": self.billable_minutes,
            "hourly_rate": self.hourly_rate,
            "package_duration": self.package_duration,
        }


def round_money(value: float) -> float:
    """Round half-up to cents (2.675 -> 2.68, unlike round())."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def calculate_vat(base_amount: float, vat_rate: float = DEFAULT_VAT_RATE) -> dict:
    if not base_amount or base_amount < 0:
        return {"base_amount": 0.0, "vat_amount": 0.0, "total_amount": 0.0, "vat_rate": vat_rate}
    base = round_money(base_amount)
    vat = round_money(base * vat_rate)
    return {"base_amount": base, "vat_amount": vat,
            "total_amount": round_money(base + vat), "vat_rate": vat_rate}


def reverse_calculate_vat(total_amount: float, vat_rate: float = DEFAULT_VAT_RATE) -> dict:
    """Split a VAT-inclusive total (cash payments are quoted that way)."""
    if not total_amount or total_amount < 0:
        return {"base_amount": 0.0, "vat_amount": 0.0, "total_amount": 0.0, "vat_rate": vat_rate}
    total = round_money(total_amount)
    base = round_money(total / (1 + vat_rate))
    return {"base_amount": base, "vat_amount": round_money(total - base),
            "total_amount": total, "vat_rate": vat_rate}


def resolve_price_level(pricing: PricingConfiguration, price_level: Optional[str]) -> str:
    """Valet's level if configured, otherwise the first configured level."""
    if price_level and price_level in pricing.price_levels:
        return price_level
    if not pricing.price_levels:
        raise ConfigurationError("No price levels configured")
    return next(iter(pricing.price_levels))


def billable_minutes(parked_at: datetime, end: datetime) -> int:
    elapsed = (end - parked_at).total_seconds()
    return max(1, math.ceil(elapsed / 60))


def describe_minutes(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if mins or not hours:
        parts.append(f"{mins} minute{'s' if mins != 1 else ''}")
    return " ".join(parts)


def _rates_for(pricing: PricingConfiguration, level: str, vehicle_type: str) -> dict:
    if vehicle_type not in VEHICLE_TYPES:
        raise ConfigurationError(f"Unknown vehicle type {vehicle_type!r}")
    return pricing.price_levels.get(level, {}).get(vehicle_type) or {}


def calculate_hourly_fee(pricing: PricingConfiguration, vehicle_type: str, parked_at: datetime,
                         end: datetime, price_level: Optional[str] = None) -> FeeBreakdown:
    level = resolve_price_level(pricing, price_level)
    rate = _rates_for(pricing, level, vehicle_type).get("hourly")
    if not rate or float(rate) <= 0:
        raise ConfigurationError(f"Hourly rate not set for {vehicle_type} at price level {level!r}")

    minutes = billable_minutes(parked_at, end)
    amounts = calculate_vat(float(rate) * minutes / 60, pricing.vat_rate)
    return FeeBreakdown(
        base_amount=amounts["base_amount"],
        vat_amount=amounts["vat_amount"],
        total_amount=amounts["total_amount"],
        vat_rate=pricing.vat_rate,
        duration_description=describe_minutes(minutes),
        price_level=level,
        billable_minutes=minutes,
        hourly_rate=float(rate),
    )


def calculate_package_fee(pricing: PricingConfiguration, vehicle_type: str, package_duration: str,
                          price_level: Optional[str] = None) -> FeeBreakdown:
    if package_duration not in PACKAGE_TIERS:
        raise ConfigurationError(f"Unknown package duration {package_duration!r}")
    level = resolve_price_level(pricing, price_level)
    price = _rates_for(pricing, level, vehicle_type).get(package_duration)
    if not price or float(price) <= 0:
        raise ConfigurationError(f"{package_duration} package not priced for {vehicle_type} at price level {level!r}")

    amounts = calculate_vat(float(price), pricing.vat_rate)
    return FeeBreakdown(
        base_amount=amounts["base_amount"],
        vat_amount=amounts["vat_amount"],
        total_amount=amounts["total_amount"],
        vat_rate=pricing.vat_rate,
        duration_description=f"{package_duration} package",
        price_level=level,
        package_duration=package_duration,
    )


def _field(vehicle, name, default=None):
    if isinstance(vehicle, dict):
        return vehicle.get(name, default)
    return getattr(vehicle, name, default)


def calculate_fee(vehicle, pricing: PricingConfiguration, now: datetime,
                  price_level: Optional[str] = None) -> FeeBreakdown:
    """
    Fee for a vehicle record or a pending registration draft (ORM object or dict).
    A flagged vehicle is billed up to the moment it was flagged, not `now`.
    """
    vehicle_type = _field(vehicle, "vehicle_type")
    if _field(vehicle, "service_type", "hourly") == "package":
        return calculate_package_fee(pricing, vehicle_type, _field(vehicle, "package_duration"), price_level)

    parked_at = _field(vehicle, "parked_at")
    if parked_at is None:
        raise ValueError("parked_at is required for hourly billing")
    end = now
    if _field(vehicle, "is_flagged") and _field(vehicle, "checked_out_at"):
        end = _field(vehicle, "checked_out_at")
    return calculate_hourly_fee(pricing, vehicle_type, parked_at, end, price_level)


def _add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def package_end_date(start: datetime, package_duration: str) -> datetime:
    if package_duration == "weekly":
        return start + timedelta(days=7)
    if package_duration == "monthly":
        return _add_months(start, 1)
    if package_duration == "yearly":
        return _add_months(start, 12)
    raise ConfigurationError(f"Unknown package duration {package_duration!r}")
