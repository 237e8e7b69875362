# tanapark/schemas/pricing.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class VehicleRates(BaseModel):
    hourly: Optional[float] = None
    weekly: Optional[float] = None
    monthly: Optional[float] = None
    yearly: Optional[float] = None


class PricingSettingsIn(BaseModel):
    priceLevels: dict[str, dict[str, VehicleRates]] = {}
    vatRate: Optional[float] = None


class PricingSettingsOut(BaseModel):
    priceLevels: dict = {}
    vatRate: float
    updated_at: Optional[datetime] = None
