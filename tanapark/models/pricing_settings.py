# tanapark/models/pricing_settings.py
"""
Pricing settings — a single row holding the whole pricing document:
{"priceLevels": {level: {vehicle_type: {hourly, weekly, monthly, yearly}}}, "vatRate": 0.15}
"""

from sqlalchemy import Column, Integer, DateTime, JSON
from tanapark.database import Base


class PricingSettings(Base):
    __tablename__ = "pricing_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    settings = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime)

    def __repr__(self):
        levels = list((self.settings or {}).get("priceLevels", {}).keys())
        return f"<PricingSettings {self.id} levels={levels}>"
