# tanapark/routers/pricing.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tanapark.database import get_db
from tanapark.schemas.pricing import PricingSettingsIn, PricingSettingsOut
from tanapark.services.pricing_service import get_or_create_settings, get_pricing_configuration, update_pricing_settings

router = APIRouter()


@router.get("/pricingSettings", response_model=PricingSettingsOut, summary="Current price levels and VAT rate")
def get_pricing(db: Session = Depends(get_db)):
    row = get_or_create_settings(db)
    pricing = get_pricing_configuration(db)
    return PricingSettingsOut(priceLevels=pricing.price_levels, vatRate=pricing.vat_rate, updated_at=row.updated_at)


@router.put("/pricingSettings", response_model=PricingSettingsOut, summary="Replace price levels / VAT rate")
def put_pricing(body: PricingSettingsIn, db: Session = Depends(get_db)):
    try:
        row = update_pricing_settings(db, body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    pricing = get_pricing_configuration(db)
    return PricingSettingsOut(priceLevels=pricing.price_levels, vatRate=pricing.vat_rate, updated_at=row.updated_at)
