# tanapark/schemas/payment.py
from pydantic import BaseModel, Field
from typing import Literal, Optional

from tanapark.schemas.vehicle import VehicleDraft, VehicleOut


class HourlyPaymentRequest(BaseModel):
    vehicle_id: int
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0)   # client-side quote, informational only


class PackagePaymentRequest(BaseModel):
    valet_id: int
    package_duration: Literal["weekly", "monthly", "yearly"]
    customer_phone: str = Field(min_length=1)
    amount: Optional[float] = Field(default=None, ge=0)
    vehicle: VehicleDraft


class PaymentSessionOut(BaseModel):
    tx_ref: str
    public_key: str
    mode: str
    amount: float
    currency: str
    base_amount: float
    vat_amount: float
    vat_rate: float
    duration_description: str
    vehicle_id: Optional[int] = None
    package_duration: Optional[str] = None


class VerificationOut(BaseModel):
    tx_ref: str
    status: str
    applied: bool = False
    message: str = ""
    vehicle: Optional[VehicleOut] = None

    class Config:
        from_attributes = True
