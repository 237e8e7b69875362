# tanapark/schemas/vehicle.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional


class VehicleCheckIn(BaseModel):
    valet_id: int
    plate_code: str = Field(min_length=1)
    region: str = Field(min_length=1)
    license_plate_number: str = Field(min_length=1)
    vehicle_type: Literal["tripod", "automobile", "truck", "trailer"]
    model: str = ""
    color: str = ""
    phone_number: str = Field(min_length=1)
    notes: str = ""
    service_type: Literal["hourly", "package"] = "hourly"
    package_duration: Optional[Literal["weekly", "monthly", "yearly"]] = None


class VehicleDraft(BaseModel):
    """Vehicle details held until a package payment is confirmed."""
    plate_code: str = Field(min_length=1)
    region: str = Field(min_length=1)
    license_plate_number: str = Field(min_length=1)
    vehicle_type: Literal["tripod", "automobile", "truck", "trailer"]
    model: str = ""
    color: str = ""
    phone_number: Optional[str] = None
    notes: str = ""
    price_level: Optional[str] = None


class VehicleUpdate(BaseModel):
    user_id: int
    status: Optional[Literal["parked", "checked_out"]] = None
    notes: Optional[str] = None
    total_paid_amount: Optional[float] = Field(default=None, ge=0)
    payment_method: Optional[Literal["manual", "online"]] = None


class VehicleFlag(BaseModel):
    user_id: int
    base_amount: Optional[float] = Field(default=None, ge=0)
    vat_amount: Optional[float] = Field(default=None, ge=0)
    total_with_vat: Optional[float] = Field(default=None, ge=0)


class VehicleOut(BaseModel):
    id: int
    license_plate: str
    plate_code: Optional[str]
    region: Optional[str]
    license_plate_number: Optional[str]
    vehicle_type: str
    model: Optional[str]
    color: Optional[str]
    phone_number: Optional[str]
    location: Optional[str]
    notes: Optional[str]
    service_type: str
    package_duration: Optional[str]
    package_start_date: Optional[datetime]
    package_end_date: Optional[datetime]
    status: str
    parked_at: datetime
    checked_out_at: Optional[datetime]
    valet_id: int
    payment_method: Optional[str]
    payment_reference: Optional[str]
    total_paid_amount: float
    base_amount: float
    vat_amount: float
    vat_rate: float
    is_flagged: bool
    flagged_at: Optional[datetime]
    notification_sent: bool
    last_notification_sent_at: Optional[datetime]

    class Config:
        from_attributes = True
