# tanapark/models/parked_vehicle.py
"""
Parked vehicles table — one row per visit.
Created at hourly check-in, or when a package payment is confirmed.
Never hard-deleted by the payment workflow; rows are kept for reporting.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Text, ForeignKey
from tanapark.database import Base


STATUS_PARKED = "parked"
STATUS_CHECKED_OUT = "checked_out"


class ParkedVehicle(Base):
    __tablename__ = "parked_vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    license_plate = Column(String(50), nullable=False, index=True)   # CODE-REGION-NUMBER
    plate_code = Column(String(10))
    region = Column(String(20))
    license_plate_number = Column(String(20))
    vehicle_type = Column(String(20), nullable=False)                # tripod | automobile | truck | trailer
    model = Column(String(100), default="")
    color = Column(String(50), default="")
    phone_number = Column(String(20))
    location = Column(String(100), default="Unknown Zone")
    notes = Column(Text, default="")

    service_type = Column(String(10), nullable=False, default="hourly")  # hourly | package
    package_duration = Column(String(10))                                # weekly | monthly | yearly
    package_start_date = Column(DateTime)
    package_end_date = Column(DateTime)

    status = Column(String(20), nullable=False, default=STATUS_PARKED, index=True)
    parked_at = Column(DateTime, nullable=False, index=True)
    checked_out_at = Column(DateTime)
    checked_out_by = Column(Integer, ForeignKey("users.id"))
    valet_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    payment_method = Column(String(10))                  # manual | online
    payment_reference = Column(String(100), index=True)  # gateway txRef that paid this visit
    pending_tx_ref = Column(String(100), index=True)     # latest issued, not yet confirmed
    total_paid_amount = Column(Float, default=0.0, nullable=False)
    base_amount = Column(Float, default=0.0, nullable=False)
    vat_amount = Column(Float, default=0.0, nullable=False)
    vat_rate = Column(Float, default=0.15, nullable=False)

    is_flagged = Column(Boolean, default=False, nullable=False, index=True)
    flagged_at = Column(DateTime)
    flagged_by = Column(Integer, ForeignKey("users.id"))
    notification_sent = Column(Boolean, default=False, nullable=False)
    last_notification_sent_at = Column(DateTime)

    @staticmethod
    def format_plate(plate_code: str, region: str, number: str) -> str:
        return f"{plate_code}-{region}-{number}".upper()

    def __repr__(self):
        return f"<ParkedVehicle {self.id} plate={self.license_plate} status={self.status}>"
