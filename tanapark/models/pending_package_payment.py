# tanapark/models/pending_package_payment.py
"""
Pending package payments — payment-first package registrations.
Holds the vehicle draft until the gateway confirms the txRef, so that
no unpaid package vehicle ever exists. Rows expire after 24 hours.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, JSON, ForeignKey
from tanapark.database import Base


class PendingPackagePayment(Base):
    __tablename__ = "pending_package_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tx_ref = Column(String(100), unique=True, nullable=False, index=True)
    vehicle_data = Column(JSON, nullable=False)    # plate_code, region, license_plate_number, vehicle_type, ...
    package_duration = Column(String(10), nullable=False)
    amount = Column(Float, nullable=False)
    base_amount = Column(Float, nullable=False)
    vat_amount = Column(Float, nullable=False)
    customer_phone = Column(String(20), nullable=False)
    valet_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    park_zone_code = Column(String(100), nullable=False, default="Unknown Zone")
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<PendingPackagePayment {self.tx_ref} tier={self.package_duration} amount={self.amount}>"
