# tanapark/models/alert.py
"""
Alerts table — operational alerts raised by the payment workflow
(payment confirmed but nothing to commit, notification failures, flagged vehicles).
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from tanapark.database import Base


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_type = Column(String(50), nullable=False, index=True)  # processing_error | vehicle_flagged | sms_failed
    reference = Column(String(100), index=True)                 # txRef or vehicle id
    description = Column(Text)
    is_resolved = Column(Integer, default=0, nullable=False)
    triggered_at = Column(DateTime, nullable=False, index=True)
    resolved_at = Column(DateTime)

    def __repr__(self):
        return f"<Alert {self.id} type={self.alert_type} resolved={self.is_resolved}>"
