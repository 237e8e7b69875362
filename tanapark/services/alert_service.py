# tanapark/services/alert_service.py
"""
Shared alert creation service.
Used by payment_verification (processing errors) and vehicle_service (flagged vehicles).
"""

from sqlalchemy.orm import Session
from tanapark.models.alert import Alert
from tanapark.utils.clock import utcnow
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)


async def create_alert(db: Session, alert_type: str, reference: str, description: str):
    """Create and persist an alert record. Always commits immediately."""
    db.add(Alert(alert_type=alert_type, reference=str(reference) if reference is not None else None,
                 description=description, is_resolved=0, triggered_at=utcnow()))
    db.commit()
    logger.warning(f"[ALERT][{alert_type.upper()}] {description}")


def resolve_alert(db: Session, alert_id: int):
    alert = db.query(Alert).filter(Alert.id == alert_id).first()
    if alert and not alert.is_resolved:
        alert.is_resolved = 1
        alert.resolved_at = utcnow()
        db.commit()
    return alert
