# tanapark/dependencies.py
"""
FastAPI dependencies for the external collaborators (payment gateway, SMS).
Overridden in tests through app.dependency_overrides, like get_db.
"""

from tanapark.services.gateway import ChapaGateway
from tanapark.services.sms_service import SmsNotifier


def get_gateway() -> ChapaGateway:
    return ChapaGateway()


def get_notifier() -> SmsNotifier:
    return SmsNotifier()
