# tanapark/services/sms_service.py
"""
SMS dispatch — posts {to, from, message} to the configured SMS gateway.

Notifications after a confirmed payment go through notify_best_effort():
the payment is already committed, so a failed SMS is logged and never
turns a successful checkout into a reported failure.
"""

import httpx
from datetime import datetime
from typing import Optional

from tanapark.config import settings
from tanapark.utils.logger import get_logger
from tanapark.utils.phone import to_international

logger = get_logger(__name__)


class SmsError(Exception):
    pass


class SmsNotifier:
    def __init__(self, api_url: Optional[str] = None, api_token: Optional[str] = None,
                 sender: Optional[str] = None, timeout: float = 10):
        self.api_url = api_url if api_url is not None else settings.SMS_API_URL
        self.api_token = api_token if api_token is not None else settings.SMS_API_TOKEN
        self.sender = sender or settings.SMS_SENDER
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)

    async def send(self, phone_number: str, message: str):
        if not self.enabled:
            raise SmsError("SMS_API_URL is not configured")
        try:
            to = to_international(phone_number)
        except ValueError as e:
            raise SmsError(str(e)) from e

        headers = {"Authorization": f"Bearer {self.api_token}"} if self.api_token else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.api_url, headers=headers,
                                             json={"to": to, "from": self.sender, "message": message})
        except httpx.HTTPError as e:
            raise SmsError(f"SMS gateway unreachable: {e}") from e

        if response.status_code >= 400:
            raise SmsError(f"SMS gateway returned HTTP {response.status_code}")
        logger.info(f"[SMS] Sent to {to} ({len(message)} chars)")


async def notify_best_effort(notifier: Optional[SmsNotifier], phone_number: Optional[str], message: str) -> bool:
    """Send an SMS, logging instead of raising. Returns True if it was sent."""
    if notifier is None or not phone_number:
        logger.info("[SMS] Skipped — no notifier or phone number")
        return False
    try:
        await notifier.send(phone_number, message)
        return True
    except Exception as e:
        logger.error(f"[SMS] Notification to {phone_number} failed: {e}")
        return False


# ── Message templates ────────────────────────────────────────────────────────

def checkout_receipt_message(license_plate: str, base_amount: float, vat_amount: float,
                             total_amount: float, vat_rate: float, tx_ref: str) -> str:
    return (
        "Dear customer,\n"
        f"Thank you for using Tana Parking services! Your car ({license_plate}) has been checked out.\n"
        f"Parking fee: {base_amount:.2f} ETB\n"
        f"VAT ({vat_rate * 100:.0f}%): {vat_amount:.2f} ETB\n"
        f"Total: {total_amount:.2f} ETB\n"
        "Payment method: Online (Chapa).\n"
        f"Payment Reference: {tx_ref}."
    )


def package_registration_message(license_plate: str, package_duration: str, total_amount: float,
                                 package_end_date: datetime, tx_ref: str) -> str:
    return (
        "Dear customer,\n"
        f"Your {package_duration} parking package for car ({license_plate}) is active.\n"
        f"Amount paid: {total_amount:.2f} ETB\n"
        f"Valid until: {package_end_date:%Y-%m-%d}.\n"
        f"Payment Reference: {tx_ref}."
    )


def unpaid_warning_message(license_plate: str, checked_out_at: Optional[datetime], base_amount: float,
                           vat_amount: float) -> str:
    when = f"on {checked_out_at:%Y-%m-%d} at {checked_out_at:%H:%M}" if checked_out_at else "recently"
    return (
        "WARNING: Unpaid Parking Fee\n\n"
        "Dear customer,\n\n"
        f"Your vehicle ({license_plate}) was checked out from Tana Parking {when} without payment.\n\n"
        "Outstanding Amount:\n"
        f"Parking Fee: {base_amount:.2f} ETB\n"
        f"VAT: {vat_amount:.2f} ETB\n"
        f"Total: {base_amount + vat_amount:.2f} ETB\n\n"
        "Please return to the parking facility to complete your payment.\n\n"
        "Thank you for your cooperation."
    )
