# tanapark/services/payment_verification.py
"""
Payment verification (server side).

GET /payment/verify/{tx_ref} and the gateway callback both land here:
ask Chapa for the transaction status, and on "successful" hand it to the
checkout committer. The committer's conditional update makes the two
entry points safe to race; only the one that actually applied the
payment sends the customer SMS.

  successful         -> commit (hourly checkout / package registration)
  failed | cancelled -> status reported, pending package row discarded
  anything else      -> status "pending", caller polls again
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from tanapark.models.parked_vehicle import ParkedVehicle
from tanapark.services.alert_service import create_alert
from tanapark.services.checkout_committer import (
    CommitResult, commit_hourly_checkout, commit_package_registration, discard_package_payment,
)
from tanapark.services.errors import ProcessingError
from tanapark.services.gateway import ChapaGateway, GatewayTransaction
from tanapark.services.payment_session import is_package_tx_ref, vehicle_id_from_tx_ref
from tanapark.services.sms_service import (
    SmsNotifier, notify_best_effort, checkout_receipt_message, package_registration_message,
)
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class VerificationResult:
    tx_ref: str
    status: str                              # successful | failed | cancelled | pending
    applied: bool = False
    vehicle: Optional[ParkedVehicle] = None
    message: str = ""


def _resolve_vehicle_id(db: Session, tx_ref: str) -> Optional[int]:
    vehicle_id = vehicle_id_from_tx_ref(tx_ref)
    if vehicle_id is not None:
        return vehicle_id
    vehicle = (
        db.query(ParkedVehicle)
        .filter((ParkedVehicle.pending_tx_ref == tx_ref) | (ParkedVehicle.payment_reference == tx_ref))
        .first()
    )
    return vehicle.id if vehicle else None


def _commit(db: Session, tx_ref: str, transaction: GatewayTransaction, now: datetime) -> CommitResult:
    if is_package_tx_ref(tx_ref):
        return commit_package_registration(db, tx_ref, transaction.amount, now)

    vehicle_id = _resolve_vehicle_id(db, tx_ref)
    if vehicle_id is None:
        raise ProcessingError(f"Payment {tx_ref} confirmed but no vehicle references it")
    return commit_hourly_checkout(db, vehicle_id, tx_ref, transaction.amount, now)


async def _notify(notifier: Optional[SmsNotifier], vehicle: ParkedVehicle, tx_ref: str) -> bool:
    if vehicle.service_type == "package":
        message = package_registration_message(vehicle.license_plate, vehicle.package_duration,
                                               vehicle.total_paid_amount, vehicle.package_end_date, tx_ref)
    else:
        message = checkout_receipt_message(vehicle.license_plate, vehicle.base_amount, vehicle.vat_amount,
                                           vehicle.total_paid_amount, vehicle.vat_rate, tx_ref)
    return await notify_best_effort(notifier, vehicle.phone_number, message)


async def verify_payment(db: Session, tx_ref: str, gateway: ChapaGateway,
                         notifier: Optional[SmsNotifier], now: datetime) -> VerificationResult:
    """
    Verify tx_ref with the gateway and commit it when successful.
    GatewayError propagates (the client treats it as transient); ProcessingError
    is recorded as an alert before propagating.
    """
    transaction = await gateway.verify_transaction(tx_ref)

    if transaction.is_rejected:
        if is_package_tx_ref(tx_ref) and discard_package_payment(db, tx_ref):
            logger.info(f"[VERIFY] {tx_ref} {transaction.status} — pending package registration discarded")
        else:
            logger.info(f"[VERIFY] {tx_ref} {transaction.status}")
        return VerificationResult(tx_ref=tx_ref, status=transaction.status,
                                  message=f"Payment {transaction.status}. Please try again.")

    if not transaction.is_successful:
        logger.debug(f"[VERIFY] {tx_ref} still {transaction.status}")
        return VerificationResult(tx_ref=tx_ref, status="pending", message="Payment is still being processed.")

    try:
        result = _commit(db, tx_ref, transaction, now)
    except ProcessingError as e:
        db.rollback()
        await create_alert(db, "processing_error", tx_ref, e.detail)
        raise

    if result.applied:
        await _notify(notifier, result.vehicle, tx_ref)
        message = ("Package registered successfully." if result.vehicle.service_type == "package"
                   else "Payment verified and vehicle checked out.")
    else:
        message = "Payment already verified."
    return VerificationResult(tx_ref=tx_ref, status="successful", applied=result.applied,
                              vehicle=result.vehicle, message=message)


async def handle_callback(db: Session, tx_ref: Optional[str], status: Optional[str], gateway: ChapaGateway,
                          notifier: Optional[SmsNotifier], now: datetime) -> Optional[VerificationResult]:
    """
    Gateway webhook / redirect. Only "successful" callbacks are acted on, and
    only after re-verifying with the gateway; the callback body is never trusted.
    """
    if not tx_ref:
        logger.warning("[CALLBACK] Received callback without tx_ref — ignored")
        return None
    if (status or "").lower() not in ("success", "successful"):
        logger.info(f"[CALLBACK] {tx_ref} status={status} — nothing to apply")
        return None

    logger.info(f"[CALLBACK] {tx_ref} reported successful — verifying")
    return await verify_payment(db, tx_ref, gateway, notifier, now)
