# tanapark/services/checkout_committer.py
"""
Checkout state committer — applies a confirmed payment exactly once.

The webhook callback and the client's polling loop can both confirm the
same txRef at the same time, so neither path reads-then-writes. Each commit
is a single conditional statement and the row count decides who won:

  hourly:  UPDATE parked_vehicles ... WHERE id = ? AND (status = 'parked' OR is_flagged)
  package: DELETE FROM pending_package_payments WHERE tx_ref = ?  -> must remove 1 row,
           vehicle INSERT in the same transaction

The loser sees 0 rows, finds the vehicle already carrying the txRef as its
payment_reference, and reports "already applied" instead of an error.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from tanapark.models.parked_vehicle import ParkedVehicle, STATUS_PARKED, STATUS_CHECKED_OUT
from tanapark.models.pending_package_payment import PendingPackagePayment
from tanapark.services.errors import ProcessingError
from tanapark.services.fee_calculator import package_end_date, round_money
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CommitResult:
    vehicle: ParkedVehicle
    applied: bool           # False when an earlier verification already committed this txRef


def _find_by_reference(db: Session, tx_ref: str) -> Optional[ParkedVehicle]:
    return db.query(ParkedVehicle).filter(ParkedVehicle.payment_reference == tx_ref).first()


def commit_hourly_checkout(db: Session, vehicle_id: int, tx_ref: str, amount: Optional[float],
                           now: datetime) -> CommitResult:
    vehicle = db.query(ParkedVehicle).filter(ParkedVehicle.id == vehicle_id).first()
    if vehicle is None:
        raise ProcessingError(f"Payment {tx_ref} confirmed for unknown vehicle {vehicle_id}")

    quoted_total = round_money((vehicle.base_amount or 0) + (vehicle.vat_amount or 0))
    paid = round_money(amount) if amount is not None else quoted_total
    if amount is not None and quoted_total and abs(paid - quoted_total) >= 0.01:
        logger.warning(f"[COMMIT] {tx_ref}: gateway amount {paid:.2f} differs from quote {quoted_total:.2f}")

    updated = (
        db.query(ParkedVehicle)
        .filter(
            ParkedVehicle.id == vehicle_id,
            or_(ParkedVehicle.status == STATUS_PARKED, ParkedVehicle.is_flagged.is_(True)),
        )
        .update({
            ParkedVehicle.status: STATUS_CHECKED_OUT,
            ParkedVehicle.checked_out_at: now,
            ParkedVehicle.payment_method: "online",
            ParkedVehicle.payment_reference: tx_ref,
            ParkedVehicle.pending_tx_ref: None,
            ParkedVehicle.total_paid_amount: paid,
            ParkedVehicle.is_flagged: False,
            ParkedVehicle.flagged_at: None,
            ParkedVehicle.flagged_by: None,
        }, synchronize_session=False)
    )
    db.commit()
    db.refresh(vehicle)

    if updated == 1:
        logger.info(f"[COMMIT] Vehicle {vehicle_id} ({vehicle.license_plate}) checked out — "
                    f"{tx_ref} paid {paid:.2f}")
        return CommitResult(vehicle=vehicle, applied=True)

    if vehicle.payment_reference == tx_ref:
        logger.info(f"[COMMIT] {tx_ref} already applied to vehicle {vehicle_id} — no-op")
        return CommitResult(vehicle=vehicle, applied=False)

    raise ProcessingError(
        f"Payment {tx_ref} confirmed but vehicle {vehicle_id} is already {vehicle.status} "
        f"(paid by {vehicle.payment_reference or vehicle.payment_method})"
    )


def commit_package_registration(db: Session, tx_ref: str, amount: Optional[float], now: datetime) -> CommitResult:
    pending = (
        db.query(PendingPackagePayment)
        .filter(PendingPackagePayment.tx_ref == tx_ref, PendingPackagePayment.expires_at > now)
        .first()
    )
    if pending is None:
        existing = _find_by_reference(db, tx_ref)
        if existing is not None:
            logger.info(f"[COMMIT] Package {tx_ref} already registered as vehicle {existing.id} — no-op")
            return CommitResult(vehicle=existing, applied=False)
        raise ProcessingError(f"Package payment {tx_ref} confirmed but no pending registration exists")

    draft = dict(pending.vehicle_data or {})
    claimed = (
        db.query(PendingPackagePayment)
        .filter(PendingPackagePayment.tx_ref == tx_ref)
        .delete(synchronize_session=False)
    )
    if claimed != 1:
        db.rollback()
        existing = _find_by_reference(db, tx_ref)
        if existing is not None:
            return CommitResult(vehicle=existing, applied=False)
        raise ProcessingError(f"Package payment {tx_ref} was claimed concurrently but no vehicle was created")

    number = draft["license_plate_number"].upper()
    vehicle = ParkedVehicle(
        license_plate=ParkedVehicle.format_plate(draft["plate_code"], draft["region"], number),
        plate_code=draft["plate_code"],
        region=draft["region"],
        license_plate_number=number,
        vehicle_type=draft["vehicle_type"],
        model=draft.get("model") or "",
        color=draft.get("color") or "",
        phone_number=draft.get("phone_number") or pending.customer_phone,
        location=pending.park_zone_code,
        notes=draft.get("notes") or "",
        service_type="package",
        package_duration=pending.package_duration,
        package_start_date=now,
        package_end_date=package_end_date(now, pending.package_duration),
        status=STATUS_PARKED,
        parked_at=now,
        valet_id=pending.valet_id,
        payment_method="online",
        payment_reference=tx_ref,
        total_paid_amount=round_money(amount) if amount is not None else pending.amount,
        base_amount=pending.base_amount,
        vat_amount=pending.vat_amount,
        vat_rate=round(pending.vat_amount / pending.base_amount, 4) if pending.base_amount else 0.0,
    )
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    logger.info(f"[COMMIT] Package {tx_ref} registered vehicle {vehicle.id} ({vehicle.license_plate}) "
                f"until {vehicle.package_end_date:%Y-%m-%d}")
    return CommitResult(vehicle=vehicle, applied=True)


def discard_package_payment(db: Session, tx_ref: str) -> bool:
    """Drop the pending registration of a failed/cancelled package payment."""
    deleted = (
        db.query(PendingPackagePayment)
        .filter(PendingPackagePayment.tx_ref == tx_ref)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted == 1
