# tanapark/services/vehicle_service.py
"""
Vehicle lifecycle outside the online payment path:
check-in, listing, manual checkout, package re-park, flagging unpaid
customers and warning them by SMS.
Used by the vehicles router.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from tanapark.models.parked_vehicle import ParkedVehicle, STATUS_PARKED, STATUS_CHECKED_OUT
from tanapark.models.user import User
from tanapark.services.alert_service import create_alert
from tanapark.services.errors import ConfigurationError, VehicleNotFound, VehicleStateError
from tanapark.services.fee_calculator import (
    calculate_fee, calculate_vat, reverse_calculate_vat, package_end_date, round_money,
)
from tanapark.services.pricing_service import get_pricing_configuration
from tanapark.services.sms_service import SmsNotifier, notify_best_effort, unpaid_warning_message
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)

MANAGER_TYPES = ("system_admin", "manager")


class OutstandingFeeError(VehicleStateError):
    """Check-in refused: the customer still owes a flagged fee."""

    def __init__(self, flagged: ParkedVehicle, outstanding_amount: float):
        self.flagged = flagged
        self.outstanding_amount = outstanding_amount
        super().__init__(
            "This customer has an unpaid parking fee. Please ask them to pay the outstanding amount of "
            f"{outstanding_amount:.2f} ETB first before registering a new car. "
            f"License Plate: {flagged.license_plate}"
        )


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise PermissionError(f"Unknown user {user_id}")
    return user


def get_vehicle(db: Session, vehicle_id: int) -> ParkedVehicle:
    vehicle = db.query(ParkedVehicle).filter(ParkedVehicle.id == vehicle_id).first()
    if not vehicle:
        raise VehicleNotFound(f"Parked vehicle {vehicle_id} not found")
    return vehicle


def _require_owner_or_manager(user: User, vehicle: ParkedVehicle, action: str):
    if user.type not in MANAGER_TYPES and vehicle.valet_id != user.id:
        raise PermissionError(f"You don't have permission to {action} this vehicle")


def outstanding_amounts(db: Session, vehicle: ParkedVehicle, now: datetime) -> dict:
    """Base/VAT owed by a flagged vehicle; recomputed from its parked time when not stored."""
    if vehicle.base_amount:
        base, vat = round_money(vehicle.base_amount), round_money(vehicle.vat_amount or 0)
        return {"base_amount": base, "vat_amount": vat,
                "total_amount": round_money(base + vat), "vat_rate": vehicle.vat_rate}
    valet = db.query(User).filter(User.id == vehicle.valet_id).first()
    fee = calculate_fee(vehicle, get_pricing_configuration(db), now,
                        price_level=valet.price_level if valet else None)
    return {"base_amount": fee.base_amount, "vat_amount": fee.vat_amount,
            "total_amount": fee.total_amount, "vat_rate": fee.vat_rate}


def _find_flagged_customer(db: Session, license_plate: str, phone_number: str) -> Optional[ParkedVehicle]:
    return (
        db.query(ParkedVehicle)
        .filter(
            ParkedVehicle.is_flagged.is_(True),
            or_(ParkedVehicle.license_plate == license_plate,
                ParkedVehicle.phone_number == phone_number.strip()),
        )
        .first()
    )


def check_in_vehicle(db: Session, valet_id: int, data: dict, now: datetime) -> ParkedVehicle:
    valet = get_user(db, valet_id)
    if valet.type != "valet":
        raise PermissionError("Only valets can register parked cars")

    number = data["license_plate_number"].strip().upper()
    license_plate = ParkedVehicle.format_plate(data["plate_code"].strip(), data["region"].strip(), number)

    already_parked = (
        db.query(ParkedVehicle)
        .filter(ParkedVehicle.license_plate == license_plate, ParkedVehicle.status == STATUS_PARKED)
        .first()
    )
    if already_parked:
        raise VehicleStateError("Car with this license plate is already parked")

    flagged = _find_flagged_customer(db, license_plate, data["phone_number"])
    if flagged:
        try:
            owed = outstanding_amounts(db, flagged, now)["total_amount"]
        except ConfigurationError as e:
            logger.warning(f"[CHECK-IN] Could not price outstanding fee of vehicle {flagged.id}: {e.detail}")
            owed = 0.0
        raise OutstandingFeeError(flagged, owed)

    service_type = data.get("service_type") or "hourly"
    vehicle = ParkedVehicle(
        license_plate=license_plate,
        plate_code=data["plate_code"].strip(),
        region=data["region"].strip(),
        license_plate_number=number,
        vehicle_type=data["vehicle_type"],
        model=data.get("model") or "",
        color=data.get("color") or "",
        phone_number=data["phone_number"].strip(),
        location=valet.park_zone_code or "Unknown Zone",
        notes=data.get("notes") or "",
        service_type=service_type,
        status=STATUS_PARKED,
        parked_at=now,
        valet_id=valet.id,
        vat_rate=get_pricing_configuration(db).vat_rate,
    )
    if service_type == "package":
        vehicle.package_duration = data["package_duration"]
        vehicle.package_start_date = now
        vehicle.package_end_date = package_end_date(now, data["package_duration"])

    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    logger.info(f"[CHECK-IN] {license_plate} ({vehicle.vehicle_type}, {service_type}) by valet {valet.id}")
    return vehicle


def list_vehicles(db: Session, status: Optional[str] = None, valet_id: Optional[int] = None,
                  date: Optional[datetime] = None):
    q = db.query(ParkedVehicle)
    if status:
        q = q.filter(ParkedVehicle.status == status)
    if valet_id:
        q = q.filter(ParkedVehicle.valet_id == valet_id)
    if date:
        start = date.replace(hour=0, minute=0, second=0, microsecond=0)
        end = date.replace(hour=23, minute=59, second=59, microsecond=999999)
        q = q.filter(ParkedVehicle.parked_at >= start, ParkedVehicle.parked_at <= end)
    return q.order_by(ParkedVehicle.parked_at.desc()).all()


def list_flagged(db: Session):
    """Checked-out vehicles that are flagged or left without any payment."""
    return (
        db.query(ParkedVehicle)
        .filter(
            ParkedVehicle.status == STATUS_CHECKED_OUT,
            or_(ParkedVehicle.is_flagged.is_(True), ParkedVehicle.total_paid_amount == 0),
        )
        .order_by(ParkedVehicle.flagged_at.desc(), ParkedVehicle.checked_out_at.desc())
        .all()
    )


async def _repark_package(db: Session, vehicle: ParkedVehicle, notes: Optional[str], now: datetime,
                          notifier: Optional[SmsNotifier]) -> ParkedVehicle:
    """A package customer returns: new visit row carrying the same subscription."""
    visit = ParkedVehicle(
        license_plate=vehicle.license_plate,
        plate_code=vehicle.plate_code,
        region=vehicle.region,
        license_plate_number=vehicle.license_plate_number,
        vehicle_type=vehicle.vehicle_type,
        model=vehicle.model,
        color=vehicle.color,
        phone_number=vehicle.phone_number,
        location=vehicle.location,
        notes=notes if notes is not None else vehicle.notes,
        service_type="package",
        package_duration=vehicle.package_duration,
        package_start_date=vehicle.package_start_date or vehicle.parked_at,
        package_end_date=vehicle.package_end_date,
        status=STATUS_PARKED,
        parked_at=now,
        valet_id=vehicle.valet_id,
        payment_method=vehicle.payment_method,
        payment_reference=vehicle.payment_reference,
        total_paid_amount=vehicle.total_paid_amount or 0,
        base_amount=vehicle.base_amount or 0,
        vat_amount=vehicle.vat_amount or 0,
        vat_rate=vehicle.vat_rate,
    )
    db.add(visit)
    db.commit()
    db.refresh(visit)

    days_left = max(0, (visit.package_end_date - now).days)
    await notify_best_effort(
        notifier, visit.phone_number,
        f"Security alert: Your package car ({visit.license_plate}) has been parked at Tana Parking.\n"
        f"Package type: {visit.package_duration}.\n"
        f"Package expires on {visit.package_end_date:%Y-%m-%d} ({days_left} day{'s' if days_left != 1 else ''} remaining).",
    )
    return visit


async def update_vehicle(db: Session, vehicle_id: int, user_id: int, changes: dict, now: datetime,
                         notifier: Optional[SmsNotifier] = None) -> ParkedVehicle:
    """
    Partial update. status=checked_out with total_paid_amount is a manual (cash)
    checkout: the amount is VAT-inclusive and split with reverse_calculate_vat.
    status=parked on a package vehicle starts a new visit under the same package.
    """
    vehicle = get_vehicle(db, vehicle_id)
    user = get_user(db, user_id)
    _require_owner_or_manager(user, vehicle, "update")

    status = changes.get("status")
    notes = changes.get("notes")
    paid = changes.get("total_paid_amount")
    method = changes.get("payment_method")

    is_package = vehicle.service_type == "package" and vehicle.package_end_date is not None
    if is_package and status:
        if now > vehicle.package_end_date:
            raise VehicleStateError("Package has expired")
        if status == STATUS_PARKED:
            return await _repark_package(db, vehicle, notes, now, notifier)

    if status == STATUS_CHECKED_OUT:
        if vehicle.status == STATUS_CHECKED_OUT and not vehicle.is_flagged:
            raise VehicleStateError(f"Vehicle {vehicle_id} is already checked out")
        if vehicle.status == STATUS_PARKED:
            vehicle.checked_out_at = now
        vehicle.status = STATUS_CHECKED_OUT
        vehicle.checked_out_by = user.id
        if paid is not None:
            if is_package:
                vehicle.total_paid_amount = round_money(paid)
            else:
                split = reverse_calculate_vat(paid, get_pricing_configuration(db).vat_rate)
                vehicle.total_paid_amount = split["total_amount"]
                vehicle.base_amount = split["base_amount"]
                vehicle.vat_amount = split["vat_amount"]
                vehicle.vat_rate = split["vat_rate"]
            if paid > 0 and vehicle.is_flagged:
                vehicle.is_flagged = False
                vehicle.flagged_at = None
                vehicle.flagged_by = None
                logger.info(f"[VEHICLE] Flag cleared on {vehicle.license_plate} by manual payment")
        if method is not None:
            vehicle.payment_method = method
        vehicle.payment_method = vehicle.payment_method or "manual"
        if vehicle.total_paid_amount is None:
            vehicle.total_paid_amount = 0.0
        vehicle.pending_tx_ref = None
    elif status:
        vehicle.status = status

    if notes is not None:
        vehicle.notes = notes

    db.commit()
    db.refresh(vehicle)
    applied = {k: v for k, v in changes.items() if v is not None}
    logger.info(f"[VEHICLE] {vehicle.license_plate} updated by user {user.id}: {applied}")
    return vehicle


async def flag_vehicle(db: Session, vehicle_id: int, user_id: int, now: datetime,
                       base_amount: Optional[float] = None, vat_amount: Optional[float] = None,
                       total_with_vat: Optional[float] = None) -> ParkedVehicle:
    """Stop the timer on an unpaid vehicle and record what is owed."""
    vehicle = get_vehicle(db, vehicle_id)
    user = get_user(db, user_id)
    _require_owner_or_manager(user, vehicle, "flag")

    if vehicle.status == STATUS_PARKED:
        vehicle.status = STATUS_CHECKED_OUT
        vehicle.checked_out_at = now
        vehicle.checked_out_by = user.id
    elif vehicle.status == STATUS_CHECKED_OUT:
        vehicle.checked_out_at = vehicle.checked_out_at or now
        vehicle.checked_out_by = vehicle.checked_out_by or user.id
    else:
        raise VehicleStateError("Can only flag cars that are parked or checked out")

    vehicle.is_flagged = True
    vehicle.flagged_at = now
    vehicle.flagged_by = user.id
    vehicle.total_paid_amount = 0.0

    if base_amount is not None:
        vehicle.base_amount = round_money(base_amount)
        vehicle.vat_amount = round_money(vat_amount) if vat_amount is not None \
            else calculate_vat(base_amount, vehicle.vat_rate)["vat_amount"]
    elif total_with_vat is not None:
        split = reverse_calculate_vat(total_with_vat, vehicle.vat_rate)
        vehicle.base_amount = split["base_amount"]
        vehicle.vat_amount = split["vat_amount"]
    else:
        owed = outstanding_amounts(db, vehicle, now)
        vehicle.base_amount = owed["base_amount"]
        vehicle.vat_amount = owed["vat_amount"]

    db.commit()
    db.refresh(vehicle)
    await create_alert(db, "vehicle_flagged", vehicle.id,
                       f"{vehicle.license_plate} flagged by user {user.id}: owes "
                       f"{vehicle.base_amount + vehicle.vat_amount:.2f} ETB")
    return vehicle


async def notify_flagged(db: Session, vehicle_id: int, notifier: SmsNotifier, now: datetime) -> ParkedVehicle:
    """Send the unpaid-fee warning. SmsError propagates to the caller."""
    vehicle = get_vehicle(db, vehicle_id)
    if not vehicle.is_flagged:
        raise VehicleStateError("Car is not flagged")
    if not vehicle.phone_number:
        raise VehicleStateError("Phone number not available")

    owed = outstanding_amounts(db, vehicle, vehicle.checked_out_at or now)
    await notifier.send(vehicle.phone_number,
                        unpaid_warning_message(vehicle.license_plate, vehicle.checked_out_at,
                                               owed["base_amount"], owed["vat_amount"]))
    vehicle.notification_sent = True
    vehicle.last_notification_sent_at = now
    db.commit()
    db.refresh(vehicle)
    return vehicle
