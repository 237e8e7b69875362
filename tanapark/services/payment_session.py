# tanapark/services/payment_session.py
"""
Payment session initiation (server side).

Every call issues a brand-new txRef. Chapa rejects a reference that was
already used, so a retry after a failed or cancelled attempt must never
resend the old one.

  hourly:  tana-{vehicle_id}-{epoch_ms}-{8 random chars}
  package: tana-pkg-{epoch_ms}-{8 random chars}

We do not call Chapa's /initialize here: the inline checkout widget
initialises the transaction itself from the public key and txRef, and a
server-side initialise would reserve the txRef and make the widget fail.
"""

import re
import secrets
import string
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from tanapark.config import settings
from tanapark.models.parked_vehicle import ParkedVehicle, STATUS_PARKED
from tanapark.models.pending_package_payment import PendingPackagePayment
from tanapark.models.user import User
from tanapark.services.errors import InitializationError, VehicleNotFound, VehicleStateError
from tanapark.services.fee_calculator import calculate_fee, calculate_package_fee, FeeBreakdown
from tanapark.services.gateway import key_mode
from tanapark.services.pricing_service import get_pricing_configuration
from tanapark.utils.clock import epoch_millis
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)

TX_REF_PREFIX = "tana"
PACKAGE_TX_REF_PREFIX = f"{TX_REF_PREFIX}-pkg-"
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_HOURLY_TX_REF = re.compile(rf"^{TX_REF_PREFIX}-(\d+)-\d+-[a-z0-9]+$")


@dataclass
class PaymentSession:
    tx_ref: str
    public_key: str
    mode: str                       # test | live
    amount: float
    currency: str
    base_amount: float
    vat_amount: float
    vat_rate: float
    duration_description: str
    vehicle_id: Optional[int] = None
    package_duration: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def generate_tx_ref(scope, now: datetime) -> str:
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(8))
    return f"{TX_REF_PREFIX}-{scope}-{epoch_millis(now)}-{suffix}"


def is_package_tx_ref(tx_ref: str) -> bool:
    return tx_ref.startswith(PACKAGE_TX_REF_PREFIX)


def vehicle_id_from_tx_ref(tx_ref: str) -> Optional[int]:
    match = _HOURLY_TX_REF.match(tx_ref)
    return int(match.group(1)) if match else None


def _require_public_key() -> tuple[str, str]:
    public_key = settings.CHAPA_PUBLIC_KEY.strip()
    mode = key_mode(public_key)
    if mode == "unset":
        raise InitializationError("CHAPA_PUBLIC_KEY is not configured",
                                  "Payment system is not configured. Please contact the administrator.")
    if mode == "invalid":
        raise InitializationError("CHAPA_PUBLIC_KEY has an unrecognised prefix",
                                  "Payment system is misconfigured. Please contact the administrator.")
    return public_key, mode


def _session(tx_ref: str, public_key: str, mode: str, fee: FeeBreakdown, **extra) -> PaymentSession:
    return PaymentSession(
        tx_ref=tx_ref,
        public_key=public_key,
        mode=mode,
        amount=fee.total_amount,
        currency=settings.PAYMENT_CURRENCY,
        base_amount=fee.base_amount,
        vat_amount=fee.vat_amount,
        vat_rate=fee.vat_rate,
        duration_description=fee.duration_description,
        **extra,
    )


def _warn_on_amount_mismatch(tx_ref: str, client_amount: Optional[float], fee: FeeBreakdown):
    if client_amount is not None and abs(client_amount - fee.total_amount) >= 0.01:
        logger.warning(f"[PAYMENT INIT] {tx_ref}: client quoted {client_amount:.2f}, "
                       f"charging server fee {fee.total_amount:.2f}")


def initialize_hourly_payment(db: Session, vehicle_id: int, now: datetime, customer_phone: Optional[str] = None,
                              client_amount: Optional[float] = None) -> PaymentSession:
    public_key, mode = _require_public_key()

    vehicle = db.query(ParkedVehicle).filter(ParkedVehicle.id == vehicle_id).first()
    if not vehicle:
        raise VehicleNotFound(f"Vehicle {vehicle_id} not found")
    if vehicle.service_type == "package":
        raise VehicleStateError("Package vehicles are prepaid; no hourly payment is due")
    if vehicle.status != STATUS_PARKED and not vehicle.is_flagged:
        raise VehicleStateError(f"Vehicle {vehicle_id} is {vehicle.status} and has nothing to pay")

    valet = db.query(User).filter(User.id == vehicle.valet_id).first()
    fee = calculate_fee(vehicle, get_pricing_configuration(db), now,
                        price_level=valet.price_level if valet else None)

    tx_ref = generate_tx_ref(vehicle.id, now)
    vehicle.pending_tx_ref = tx_ref
    if customer_phone and not vehicle.phone_number:
        vehicle.phone_number = customer_phone
    vehicle.base_amount = fee.base_amount
    vehicle.vat_amount = fee.vat_amount
    vehicle.vat_rate = fee.vat_rate
    db.commit()

    _warn_on_amount_mismatch(tx_ref, client_amount, fee)
    logger.info(f"[PAYMENT INIT] {tx_ref} vehicle={vehicle.id} plate={vehicle.license_plate} "
                f"total={fee.total_amount:.2f} ({fee.duration_description}) mode={mode}")
    return _session(tx_ref, public_key, mode, fee, vehicle_id=vehicle.id)


def purge_expired_pending_payments(db: Session, now: datetime) -> int:
    deleted = (
        db.query(PendingPackagePayment)
        .filter(PendingPackagePayment.expires_at <= now)
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info(f"[PAYMENT INIT] Purged {deleted} expired pending package payment(s)")
    return deleted


def initialize_package_payment(db: Session, valet_id: int, vehicle_data: dict, package_duration: str,
                               customer_phone: str, now: datetime,
                               client_amount: Optional[float] = None) -> PaymentSession:
    public_key, mode = _require_public_key()

    valet = db.query(User).filter(User.id == valet_id).first()
    if not valet or valet.type != "valet":
        raise PermissionError("Only valets can initialize package payments")

    purge_expired_pending_payments(db, now)

    level = vehicle_data.get("price_level") or valet.price_level
    fee = calculate_package_fee(get_pricing_configuration(db), vehicle_data.get("vehicle_type"),
                                package_duration, price_level=level)

    tx_ref = generate_tx_ref("pkg", now)
    db.add(PendingPackagePayment(
        tx_ref=tx_ref,
        vehicle_data=vehicle_data,
        package_duration=package_duration,
        amount=fee.total_amount,
        base_amount=fee.base_amount,
        vat_amount=fee.vat_amount,
        customer_phone=customer_phone,
        valet_id=valet.id,
        park_zone_code=valet.park_zone_code or "Unknown Zone",
        created_at=now,
        expires_at=now + timedelta(hours=settings.PENDING_PAYMENT_TTL_HOURS),
    ))
    db.commit()

    _warn_on_amount_mismatch(tx_ref, client_amount, fee)
    logger.info(f"[PAYMENT INIT] {tx_ref} package={package_duration} valet={valet.id} "
                f"total={fee.total_amount:.2f} mode={mode}")
    return _session(tx_ref, public_key, mode, fee, package_duration=package_duration)
