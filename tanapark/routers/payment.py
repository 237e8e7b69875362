# tanapark/routers/payment.py
"""
Online payment through Chapa: session initialisation, verification and the gateway callbacks.
CheckoutError subclasses are rendered by the handler in main.py.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from typing import Optional

from tanapark.database import get_db
from tanapark.dependencies import get_gateway, get_notifier
from tanapark.schemas.payment import HourlyPaymentRequest, PackagePaymentRequest, PaymentSessionOut, VerificationOut
from tanapark.schemas.vehicle import VehicleOut
from tanapark.services.errors import CheckoutError, VehicleNotFound, VehicleStateError
from tanapark.services.gateway import ChapaGateway, GatewayError
from tanapark.services.payment_session import initialize_hourly_payment, initialize_package_payment
from tanapark.services.payment_verification import verify_payment, handle_callback
from tanapark.services.sms_service import SmsNotifier
from tanapark.utils.clock import utcnow
from tanapark.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/payment/initialize", response_model=PaymentSessionOut, summary="Start an hourly checkout payment")
def initialize_payment(body: HourlyPaymentRequest, db: Session = Depends(get_db)):
    """Issues a fresh txRef and the server-computed fee. Never reuses an earlier txRef."""
    try:
        session = initialize_hourly_payment(db, body.vehicle_id, utcnow(),
                                            customer_phone=body.customer_phone, client_amount=body.amount)
    except VehicleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except VehicleStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session.to_dict()


@router.post("/payment/initialize-package", response_model=PaymentSessionOut,
             summary="Start a package registration payment")
def initialize_package(body: PackagePaymentRequest, db: Session = Depends(get_db)):
    """The vehicle is only created once this payment is verified."""
    draft = body.vehicle.model_dump()
    draft["phone_number"] = draft.get("phone_number") or body.customer_phone
    try:
        session = initialize_package_payment(db, body.valet_id, draft, body.package_duration,
                                             body.customer_phone, utcnow(), client_amount=body.amount)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return session.to_dict()


@router.get("/payment/verify/{tx_ref}", response_model=VerificationOut, summary="Verify a payment and commit it")
async def verify(
    tx_ref: str,
    db: Session = Depends(get_db),
    gateway: ChapaGateway = Depends(get_gateway),
    notifier: SmsNotifier = Depends(get_notifier),
):
    """
    Safe to call repeatedly: a txRef that was already applied returns
    status=successful with applied=false and the same vehicle.
    """
    try:
        result = await verify_payment(db, tx_ref, gateway, notifier, utcnow())
    except GatewayError as e:
        logger.error(f"[VERIFY] {tx_ref}: {e}")
        raise HTTPException(status_code=502, detail="Payment gateway unavailable, try again")
    return VerificationOut(
        tx_ref=result.tx_ref,
        status=result.status,
        applied=result.applied,
        message=result.message,
        vehicle=VehicleOut.model_validate(result.vehicle) if result.vehicle is not None else None,
    )


async def _acknowledge(db: Session, tx_ref: Optional[str], status: Optional[str],
                       gateway: ChapaGateway, notifier: SmsNotifier) -> dict:
    try:
        result = await handle_callback(db, tx_ref, status, gateway, notifier, utcnow())
    except (CheckoutError, GatewayError) as e:
        logger.error(f"[CALLBACK] {tx_ref} could not be applied: {e}")
        return {"received": True, "applied": False}
    return {"received": True, "applied": bool(result and result.applied)}


@router.post("/payment/callback", summary="Chapa webhook")
async def payment_callback_post(
    request: Request,
    db: Session = Depends(get_db),
    gateway: ChapaGateway = Depends(get_gateway),
    notifier: SmsNotifier = Depends(get_notifier),
):
    """Always answers 200 so Chapa does not retry; failures are logged and alerted."""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    data = body.get("data") if isinstance(body.get("data"), dict) else body
    tx_ref = data.get("tx_ref") or data.get("txRef") or data.get("trx_ref")
    return await _acknowledge(db, tx_ref, data.get("status"), gateway, notifier)


@router.get("/payment/callback", summary="Chapa redirect callback")
async def payment_callback_get(
    tx_ref: Optional[str] = None,
    trx_ref: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    gateway: ChapaGateway = Depends(get_gateway),
    notifier: SmsNotifier = Depends(get_notifier),
):
    return await _acknowledge(db, tx_ref or trx_ref, status, gateway, notifier)
