# tanapark/routers/vehicles.py
"""Parked vehicles — check-in, listing, manual checkout, flagging and unpaid-fee warnings."""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional

from tanapark.database import get_db
from tanapark.dependencies import get_notifier
from tanapark.schemas.vehicle import VehicleCheckIn, VehicleUpdate, VehicleFlag, VehicleOut
from tanapark.services import vehicle_service
from tanapark.services.errors import VehicleNotFound, VehicleStateError
from tanapark.services.sms_service import SmsNotifier, SmsError
from tanapark.utils.clock import utcnow

router = APIRouter()


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, VehicleNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionError):
        return HTTPException(status_code=403, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.post("/vehicle", summary="Check in a vehicle")
def check_in(body: VehicleCheckIn, db: Session = Depends(get_db)):
    """Refuses a plate that is already parked, or a customer who still owes a flagged fee."""
    if body.service_type == "package" and not body.package_duration:
        raise HTTPException(status_code=400, detail="package_duration is required for package service")
    try:
        vehicle = vehicle_service.check_in_vehicle(db, body.valet_id, body.model_dump(), utcnow())
    except vehicle_service.OutstandingFeeError as e:
        return JSONResponse(status_code=400, content={
            "detail": str(e),
            "flagged_vehicle": {
                "id": e.flagged.id,
                "license_plate": e.flagged.license_plate,
                "phone_number": e.flagged.phone_number,
                "outstanding_amount": f"{e.outstanding_amount:.2f}",
            },
        })
    except (PermissionError, VehicleStateError) as e:
        raise _http_error(e)
    return {"message": "Parked car registered successfully", "vehicle": VehicleOut.model_validate(vehicle)}


@router.get("/vehicle", response_model=list[VehicleOut], summary="List parked vehicles")
def list_vehicles(
    status: Optional[str] = None,
    valet_id: Optional[int] = None,
    date: Optional[datetime] = None,
    db: Session = Depends(get_db),
):
    return vehicle_service.list_vehicles(db, status=status, valet_id=valet_id, date=date)


@router.get("/vehicle/flagged", response_model=list[VehicleOut], summary="Flagged / unpaid vehicles")
def list_flagged(db: Session = Depends(get_db)):
    return vehicle_service.list_flagged(db)


@router.get("/vehicle/{vehicle_id}", response_model=VehicleOut, summary="Get one vehicle")
def get_vehicle(vehicle_id: int, db: Session = Depends(get_db)):
    try:
        return vehicle_service.get_vehicle(db, vehicle_id)
    except VehicleNotFound as e:
        raise _http_error(e)


@router.put("/vehicle/{vehicle_id}", summary="Update a vehicle (manual checkout, notes, package re-park)")
async def update_vehicle(
    vehicle_id: int,
    body: VehicleUpdate,
    db: Session = Depends(get_db),
    notifier: SmsNotifier = Depends(get_notifier),
):
    changes = body.model_dump(exclude={"user_id"}, exclude_unset=True)
    try:
        vehicle = await vehicle_service.update_vehicle(db, vehicle_id, body.user_id, changes, utcnow(), notifier)
    except (VehicleNotFound, PermissionError, VehicleStateError) as e:
        raise _http_error(e)
    return {"message": "Parked car updated successfully", "vehicle": VehicleOut.model_validate(vehicle)}


@router.put("/vehicle/{vehicle_id}/flag", summary="Flag an unpaid vehicle")
async def flag_vehicle(vehicle_id: int, body: VehicleFlag, db: Session = Depends(get_db)):
    try:
        vehicle = await vehicle_service.flag_vehicle(
            db, vehicle_id, body.user_id, utcnow(),
            base_amount=body.base_amount, vat_amount=body.vat_amount, total_with_vat=body.total_with_vat,
        )
    except (VehicleNotFound, PermissionError, VehicleStateError) as e:
        raise _http_error(e)
    return {"message": "Car flagged successfully", "vehicle": VehicleOut.model_validate(vehicle)}


@router.post("/vehicle/{vehicle_id}/notify", summary="SMS warning to a flagged customer")
async def notify_flagged(
    vehicle_id: int,
    db: Session = Depends(get_db),
    notifier: SmsNotifier = Depends(get_notifier),
):
    try:
        vehicle = await vehicle_service.notify_flagged(db, vehicle_id, notifier, utcnow())
    except (VehicleNotFound, VehicleStateError) as e:
        raise _http_error(e)
    except SmsError as e:
        raise HTTPException(status_code=502, detail=f"SMS not sent: {e}")
    return {"message": "Notification sent successfully", "vehicle": VehicleOut.model_validate(vehicle)}
