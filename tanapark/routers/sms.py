# tanapark/routers/sms.py
from fastapi import APIRouter, Depends, HTTPException

from tanapark.dependencies import get_notifier
from tanapark.schemas.sms import SmsRequest
from tanapark.services.sms_service import SmsNotifier, SmsError
from tanapark.utils.phone import to_international

router = APIRouter()


@router.post("/sms/send", summary="Send an SMS (numbers normalised to +251...)")
async def send_sms(body: SmsRequest, notifier: SmsNotifier = Depends(get_notifier)):
    try:
        to = to_international(body.phone_number)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not notifier.enabled:
        raise HTTPException(status_code=503, detail="SMS service not configured")
    try:
        await notifier.send(to, body.message)
    except SmsError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "sent", "to": to}
