# tanapark/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + payment gateway configuration/reachability + SMS.
"""

import requests
from urllib.parse import urlsplit
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from tanapark.database import get_db
from tanapark.config import settings
from tanapark.services.gateway import key_mode
from tanapark.utils.clock import utcnow

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Chapa key mode (test / live / invalid / unset) and API reachability
    - Whether SMS dispatch is configured
    """
    mode = key_mode(settings.CHAPA_PUBLIC_KEY)
    result = {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "backend": "ok",
        "database": "unknown",
        "payment_gateway": {"mode": mode, "api": "unknown"},
        "sms": "enabled" if settings.SMS_API_URL else "disabled",
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    if mode in ("unset", "invalid"):
        result["status"] = "degraded"

    # Any HTTP answer means the API host is reachable
    parts = urlsplit(settings.CHAPA_BASE_URL)
    try:
        resp = requests.get(f"{parts.scheme}://{parts.netloc}", timeout=3)
        result["payment_gateway"]["api"] = "ok" if resp.status_code < 500 else f"http_{resp.status_code}"
    except requests.exceptions.ConnectionError:
        result["payment_gateway"]["api"] = "unreachable"
        result["status"] = "degraded"
    except requests.exceptions.RequestException as e:
        result["payment_gateway"]["api"] = f"error: {str(e)}"

    return result
