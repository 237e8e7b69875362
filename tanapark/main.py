# tanapark/main.py
"""
FastAPI application entry point.
Includes security middleware, checkout/global error handlers, and all routers.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from tanapark.routers import payment, vehicles, pricing, sms, alerts, health
from tanapark.database import create_tables, SessionLocal
from tanapark.config import settings
from tanapark.services.errors import CheckoutError
from tanapark.services.gateway import key_mode
from tanapark.services.payment_session import purge_expired_pending_payments
from tanapark.utils.clock import utcnow
from tanapark.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="TanaPark Valet API",
    description="Parking fees, Chapa online checkout, package registration and SMS notifications.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (valet app runs in the browser) ─────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Restrict to the frontend origin in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── API Key Middleware ───────────────────────────────────────────────────────
class APIKeyMiddleware(BaseHTTPMiddleware):
    """
    Optional lightweight API key auth.
    Chapa callbacks are excluded: the gateway does not send our key.
    Set API_KEY in .env. Leave empty to disable auth.
    """
    async def dispatch(self, request: Request, call_next):
        open_paths = {"/api/v1/payment/callback", "/api/v1/health", "/docs", "/redoc", "/openapi.json"}
        if request.url.path in open_paths or not settings.API_KEY:
            return await call_next(request)

        api_key = request.headers.get("X-API-Key") or request.query_params.get("api_key")
        if api_key != settings.API_KEY:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API key"},
            )
        return await call_next(request)


if settings.API_KEY:
    app.add_middleware(APIKeyMiddleware)


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Checkout Error Handler ───────────────────────────────────────────────────
@app.exception_handler(CheckoutError)
async def checkout_exception_handler(request: Request, exc: CheckoutError):
    logger.warning(f"[{exc.code.upper()}] {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(payment.router,  prefix="/api/v1", tags=["💳 Payment"])
app.include_router(vehicles.router, prefix="/api/v1", tags=["🚗 Vehicles"])
app.include_router(pricing.router,  prefix="/api/v1", tags=["🏷️  Pricing"])
app.include_router(sms.router,      prefix="/api/v1", tags=["✉️  SMS"])
app.include_router(alerts.router,   prefix="/api/v1", tags=["🔔 Alerts"])
app.include_router(health.router,   prefix="/api/v1", tags=["💚 Health"])


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 TanaPark Backend starting up...")
    create_tables()
    logger.info("✅ Database tables ready")

    db = SessionLocal()
    try:
        purge_expired_pending_payments(db, utcnow())
    finally:
        db.close()

    logger.info(f"💳 Chapa key mode: {key_mode(settings.CHAPA_PUBLIC_KEY)}")
    logger.info(f"✉️  SMS dispatch: {'enabled' if settings.SMS_API_URL else 'disabled'}")
    logger.info(f"🌐 Listening on http://{settings.BACKEND_IP}:{settings.BACKEND_PORT}")
    logger.info("📖 API docs at /docs")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 TanaPark Backend shutting down...")
