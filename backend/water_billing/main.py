"""
Prepaid Water Billing — FastAPI Application Entry Point

Aggregates all routers, configures middleware and error handlers,
and initializes the database on startup.
"""
import time
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from water_billing.config import get_settings
from water_billing.database import init_db
from water_billing.exceptions import BillingError
from water_billing.routes import mpesa_router, water_router, telemetry_router
from water_billing.utils.logging import configure_logging, get_logger

settings = get_settings()
configure_logging(settings.LOG_LEVEL, settings.LOG_DIR if settings.LOG_TO_FILE else None)
logger = get_logger("water_billing.main")

# ─── Application Instance ───────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Prepaid water billing backend. Bridges M-Pesa STK push top-ups to "
        "per-meter water balances, debits metered consumption, raises low "
        "balance alerts and mirrors live microcontroller telemetry."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── Startup ─────────────────────────────────────────────────────────
BOOT_TIME = time.time()


@app.on_event("startup")
def on_startup():
    """Initialize database tables and log boot info."""
    init_db()

    rates = settings.billing_rates()
    logger.info(
        "\n%s\n  %s v%s\n  TIME: %s\n  M-PESA KEY: %s\n  CALLBACK: %s\n"
        "  RATE: %s %s = %s %s\n  DATABASE: %s\n  DEBUG: %s\n%s",
        "=" * 60,
        settings.APP_NAME, settings.APP_VERSION,
        datetime.now().isoformat(),
        "[OK] Loaded" if settings.MPESA_CONSUMER_KEY else "[!] Missing",
        settings.MPESA_CALLBACK_URL or "[!] Missing",
        rates.rate_per_unit, settings.CURRENCY, rates.unit_size, rates.unit_label,
        settings.DATABASE_URL,
        settings.DEBUG,
        "=" * 60,
    )


# ─── Middleware ──────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with timing."""
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 1)

    if request.url.path.startswith(("/api", "/mpesa")):
        logger.info("%s %s -> %s (%sms)", request.method, request.url.path, response.status_code, duration)

    return response


# ─── Error Handlers ──────────────────────────────────────────────────
@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()) if part != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"success": False, "error": errors or "Invalid request"})


# ─── API Routers ─────────────────────────────────────────────────────
app.include_router(mpesa_router)
app.include_router(water_router)
app.include_router(telemetry_router)


@app.get("/", tags=["Health"])
def root():
    return {
        "success": True,
        "message": "Water Billing API Server is running",
        "timestamp": datetime.utcnow().isoformat(),
        "endpoints": {
            "test": "/test",
            "stkPush": "/mpesa/stkpush",
            "callback": "/mpesa/callback",
            "waterStatus": "/api/water-status/{meterNumber}",
            "paymentHistory": "/api/payment-history/{meterNumber}",
            "waterUsage": "/api/water-usage",
            "alerts": "/api/alerts/{meterNumber}",
            "liveTelemetry": "/api/telemetry/live/{userId}",
        },
    }


@app.get("/test", tags=["Health"])
def test_endpoint():
    """Report the configured water rates."""
    rates = settings.billing_rates()
    return {
        "success": True,
        "message": "Water Billing Server running",
        "waterRates": {
            "ratePerUnit": float(rates.rate_per_unit),
            "unitSize": float(rates.unit_size),
            "unitLabel": rates.unit_label,
            "lowBalanceThreshold": float(rates.low_balance_threshold),
            "currency": settings.CURRENCY,
        },
        "serverTime": datetime.utcnow().isoformat(),
    }


@app.get("/health", tags=["Health"])
def deep_health():
    """Detailed health check including dependency statuses."""
    from water_billing.database import SessionLocal
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    db_ok = False
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
    finally:
        db.close()

    return {
        "status": "healthy" if db_ok else "degraded",
        "database": "connected" if db_ok else "disconnected",
        "mpesa": "configured" if settings.MPESA_CONSUMER_KEY and settings.MPESA_PASSKEY else "unconfigured",
        "uptime_seconds": round(time.time() - BOOT_TIME, 1),
        "version": settings.APP_VERSION,
    }
