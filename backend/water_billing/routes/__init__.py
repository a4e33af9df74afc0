from water_billing.routes.mpesa import router as mpesa_router
from water_billing.routes.water import router as water_router
from water_billing.routes.telemetry import router as telemetry_router

__all__ = ["mpesa_router", "water_router", "telemetry_router"]
