from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.core.config import settings
from app.core.errors import BookingAPIError, ValidationError
from app.api import bookings, catalog, payments, webhook
from app.core.logger import setup_logging, logger
from app.services.booking_service import BookingService
from app.services.catalog_service import CatalogService
from app.services.db_service import DBService
from app.services.kv_store import RedisKVStore
from app.services.payment_gateway import StripeGateway
from app.services.rate_limiter import RateLimiter
from app.services.tasks import send_notification
from contextlib import asynccontextmanager
from datetime import datetime, timezone

setup_logging()

WEBHOOK_PATH = f"{settings.API_PREFIX}/webhooks/stripe"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PATCH, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Admin-Token",
}


def build_booking_service(config, kv) -> BookingService:
    """Wires the orchestrator; notifications go to the Celery task, which builds its own providers."""
    return BookingService(
        store=DBService(config.SUPABASE_URL, config.SUPABASE_KEY),
        rate_limiter=RateLimiter(kv, config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS),
        gateway=StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_WEBHOOK_SECRET, config.STRIPE_WEBHOOK_TOLERANCE),
        notification_task=send_notification,
        kv=kv,
        default_currency=config.DEFAULT_CURRENCY,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Starting Booking API")
    kv = RedisKVStore(settings.REDIS_URL)
    app.state.booking_service = build_booking_service(settings, kv)
    app.state.catalog_service = CatalogService(kv, settings.SERVICES_CATALOG_PATH, settings.SERVICES_CACHE_TTL)
    yield
    # Shutdown
    logger.info("🛑 Shutting down Booking API")
    await kv.close()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)


@app.middleware("http")
async def cors_middleware(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)

    response = await call_next(request)
    # Stripe does not need CORS and the webhook should not advertise it
    if request.url.path != WEBHOOK_PATH:
        response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(BookingAPIError)
async def booking_error_handler(request: Request, exc: BookingAPIError):
    content = {"success": False, "error": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()]
    return JSONResponse(status_code=400, content={"success": False, "error": ", ".join(errors), "errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(status_code=404, content={"error": "Endpoint not found"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.opt(exception=exc).error(f"🔥 UNHANDLED ERROR: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
        headers=CORS_HEADERS,
    )

# Include routers
app.include_router(bookings.router, prefix=settings.API_PREFIX, tags=["Bookings"])
app.include_router(payments.router, prefix=settings.API_PREFIX, tags=["Payments"])
app.include_router(webhook.router, prefix=settings.API_PREFIX, tags=["Webhook"])
app.include_router(catalog.router, prefix=settings.API_PREFIX, tags=["Services"])

@app.get("/")
async def service_descriptor():
    return {
        "name": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "endpoints": [
            "GET /api/health",
            "GET /api/services",
            "POST /api/bookings",
            "GET /api/bookings/:bookingId",
            "POST /api/create-payment-intent",
            "POST /api/webhooks/stripe",
        ],
    }

@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat(), "version": settings.VERSION}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
