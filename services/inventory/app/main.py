from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager
import logging

from app.config import settings
from app.db.database import init_db
from app.api import health, inventory, rate_limits, stock
from app.errors import InventoryError, RateLimitExceededError
from app.kafka.producer import event_producer
from app.rate_limit.config_provider import JsonFileRateLimitConfig
from app.rate_limit.limiter import AdmissionController, RateLimitSweeper
from app.rate_limit.middleware import AdmissionMiddleware, rate_limit_response

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def build_admission_controller() -> AdmissionController:
    return AdmissionController(
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
        config=JsonFileRateLimitConfig(settings.rate_limit_config_path),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Inventory Service...")
    await init_db()

    controller = app.state.admission_controller
    sweeper = RateLimitSweeper(controller, settings.rate_limit_sweep_interval_seconds)
    sweeper.start()
    logger.info(
        f"Rate limiting: enabled={settings.rate_limit_enabled}, "
        f"{settings.rate_limit_max_requests} requests per {settings.rate_limit_window_seconds}s, "
        f"overrides from {settings.rate_limit_config_path}"
    )

    logger.info("Inventory Service started successfully")
    yield
    # Shutdown
    logger.info("Shutting down Inventory Service...")
    sweeper.stop()
    event_producer.flush()


app = FastAPI(
    title="Inventory Service",
    description="""
    Append-only stock ledger for a multi-store retail platform.

    **Features:**
    - Stock additions, sales, manual removals and store-to-store transfers
    - Current inventory derived from the ledger on every read
    - Low-stock and out-of-stock alerts
    - Movement history with product, store, type and date filters
    - Per-client, per-endpoint rate limiting with hot-reloadable overrides
    - Kafka event publishing after each committed mutation

    **Errors:**
    Failures return a JSON body with `detail` and `error_type`. Sales and
    removals that exceed the available stock also include `currentStock` and
    `requestedQuantity`. Throttled requests get `429` with a `Retry-After` header.
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.state.admission_controller = build_admission_controller()

# Middleware runs in reverse order of registration: CORS wraps admission so
# throttled responses still carry CORS headers
app.add_middleware(AdmissionMiddleware)

ALLOWED_ORIGINS = [
    "https://admin.local",
    "https://stores.local",
    "http://admin.local",
    "http://stores.local",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS", "HEAD"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"],
    expose_headers=["Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining"],
    max_age=3600,
)


@app.exception_handler(InventoryError)
async def inventory_exception_handler(request: Request, exc: InventoryError):
    """Map domain failures to their HTTP status"""
    if isinstance(exc, RateLimitExceededError):
        return rate_limit_response(exc)
    if exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc.message}",
            extra={"path": request.url.path, "method": request.method},
        )
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and log them properly"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error_type": type(exc).__name__,
        }
    )


# Validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 like every other validation failure"""
    logger.warning(
        f"Validation error: {exc.errors()}",
        extra={
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": jsonable_encoder(exc.errors()),
            "error_type": "ValidationError",
        }
    )


# Include routers
app.include_router(health.router)
app.include_router(stock.router, prefix="/api")
app.include_router(inventory.router, prefix="/api")
app.include_router(rate_limits.router, prefix="/api")


@app.get("/")
async def root():
    return {"service": "inventory-service", "version": "1.0.0"}
