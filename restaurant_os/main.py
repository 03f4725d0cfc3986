"""
Restaurant OS - Main Application Entry Point
Online ordering with order lifecycle, payments and reconciliation
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from restaurant_os.core.config import get_settings
from restaurant_os.core.events import OrderStatusChanged, event_bus
from restaurant_os.core.exceptions import RestaurantOSError
from restaurant_os.core.logging_config import configure_logging
from restaurant_os.core.notifications import LoggingNotifier, register_notifier
from restaurant_os.api import cron, orders, payments, webhooks

logger = structlog.get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    configure_logging()
    handler = register_notifier(LoggingNotifier())
    logger.info("Initializing Restaurant OS backend", environment=settings.ENVIRONMENT)
    # Tables are created by Alembic migrations, not auto-generated
    logger.info("Database managed by Alembic migrations")

    yield

    # Shutdown
    await event_bus.drain()
    event_bus.unsubscribe(OrderStatusChanged.__name__, handler)
    logger.info("Shutting down Restaurant OS backend")


# Create FastAPI application
app = FastAPI(
    title="Restaurant OS API",
    description="Online ordering, order lifecycle and payment reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RestaurantOSError)
async def restaurant_os_error_handler(request: Request, exc: RestaurantOSError):
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": details},
    )


# Include routers
app.include_router(orders.router, prefix="/api/v1/orders", tags=["orders"])
app.include_router(payments.router, prefix="/api/v1/payments", tags=["payments"])
app.include_router(webhooks.router, prefix="/api/v1/payments", tags=["webhooks"])
app.include_router(cron.router, prefix="/api/v1/cron", tags=["cron"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "restaurant-os-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "restaurant_os.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
