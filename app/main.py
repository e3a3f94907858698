"""
FastAPI Application Entry Point

Panchayat Kitchen Marketplace
Cloud kitchen, homemade food and indoor event catering with cooks,
delivery staff and admins working the same order.

Endpoints:
    - /api/profiles, /api/panchayats: accounts and geography
    - /api/catalog: categories, items, slots, menus
    - /api/cart, /api/checkout: ordering
    - /api/orders: order workflow (admin actions, cancel, ratings)
    - /api/cooks: cook registry, assignments, dish requests
    - /api/delivery: driver applications, claims, hand-off, alerts, wallet
    - /api/admin: settlements, wallet approvals, stale orders, reports
    - GET /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

import redis
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from app.api import routers
from app.core.config import get_settings, setup_logging
from app.core.exceptions import MarketplaceError
from app.database import engine, get_db, init_db
from app.schemas import HealthResponse
from app.services.alerts import (
    AssignmentSnapshot,
    OrderSnapshot,
    get_cook_board,
    get_delivery_board,
    get_order_feed,
    reset_alert_boards,
)
from app.services.notifications import get_notification_service
from app.tasks import send_cook_assignment_alert, send_delivery_alerts

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# ALERT HOOKS
# =============================================================================

def _log_publish_failure(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.error(f"❌ Could not queue alert task: {future.exception()}")


def _publish(task, *args) -> None:
    """Queue a Celery task; on the event loop the broker call runs in the default executor."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        task.delay(*args)
        return
    loop.run_in_executor(None, task.delay, *args).add_done_callback(_log_publish_failure)


def _queue_delivery_sms(snapshot: OrderSnapshot) -> None:
    _publish(send_delivery_alerts, snapshot.id)


def _queue_cook_sms(snapshot: AssignmentSnapshot) -> None:
    _publish(send_cook_assignment_alert, snapshot.order_id, snapshot.cook_id)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    # Change feed and alert boards
    get_order_feed()
    get_delivery_board().on_order_available = _queue_delivery_sms
    get_cook_board().on_assignment = _queue_cook_sms
    logger.info("✅ Order change feed and alert boards ready")

    notification_service = get_notification_service()
    logger.info(f"✅ Notification Service: {notification_service.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    reset_alert_boards()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Food ordering and event catering marketplace: order workflow, cook and "
        "delivery assignment, settlements and live staff alerts."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in routers:
    app.include_router(router)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍛 Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
        r.ping()
        r.close()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check notification service
    notification_service = get_notification_service()
    notification_status = "healthy" if await notification_service.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        notification_service=notification_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(MarketplaceError)
async def marketplace_exception_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Domain errors raised by the services."""
    if exc.status_code >= 409:
        logger.info(f"{request.method} {request.url.path}: {exc.error} - {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
