"""
Bookstore Backend
FastAPI application entry point

- Subscription expiry sweep with heartbeat metrics
- Rate limiting with SlowAPI
- Error sanitization middleware
- Health endpoint with DB ping
"""
import asyncio
import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from bookstore import __version__
from bookstore.api.routes import admin_subscriptions, admin_users, auth, subscriptions
from bookstore.core.config import settings
from bookstore.core.database import AsyncSessionLocal, init_models
from bookstore.core.error_handler import ErrorSanitizationMiddleware, register_exception_handlers
from bookstore.core.rate_limit import limiter, rate_limit_exceeded_handler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Background task references
_expiry_task: Optional[asyncio.Task] = None
_expiry_heartbeat: dict = {
    "last_run": None,
    "last_success": None,
    "records_processed": 0,
    "errors": 0,
}


# ============== SUBSCRIPTION EXPIRY SCHEDULER ==============

async def run_subscription_expiry():
    """
    Run one expiry sweep and update the heartbeat.
    """
    from bookstore.services.subscription_expiry import expire_overdue_subscriptions

    _expiry_heartbeat["last_run"] = datetime.now(timezone.utc).isoformat()

    try:
        stats = await expire_overdue_subscriptions()
        _expiry_heartbeat["last_success"] = datetime.now(timezone.utc).isoformat()
        _expiry_heartbeat["records_processed"] += stats.get("subscriptions_expired", 0)
    except Exception as e:
        _expiry_heartbeat["errors"] += 1
        logger.error(f"Subscription expiry sweep failed: {e}")


async def subscription_expiry_scheduler():
    """
    Run the expiry sweep at the configured interval until cancelled.
    """
    interval_seconds = settings.SUBSCRIPTION_SWEEP_INTERVAL_MINUTES * 60
    logger.info(
        f"Subscription expiry scheduler started "
        f"(interval: {settings.SUBSCRIPTION_SWEEP_INTERVAL_MINUTES} minutes)"
    )

    while True:
        await run_subscription_expiry()
        await asyncio.sleep(interval_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Create tables and start the expiry scheduler on startup.
    """
    global _expiry_task

    await init_models()

    if settings.SUBSCRIPTION_SWEEP_ENABLED:
        _expiry_task = asyncio.create_task(subscription_expiry_scheduler())
        logger.info("Subscription expiry scheduler ENABLED")
    else:
        logger.info("Subscription expiry scheduler DISABLED via config")

    yield

    if _expiry_task and not _expiry_task.done():
        _expiry_task.cancel()
        try:
            await _expiry_task
        except asyncio.CancelledError:
            logger.info("Subscription expiry scheduler cancelled")


app = FastAPI(
    lifespan=lifespan,
    title="Bookstore API",
    description="""
## Bookstore API

Role-based admin console and subscription lifecycle.

### Authentication
Use `/api/auth/login` to get a bearer token and send it as
`Authorization: Bearer <token>`.

### Roles
- **admin**: every permission, plus subscription overrides
- **manager** / **staff**: admin console access with their stored permissions
- **user**: customer account
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoint"},
        {"name": "Authentication", "description": "Registration, login and profile"},
        {"name": "Subscriptions", "description": "Customer subscription lifecycle"},
        {"name": "Admin - Subscriptions", "description": "Subscription management for staff"},
        {"name": "Admin - Users", "description": "Roles, permissions and user accounts"},
    ],
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Domain errors -> JSON
register_exception_handlers(app)

# Error sanitization (catches unhandled exceptions)
app.add_middleware(ErrorSanitizationMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(subscriptions.router, prefix="/api/subscriptions", tags=["Subscriptions"])
app.include_router(
    admin_subscriptions.router, prefix="/api/admin/subscriptions", tags=["Admin - Subscriptions"]
)
app.include_router(admin_users.router, prefix="/api/admin", tags=["Admin - Users"])


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check with a DB ping and the expiry sweep heartbeat.
    Returns 503 if the database is unreachable.
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "subscription_expiry": _expiry_heartbeat,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        health_status["database"] = f"error: {type(e).__name__}"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
