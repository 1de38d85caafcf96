"""EarnHub Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import PROFILES_TABLE, get_supabase_client
from .errors import EarnHubError
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import (
    admin_router,
    auth_router,
    games_router,
    investments_router,
    leaderboard_router,
    lottery_router,
    notifications_router,
    payments_router,
    referrals_router,
    support_router,
    system_router,
    tasks_router,
    wallets_router,
)

API_PREFIX = "/api/v1"
VERSION = "0.1.0"

logger = get_logger("earnhub.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(f"Starting EarnHub Backend API (debug={settings.debug})")
    yield
    logger.info("Shutting down EarnHub Backend API")


app = FastAPI(
    title="EarnHub Backend API",
    description="Earning, wallet and game settlement API for EarnHub",
    version=VERSION,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(EarnHubError)
async def earnhub_error_handler(request: Request, exc: EarnHubError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} | {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
for router in (
    auth_router,
    system_router,
    wallets_router,
    games_router,
    tasks_router,
    investments_router,
    leaderboard_router,
    lottery_router,
    payments_router,
    referrals_router,
    notifications_router,
    support_router,
    admin_router,
):
    app.include_router(router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "earnhub-backend",
        "version": VERSION,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    db_status = "disconnected"
    try:
        db = get_supabase_client()
        db.table(PROFILES_TABLE).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
