"""
Gotchi Pet Backend — FastAPI Application Entry Point.

Serves the virtual-pet game:
  - Pet state reads/writes and care interactions
  - User accounts, usernames and the activity log
  - Cached leaderboard and rank queries
  - Referral codes with a one-time referrer bonus
  - Game sessions and the task catalog
  - Account deletion across every wallet-keyed table
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cache import LeaderboardCache
from config import settings
from database import engine
from errors import GotchiError
from limiter import limiter
from models import Base
from routes import routers

# ── Logging ──────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s │ %(levelname)-7s │ %(name)s │ %(message)s",
)
logger = logging.getLogger(__name__)

# ── Database ─────────────────────────────────────────────────────


def _create_tables():
    """Create all tables if they don't already exist."""
    Base.metadata.create_all(bind=engine)
    logger.info("✓ Database tables ensured")


def _create_indexes():
    """Create performance indexes (idempotent — uses IF NOT EXISTS)."""
    indexes = [
        "CREATE INDEX IF NOT EXISTS idx_users_points          ON users (points DESC)",
        "CREATE INDEX IF NOT EXISTS idx_users_referred_by     ON users (referred_by)",
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username_lower ON users (lower(username))",
        "CREATE INDEX IF NOT EXISTS idx_activities_wallet_ts  ON user_activities (wallet_address, timestamp)",
        "CREATE INDEX IF NOT EXISTS idx_sessions_wallet       ON game_sessions (wallet_address)",
    ]
    with engine.connect() as conn:
        for stmt in indexes:
            conn.execute(text(stmt))
        conn.commit()
    logger.info("✓ Database indexes ensured")


# ── App Lifecycle ────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(application: FastAPI):
    """Startup / shutdown lifecycle handler."""
    # Startup
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("✓ Database connected successfully")
    except SQLAlchemyError as e:
        logger.error("✗ Database connection failed: %s", e)

    _create_tables()
    _create_indexes()
    application.state.cache = LeaderboardCache.from_url(settings.redis_url, settings.cache_ttl_seconds)

    yield  # ← app is running

    # Shutdown
    engine.dispose()
    logger.info("Database connections closed")


# ── New Relic (Monitoring) ───────────────────────────────────────

def _init_new_relic() -> bool:
    """Start the APM agent when the ``monitoring`` extra and its config file are present."""
    try:
        import newrelic.agent
        newrelic.agent.initialize(settings.new_relic_config)
        logger.info("✓ New Relic agent initialized")
        return True
    except Exception:
        logger.warning("⚠ New Relic agent skipped (ensure %s exists and dependency installed)",
                       settings.new_relic_config)
        return False


_init_new_relic()

# ── FastAPI App ──────────────────────────────────────────────────

app = FastAPI(
    title="Gotchi Pet API",
    description="Virtual-pet state, leaderboard, referrals and accounts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


# ── Error Envelope ───────────────────────────────────────────────

@app.exception_handler(GotchiError)
async def gotchi_error_handler(request: Request, exc: GotchiError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"{field}: {message}" if field else message},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Database error"})


for router in routers:
    app.include_router(router)


# ── Health Check ─────────────────────────────────────────────────

@app.get("/health", tags=["Health"])
def health_check():
    """Simple liveness probe."""
    return {"status": "ok", "service": "gotchi-pet-backend"}


if __name__ == "__main__":
    import uvicorn
    # Run the app with auto-reload enabled
    uvicorn.run("app:app", host="127.0.0.1", port=8000, reload=True)
