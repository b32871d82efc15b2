"""
PadelHub API Server

FastAPI server for match coordination, score confirmation, ratings and tournaments.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from padelhub.api.routes import router, limiter as routes_limiter
from padelhub.database import db
from padelhub.services.score_confirmation_service import get_score_confirmation_sweeper

# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up PadelHub API...")

    # Fallback for tables not yet created by migrations
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Auto-confirm score submissions past their deadline
    try:
        get_score_confirmation_sweeper().start()
    except Exception as e:
        logger.error(f"Failed to start score confirmation sweeper: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down PadelHub API...")
    try:
        get_score_confirmation_sweeper().stop()
    except Exception as e:
        logger.error(f"Error stopping score confirmation sweeper: {e}", exc_info=True)


app = FastAPI(
    title="PadelHub API",
    description="Match lifecycle, score confirmation, Elo ratings and Americano/Mexicano tournaments",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health")
async def health():
    """Liveness probe."""
    return {"status": "healthy"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
