"""FoamOps Sync Backend — FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database import init_db
from routes.actions import router as actions_router, build_tier_limiters
from routes.health import router as health_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)-25s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("=" * 60)
    logger.info("FoamOps Sync Backend — Starting up")
    logger.info("=" * 60)
    init_db()
    logger.info("Database initialized")
    app.state.tier_limiters = build_tier_limiters()
    logger.info(
        f"Worker pools: read={settings.READ_TIER_CONCURRENCY} "
        f"ops={settings.OPS_TIER_CONCURRENCY} media={settings.MEDIA_TIER_CONCURRENCY}"
    )
    yield
    logger.info("FoamOps Sync Backend — Shutting down")


app = FastAPI(
    title="FoamOps Sync",
    description="Multi-client sync and inventory reconciliation backend for spray-foam contractors",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS — allow frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(health_router)
app.include_router(actions_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "service": "FoamOps Sync",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": ["/api/auth", "/api/ops", "/api/media", "/api/action"],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)
