"""Application configuration loaded from environment variables."""

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the FoamOps sync backend."""

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./foamops.db")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # Document store (work orders, PDFs, site photos)
    DOCUMENTS_DIR: str = os.getenv("DOCUMENTS_DIR", "./documents")
    DOCUMENTS_BASE_URL: str = os.getenv("DOCUMENTS_BASE_URL", "/documents")

    # Advisory locking
    OPS_LOCK_TIMEOUT_SECONDS: float = float(os.getenv("OPS_LOCK_TIMEOUT_SECONDS", "30"))
    AUTH_LOCK_TIMEOUT_SECONDS: float = float(os.getenv("AUTH_LOCK_TIMEOUT_SECONDS", "10"))
    LOCK_LEASE_SECONDS: float = float(os.getenv("LOCK_LEASE_SECONDS", "120"))
    LOCK_POLL_INTERVAL_SECONDS: float = float(os.getenv("LOCK_POLL_INTERVAL_SECONDS", "0.2"))

    # Change-notification cache
    DIRTY_MARKER_TTL_SECONDS: int = int(os.getenv("DIRTY_MARKER_TTL_SECONDS", "21600"))
    HEARTBEAT_TAIL_WINDOW: int = int(os.getenv("HEARTBEAT_TAIL_WINDOW", "200"))
    HEARTBEAT_OVERLAP_SECONDS: float = float(os.getenv("HEARTBEAT_OVERLAP_SECONDS", "5"))
    SYNC_DOWN_LOG_LIMIT: int = int(os.getenv("SYNC_DOWN_LOG_LIMIT", "500"))

    # Heavy tier retries on compare-and-set conflicts
    MEDIA_CAS_RETRIES: int = int(os.getenv("MEDIA_CAS_RETRIES", "3"))

    # Worker pool size per service tier
    READ_TIER_CONCURRENCY: int = int(os.getenv("READ_TIER_CONCURRENCY", "32"))
    OPS_TIER_CONCURRENCY: int = int(os.getenv("OPS_TIER_CONCURRENCY", "8"))
    MEDIA_TIER_CONCURRENCY: int = int(os.getenv("MEDIA_TIER_CONCURRENCY", "4"))


settings = Settings()
