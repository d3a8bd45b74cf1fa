"""Change-notification cache — per-tenant dirty marker with a TTL.

The marker lives in the shared database so every worker process sees the
same value. A missing or expired marker means "assume dirty".

Mutating actions clear the marker inside their own transaction and write the
new time after commit, so a failed refresh leaves the marker absent rather
than stale.
"""

import logging
from datetime import timedelta

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.models import CacheEntry
from services.clock import now_millis, utcnow

logger = logging.getLogger(__name__)


def marker_key(tenant_id: str) -> str:
    return f"dirty:{tenant_id}"


def cache_get(db: Session, key: str) -> str | None:
    entry = db.get(CacheEntry, key)
    if entry is None:
        return None
    if entry.expires_at <= utcnow():
        return None
    return entry.value


def cache_set(db: Session, key: str, value: str, ttl_seconds: int) -> None:
    expires_at = utcnow() + timedelta(seconds=ttl_seconds)
    entry = db.get(CacheEntry, key)
    if entry is not None:
        entry.value = value
        entry.expires_at = expires_at
        db.commit()
        return
    try:
        db.add(CacheEntry(key=key, value=value, expires_at=expires_at))
        db.commit()
    except IntegrityError:
        # Another worker inserted the same key first
        db.rollback()
        entry = db.get(CacheEntry, key)
        entry.value = value
        entry.expires_at = expires_at
        db.commit()


def cache_delete(db: Session, key: str) -> None:
    db.execute(sa_delete(CacheEntry).where(CacheEntry.key == key))


def get_marker(db: Session, tenant_id: str) -> int | None:
    """Epoch milliseconds of the tenant's last mutation, or None if unknown."""
    value = cache_get(db, marker_key(tenant_id))
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def invalidate_marker(db: Session, tenant_id: str) -> None:
    """Drop the marker as part of the caller's transaction."""
    cache_delete(db, marker_key(tenant_id))


def mark_dirty(db: Session, tenant_id: str) -> int | None:
    """
    Record "tenant changed now" with the configured TTL. Runs after commit.

    Returns the marker value, or None when the write failed (the marker is
    then absent and readers fall back to a full scan).
    """
    stamp = now_millis()
    try:
        cache_set(db, marker_key(tenant_id), str(stamp), settings.DIRTY_MARKER_TTL_SECONDS)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to refresh change marker for tenant {tenant_id}: {str(e)}")
        return None
    return stamp
