"""Advisory lease locks with a bounded wait.

A lock is a row in ``lock_leases`` keyed by the lock name. Creating the row
is the atomic acquire (primary-key uniqueness); a lease past its expiry is
stale and may be taken over. Only the owning token can release a lease.
Lock bookkeeping runs in its own short sessions so it never mixes with the
caller's data transaction.
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Callable

from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from config import settings
from engine.errors import ServerBusyError
from models.models import LockLease
from services.clock import utcnow

logger = logging.getLogger(__name__)

REGISTRY_LOCK = "registry"


class LeaseLock:
    """Context manager holding one named lease for the duration of a block."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        name: str,
        timeout: float,
        lease_seconds: float | None = None,
        poll_interval: float | None = None,
    ):
        self.session_factory = session_factory
        self.name = name
        self.timeout = timeout
        self.lease_seconds = lease_seconds if lease_seconds is not None else settings.LOCK_LEASE_SECONDS
        self.poll_interval = poll_interval if poll_interval is not None else settings.LOCK_POLL_INTERVAL_SECONDS
        self.owner = uuid.uuid4().hex
        self.held = False

    def _try_acquire(self) -> bool:
        with self.session_factory() as db:
            now = utcnow()
            try:
                db.execute(
                    sa_delete(LockLease).where(LockLease.name == self.name, LockLease.expires_at <= now)
                )
                db.add(LockLease(
                    name=self.name,
                    owner=self.owner,
                    acquired_at=now,
                    expires_at=now + timedelta(seconds=self.lease_seconds),
                ))
                db.commit()
                return True
            except IntegrityError:
                db.rollback()
                return False
            except OperationalError as e:
                # SQLite reports a concurrent writer as "database is locked"
                db.rollback()
                logger.warning(f"Lock {self.name}: acquire attempt failed: {str(e)}")
                return False

    def acquire(self) -> None:
        """Poll until the lease is ours or the timeout elapses."""
        deadline = time.monotonic() + self.timeout
        while True:
            if self._try_acquire():
                self.held = True
                logger.debug(f"Lock {self.name} acquired")
                return
            if time.monotonic() >= deadline:
                logger.warning(f"Lock {self.name} not acquired within {self.timeout}s")
                raise ServerBusyError("Server busy. Please try again in a moment.")
            time.sleep(self.poll_interval)

    def release(self) -> None:
        if not self.held:
            return
        with self.session_factory() as db:
            db.execute(
                sa_delete(LockLease).where(LockLease.name == self.name, LockLease.owner == self.owner)
            )
            db.commit()
        self.held = False
        logger.debug(f"Lock {self.name} released")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def tenant_lock(session_factory: Callable[[], Session], tenant_id: str, timeout: float | None = None) -> LeaseLock:
    """Serializes mutations of one tenant's collections."""
    return LeaseLock(
        session_factory,
        f"tenant:{tenant_id}",
        timeout if timeout is not None else settings.OPS_LOCK_TIMEOUT_SECONDS,
    )


def registry_lock(session_factory: Callable[[], Session], timeout: float | None = None) -> LeaseLock:
    """Serializes account creation and password changes."""
    return LeaseLock(
        session_factory,
        REGISTRY_LOCK,
        timeout if timeout is not None else settings.AUTH_LOCK_TIMEOUT_SECONDS,
    )
