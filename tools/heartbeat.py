"""Tool: HEARTBEAT, the cheap "what changed since my last sync" poll.

If the tenant's dirty marker says nothing changed since ``lastSyncTimestamp``,
the answer comes straight from the marker. Otherwise jobs are filtered by
their modification stamps and the append-only messages and material log are
walked backwards over a bounded window.
"""

import logging
from datetime import datetime, timedelta

from config import settings
from engine.context import ActionContext, parse_payload
from schemas.actions import HeartbeatPayload
from schemas.records import ExecutionStatus
from services.change_cache import get_marker
from services.clock import iso_now, parse_timestamp
from services.record_store import Collection, RecordStore
from tools.inventory import read_lifetime_usage, read_warehouse_counts

logger = logging.getLogger(__name__)


def _from_millis(ms: int) -> datetime:
    """Naive UTC datetime, comparable with row write times."""
    return datetime(1970, 1, 1) + timedelta(milliseconds=ms)


def job_changed_since(job: dict, since_ms: int) -> bool:
    if job.get("executionStatus") == ExecutionStatus.IN_PROGRESS.value:
        return True
    if parse_timestamp(job.get("lastModified")) > since_ms:
        return True
    actuals = job.get("actuals")
    if isinstance(actuals, dict) and parse_timestamp(actuals.get("lastStartedAt")) > since_ms:
        return True
    return False


def tail_since(store: RecordStore, collection: Collection, since: datetime, window: int) -> list[dict]:
    """Records written after ``since`` among the last ``window`` rows, oldest first."""
    found = []
    for written_at, record in store.tail(collection, window):
        if written_at is None or written_at <= since:
            break
        if record is not None:
            found.append(record)
    found.reverse()
    return found


def handle_heartbeat(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(HeartbeatPayload, payload)
    store = ctx.open_store(p.tenant_id)
    server_time = iso_now()
    last_sync = parse_timestamp(p.last_sync_timestamp)

    marker = get_marker(ctx.db, p.tenant_id)
    if marker is not None and marker <= last_sync:
        return {
            "jobUpdates": [],
            "messages": [],
            "materialLogs": [],
            "serverTime": server_time,
            "cached": True,
        }

    # Look back a little further than lastSync to catch rows committed while
    # the previous heartbeat was running. Clients de-duplicate by id.
    since_ms = max(last_sync - int(settings.HEARTBEAT_OVERLAP_SECONDS * 1000), 0)
    since = _from_millis(since_ms)
    window = settings.HEARTBEAT_TAIL_WINDOW

    job_updates = [job for job in store.scan(Collection.JOBS) if job_changed_since(job, since_ms)]
    messages = tail_since(store, Collection.MESSAGES, since, window)
    material_logs = tail_since(store, Collection.MATERIAL_LOG, since, window)

    logger.debug(
        f"Heartbeat tenant {p.tenant_id}: {len(job_updates)} jobs, {len(messages)} messages, "
        f"{len(material_logs)} log entries"
    )
    return {
        "jobUpdates": job_updates,
        "messages": messages,
        "materialLogs": material_logs,
        "warehouse": {
            **read_warehouse_counts(store).to_record(),
            "items": store.scan(Collection.INVENTORY),
        },
        "lifetimeUsage": read_lifetime_usage(store).to_record(),
        "serverTime": server_time,
        "cached": False,
    }
