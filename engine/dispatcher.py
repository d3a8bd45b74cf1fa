"""Action dispatcher — routes ``{action, payload}`` to its handler under the right policy.

Every action belongs to exactly one service tier (static map below):

- READ: no lock. SIGNUP and UPDATE_PASSWORD take the registry lock.
- TRANSACTIONAL: bounded wait on the tenant lock, busy → retryable error.
- HEAVY: no lock. Writes are appends or single-row compare-and-set; a lost
  compare-and-set rolls back and re-runs the whole action.

Each attempt runs in one database transaction: commit on success, rollback
on any exception. Mutating actions drop the tenant's dirty marker inside the
transaction and write a fresh one after commit.
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from sqlalchemy.orm import Session

from config import settings
from engine.context import ActionContext
from engine.errors import ActionError, ConcurrentUpdateError, InvalidRequestError
from schemas.actions import ActionRequest, ActionResponse
from services.change_cache import invalidate_marker, mark_dirty
from services.documents import DocumentStore
from services.locking import registry_lock, tenant_lock
from tools import accounts, heartbeat, invoice, job_status, media, messages, sync

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    READ = "auth"
    TRANSACTIONAL = "ops"
    HEAVY = "media"


@dataclass(frozen=True)
class ActionSpec:
    tier: Tier
    handler: Callable[[ActionContext, dict], dict]
    mutating: bool = False
    registry_lock: bool = False


ACTIONS: dict[str, ActionSpec] = {
    # Read tier
    "LOGIN": ActionSpec(Tier.READ, accounts.handle_login),
    "CREW_LOGIN": ActionSpec(Tier.READ, accounts.handle_crew_login),
    "SIGNUP": ActionSpec(Tier.READ, accounts.handle_signup, registry_lock=True),
    "UPDATE_PASSWORD": ActionSpec(Tier.READ, accounts.handle_update_password, registry_lock=True),
    "SUBMIT_TRIAL": ActionSpec(Tier.READ, accounts.handle_submit_trial),
    "HEARTBEAT": ActionSpec(Tier.READ, heartbeat.handle_heartbeat),
    "SYNC_DOWN": ActionSpec(Tier.READ, sync.handle_sync_down),
    # Transactional tier
    "SYNC_UP": ActionSpec(Tier.TRANSACTIONAL, sync.handle_sync_up, mutating=True),
    "START_JOB": ActionSpec(Tier.TRANSACTIONAL, job_status.handle_start_job, mutating=True),
    "COMPLETE_JOB": ActionSpec(Tier.TRANSACTIONAL, job_status.handle_complete_job, mutating=True),
    "MARK_JOB_PAID": ActionSpec(Tier.TRANSACTIONAL, invoice.handle_mark_job_paid, mutating=True),
    "DELETE_ESTIMATE": ActionSpec(Tier.TRANSACTIONAL, job_status.handle_delete_estimate, mutating=True),
    "SEND_MESSAGE": ActionSpec(Tier.TRANSACTIONAL, messages.handle_send_message, mutating=True),
    # Heavy tier
    "SAVE_PDF": ActionSpec(Tier.HEAVY, media.handle_save_pdf, mutating=True),
    "UPLOAD_IMAGE": ActionSpec(Tier.HEAVY, media.handle_upload_image, mutating=True),
    "CREATE_WORK_ORDER": ActionSpec(Tier.HEAVY, media.handle_create_work_order, mutating=True),
}

ACTION_TIERS: dict[str, Tier] = {name: spec.tier for name, spec in ACTIONS.items()}


def resolve_action(action: str, tier: Tier | None = None) -> ActionSpec:
    """Look up an action. When called through a tier endpoint the action must belong to it."""
    spec = ACTIONS.get(action)
    if spec is None:
        raise InvalidRequestError(f"Unknown action: {action}")
    if tier is not None and spec.tier != tier:
        raise InvalidRequestError(f"Action {action} is not served by the {tier.value} endpoint")
    return spec


def _lock_for(spec: ActionSpec, payload: dict, session_factory: Callable[[], Session]):
    if spec.tier == Tier.TRANSACTIONAL:
        tenant_id = payload.get("tenantId")
        if not tenant_id or not isinstance(tenant_id, str):
            raise InvalidRequestError("Invalid payload: tenantId is required")
        return tenant_lock(session_factory, tenant_id)
    if spec.registry_lock:
        return registry_lock(session_factory)
    return nullcontext()


def _error(e: ActionError) -> tuple[int, dict]:
    return e.http_status, ActionResponse.error(str(e), retryable=e.retryable).to_body()


def _run_once(spec: ActionSpec, request: ActionRequest, session_factory: Callable[[], Session],
              documents: DocumentStore) -> dict:
    """One attempt in one transaction."""
    db = session_factory()
    ctx = ActionContext(db=db, session_factory=session_factory, documents=documents, action=request.action)
    try:
        data = spec.handler(ctx, request.payload)
        if spec.mutating and ctx.tenant_id:
            invalidate_marker(db, ctx.tenant_id)
        db.commit()
    except Exception:
        db.rollback()
        db.close()
        raise

    try:
        if spec.mutating and ctx.tenant_id:
            mark_dirty(db, ctx.tenant_id)
    finally:
        db.close()
    return data


def execute_action(
    request: ActionRequest,
    session_factory: Callable[[], Session],
    documents: DocumentStore,
    tier: Tier | None = None,
) -> tuple[int, dict]:
    """
    Run one action end to end and build the response envelope.

    Returns ``(http_status, body)``. Blocking; the HTTP layer runs it in the
    tier's worker pool.
    """
    action = request.action
    try:
        spec = resolve_action(action, tier)
        lock = _lock_for(spec, request.payload, session_factory)
    except ActionError as e:
        logger.warning(f"Rejected {action}: {e}")
        return _error(e)

    attempts = 1 + (max(settings.MEDIA_CAS_RETRIES, 0) if spec.tier == Tier.HEAVY else 0)
    logger.info(f"{action} [{spec.tier.value}]")

    try:
        with lock:
            for attempt in range(1, attempts + 1):
                try:
                    data = _run_once(spec, request, session_factory, documents)
                except ConcurrentUpdateError as e:
                    if attempt < attempts:
                        logger.warning(f"{action}: write conflict, retrying ({attempt}/{attempts - 1})")
                        continue
                    logger.warning(f"{action}: write conflict, giving up after {attempts} attempt(s)")
                    return _error(e)
                logger.info(f"  ✓ {action}")
                return 200, ActionResponse.success(data).to_body()
    except ActionError as e:
        logger.warning(f"  ✗ {action}: {e}")
        return _error(e)
    except Exception as e:
        logger.exception(f"  ✗ {action} crashed: {str(e)}")
        return 500, ActionResponse.error(f"Unexpected error: {str(e)}").to_body()
