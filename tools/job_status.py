"""Tool: Job lifecycle transitions driven by the crew (start, complete) and the office (delete)."""

import logging
from typing import Callable, TypeVar

from engine.context import ActionContext, parse_payload
from engine.errors import NotFoundError
from schemas.actions import CompleteJobPayload, JobPayload
from schemas.records import ExecutionStatus, JobActuals, JobRecord, load_record
from services.clock import iso_now
from services.record_store import Collection, RecordStore
from tools.inventory import reconcile_completion

logger = logging.getLogger(__name__)

T = TypeVar("T")


def load_job(store: RecordStore, job_id: str) -> JobRecord:
    job = load_record(JobRecord, store.get(Collection.JOBS, job_id))
    if job is None:
        raise NotFoundError(f"Estimate not found: {job_id}")
    return job


def update_job(store: RecordStore, job_id: str, apply: Callable[[JobRecord], T]) -> tuple[JobRecord, T]:
    """
    Apply an in-place change to one job with compare-and-set.

    ``apply`` receives the freshly read job and may mutate it; whatever it
    returns is handed back alongside the stored job.
    """
    load_job(store, job_id)
    outcome = {}

    def mutate(raw):
        job = load_record(JobRecord, raw)
        if job is None:
            raise NotFoundError(f"Estimate not found: {job_id}")
        outcome["result"] = apply(job)
        outcome["job"] = job
        return job.to_record()

    store.update(Collection.JOBS, job_id, mutate)
    return outcome["job"], outcome["result"]


def handle_start_job(ctx: ActionContext, payload: dict) -> dict:
    """Crew starts a job: In Progress plus a start stamp. A completed job stays completed."""
    p = parse_payload(JobPayload, payload)
    store = ctx.open_store(p.tenant_id)

    def apply(job: JobRecord):
        if job.execution_status != ExecutionStatus.COMPLETED:
            job.execution_status = ExecutionStatus.IN_PROGRESS
        now = iso_now()
        if job.actuals is None:
            job.actuals = JobActuals()
        job.actuals.last_started_at = now
        job.last_modified = now
        return job.execution_status

    _, status = update_job(store, p.estimate_id, apply)
    logger.info(f"Job {p.estimate_id} started ({status.value})")
    return {"success": True, "status": status.value}


def handle_complete_job(ctx: ActionContext, payload: dict) -> dict:
    """Crew completes a job. Idempotent: a processed job is left untouched."""
    p = parse_payload(CompleteJobPayload, payload)
    store = ctx.open_store(p.tenant_id)

    if load_job(store, p.estimate_id).inventory_processed:
        logger.info(f"Job {p.estimate_id} already completed, nothing to do")
        return {"success": True, "message": "Already completed"}

    _, result = update_job(store, p.estimate_id, lambda job: reconcile_completion(store, job, p.actuals))
    return {"success": True, "reconciliation": result.data.get("reconciliation")}


def handle_delete_estimate(ctx: ActionContext, payload: dict) -> dict:
    p = parse_payload(JobPayload, payload)
    store = ctx.open_store(p.tenant_id)
    deleted = store.delete(Collection.JOBS, p.estimate_id)
    logger.info(f"Estimate {p.estimate_id} {'deleted' if deleted else 'was already gone'}")
    return {"success": True, "deleted": deleted}
