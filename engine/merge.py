"""Job record merge — resolves office snapshots against field-advanced server state.

The office client uploads its whole job list. Jobs on the server may have
moved on in the meantime (crew started or completed them, payment was
recorded, documents were attached). These rules keep that progress:

1. Server Completed, incoming not Completed → server execution status and actuals.
2. Both Completed → the actuals with the later completion date.
3. Server In Progress, incoming Not Started → In Progress.
4. Server Paid → Paid, with the server's (frozen) financials.
5. Document links and site photos missing from the incoming copy come from the server.
6. Idempotence gates and the data they guard always come from the server
   copy: an upload can neither reset a gate nor set one. Jobs the server
   has never seen are taken as uploaded.

Records are handled as plain dicts so client fields the backend does not
know about pass through untouched.
"""

import copy
import logging

from schemas.records import ExecutionStatus, JobStatus
from services.clock import iso_now, parse_timestamp

logger = logging.getLogger(__name__)

LINK_FIELDS = ("pdfLink", "invoicePdfLink", "completionReportLink", "workOrderSheetUrl")

# gate flag → the record field it guards
GATES = {
    "inventoryDeducted": "deductedValues",
    "inventoryProcessed": "reconciliation",
}


def _execution(job: dict) -> str:
    return job.get("executionStatus") or ExecutionStatus.NOT_STARTED.value


def _completion_millis(job: dict) -> int:
    actuals = job.get("actuals") or {}
    return parse_timestamp(actuals.get("completionDate")) if isinstance(actuals, dict) else 0


def merge_job(existing: dict, incoming: dict) -> dict:
    """Merge one incoming job over the server's copy of the same job."""
    merged = copy.deepcopy(incoming)
    completed = ExecutionStatus.COMPLETED.value

    if _execution(existing) == completed and _execution(incoming) != completed:
        merged["executionStatus"] = completed
        merged["actuals"] = copy.deepcopy(existing.get("actuals"))
    elif _execution(existing) == completed and _execution(incoming) == completed:
        if _completion_millis(existing) > _completion_millis(incoming):
            merged["actuals"] = copy.deepcopy(existing.get("actuals"))

    if (_execution(existing) == ExecutionStatus.IN_PROGRESS.value
            and _execution(incoming) == ExecutionStatus.NOT_STARTED.value):
        merged["executionStatus"] = ExecutionStatus.IN_PROGRESS.value

    if existing.get("status") == JobStatus.PAID.value:
        merged["status"] = JobStatus.PAID.value
        if existing.get("financials") is not None:
            merged["financials"] = copy.deepcopy(existing["financials"])

    for field in LINK_FIELDS:
        if existing.get(field) and not merged.get(field):
            merged[field] = existing[field]
    if existing.get("sitePhotos") and not merged.get("sitePhotos"):
        merged["sitePhotos"] = list(existing["sitePhotos"])

    # only the server's own ledger writes may set a gate on a job it knows
    for gate, guarded in GATES.items():
        for field in (gate, guarded):
            if field in existing:
                merged[field] = copy.deepcopy(existing[field])
            else:
                merged.pop(field, None)

    if merged != existing:
        merged["lastModified"] = iso_now()
    return merged


def merge_job_records(server_jobs: list[dict], incoming_jobs: list[dict]) -> list[dict]:
    """
    Merge an uploaded job list into the server's list.

    The result is server ∪ incoming: server order first, new jobs appended.
    Incoming entries without an id are dropped.
    """
    merged: dict[str, dict] = {}
    for job in server_jobs:
        if job.get("id"):
            merged[str(job["id"])] = job

    kept = 0
    for incoming in incoming_jobs:
        if not isinstance(incoming, dict) or not incoming.get("id"):
            logger.warning("Dropping uploaded job without an id")
            continue
        job_id = str(incoming["id"])
        existing = merged.get(job_id)
        if existing is None:
            merged[job_id] = copy.deepcopy(incoming)
        else:
            merged[job_id] = merge_job(existing, incoming)
            if merged[job_id].get("executionStatus") != incoming.get("executionStatus"):
                kept += 1

    if kept:
        logger.info(f"Merge kept server execution status on {kept} job(s)")
    return list(merged.values())
